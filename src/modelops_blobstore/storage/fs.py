"""Filesystem remote store implementation for testing and local use."""

import contextlib
import json
import logging
import os
import shutil
import tempfile
from pathlib import Path, PurePosixPath
from typing import Optional

from ..constants import COPY_BUFFER_SIZE
from ..errors import NotFoundError, StoreError
from ..storage_models import RemoteObjectInfo, UploadMetadata
from .base import TransferCallback

logger = logging.getLogger(__name__)

META_SUFFIX = ".meta.json"


class FilesystemRemoteStore:
    """
    Local directory standing in for an object store (avoids a live bucket
    in unit tests).

    Objects are stored at base_dir/<key>, metadata in base_dir/<key>.meta.json.
    """

    def __init__(self, base_dir: Path):
        """
        Initialize filesystem store.

        Args:
            base_dir: Base directory for object storage
        """
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def stat(self, key: str) -> RemoteObjectInfo:
        path = self._path_for(key)
        try:
            size = path.stat().st_size
        except FileNotFoundError:
            raise NotFoundError(key)
        except OSError as e:
            raise StoreError(f"Could not stat {key}: {e}") from e

        metadata = None
        meta_path = self._meta_path(path)
        if meta_path.exists():
            metadata = UploadMetadata.from_headers(json.loads(meta_path.read_text()))
        return RemoteObjectInfo(key=key, size=size, metadata=metadata)

    def put(
        self,
        key: str,
        path: Path,
        metadata: UploadMetadata,
        progress: Optional[TransferCallback] = None,
    ) -> None:
        """
        Copy a file into the store.

        Writes go to a temp file in the destination directory and are
        renamed into place, so a crash never leaves a partial object.
        """
        dest = self._path_for(key)
        dest.parent.mkdir(parents=True, exist_ok=True)

        with tempfile.NamedTemporaryFile(
            prefix=".put-",
            dir=str(dest.parent),
            delete=False
        ) as tmp:
            tmppath = Path(tmp.name)

        try:
            transferred = 0
            with open(path, "rb") as src, open(tmppath, "wb") as out:
                for chunk in iter(lambda: src.read(COPY_BUFFER_SIZE), b""):
                    out.write(chunk)
                    transferred += len(chunk)
                    if progress:
                        progress(transferred)
            os.replace(str(tmppath), str(dest))
            self._meta_path(dest).write_text(json.dumps(metadata.to_headers(), sort_keys=True))
            logger.debug("Stored %s (%d bytes)", dest, transferred)
        except OSError as e:
            with contextlib.suppress(OSError):
                tmppath.unlink()
            raise StoreError(f"Could not store {key}: {e}") from e

    def get(self, key: str, dest: Path) -> None:
        src = self._path_for(key)
        if not src.exists():
            raise NotFoundError(key)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(src, dest)
        except OSError as e:
            raise StoreError(f"Could not fetch {key}: {e}") from e

    def delete(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink(missing_ok=True)
            self._meta_path(path).unlink(missing_ok=True)
        except OSError as e:
            raise StoreError(f"Could not delete {key}: {e}") from e

    def _path_for(self, key: str) -> Path:
        """
        Map a key to a path under base_dir.

        Raises:
            ValueError: If the key would escape base_dir
        """
        rel = PurePosixPath(key)
        if rel.is_absolute() or ".." in rel.parts or not rel.parts:
            raise ValueError(f"Invalid object key: {key!r}")
        return self.base_dir.joinpath(*rel.parts)

    @staticmethod
    def _meta_path(path: Path) -> Path:
        return path.with_name(path.name + META_SUFFIX)
