"""High-level service for content-addressed uploads and downloads.

Upload flow (dedup-then-upload):

1. Encode the source into a LocalBlob (one pass: count, hash, compress).
2. Seal the blob, fixing its digest and sizes.
3. Stat blob/<digest>.gz in the remote store. If it exists with the same
   compressed size, stop: the content is already there.
4. Otherwise upload the spool file with its metadata. On failure, make a
   best-effort delete of whatever partial object was created and raise
   UploadError carrying the digest.
5. Remove the spool file on every path.

The duplicate check treats any lookup failure as "not a duplicate": a
flaky connection costs a redundant upload, never a false dedup.
"""

import gzip
import logging
import shutil
import tempfile
import zlib
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

from .blob import LocalBlob, reader_to_blob
from .config import StoreConfig
from .constants import COPY_BUFFER_SIZE
from .errors import (
    DigestMismatchError,
    PackagingError,
    ResourceAllocationError,
    UnpackError,
    UploadError,
)
from .hashing import HashingReader, to_hex
from .packing import pack_directory, unpack_tar, zip_to_tar
from .service_types import DownloadResult, ProgressCallback, UploadResult
from .storage import RemoteStore, make_remote_store
from .storage_models import UploadMetadata, object_key
from .utils import humanize_size

logger = logging.getLogger(__name__)


class BlobService:
    """Uploads files, directories and zip archives as content-addressed blobs.

    The store client is reused across calls; each call owns its own blob
    from creation to spool removal. Not safe for concurrent use of a single
    call, but sequential calls may share one service.
    """

    def __init__(self, store: RemoteStore, config: Optional[StoreConfig] = None):
        """Initialize with a remote store.

        Args:
            store: Remote store adapter
            config: Encoder settings (compression level, spool dir)
        """
        self.store = store
        self.config = config or StoreConfig()

    @classmethod
    def from_config(cls, config: StoreConfig) -> "BlobService":
        """Build the store adapter from configuration.

        Raises:
            ConfigError: If the store can't be configured
        """
        return cls(make_remote_store(config), config)

    # === Dedup-then-upload protocol ===

    def check_duplicate(self, blob: LocalBlob) -> bool:
        """Return True if an identical object already exists remotely.

        Identical means same key (same digest) and same compressed size.
        Any lookup error, including not-found, counts as no duplicate.
        """
        key = object_key(blob.digest())
        try:
            info = self.store.stat(key)
        except Exception as e:
            logger.debug("Duplicate check for %s: %s", key, e)
            return False

        if info.size != blob.size():
            logger.debug("Duplicate check for %s: size mismatch (%d != %d)", key, info.size, blob.size())
            return False
        return True

    def upload_blob(self, blob: LocalBlob, progress: Optional[ProgressCallback] = None) -> None:
        """Upload a sealed blob, referenced by its hash.

        Raises:
            UploadError: If the transfer fails for any reason (after best-effort
                remote cleanup)
        """
        key = object_key(blob.digest())
        metadata = UploadMetadata.from_blob(blob)

        callback: Optional[Callable[[int], None]] = None
        if progress:
            progress.on_upload_start(key, blob.size())

            def callback(transferred: int) -> None:
                progress.on_progress(key, transferred)

        try:
            self.store.put(key, blob.path, metadata, progress=callback)
        except Exception as e:
            # Any client failure may have left a partial object behind
            self._remove_partial(key)
            raise UploadError(f"Error while uploading blob: {e}", digest=blob.hexdigest(), key=key) from e
        finally:
            if progress:
                progress.on_upload_complete(key)

        logger.info("Uploaded %s (%s)", key, humanize_size(blob.size()))

    def upload_directory(
        self,
        src: Union[str, Path],
        reference: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
        exclude: Iterable[str] = (),
    ) -> UploadResult:
        """Upload an entire local dir as one blob, returning its digest.

        Raises:
            ResourceAllocationError: If no spool file can be created
            PackagingError: If the directory can't be packed (no network access)
            FlushError: If sealing the blob fails (no network access)
            UploadError: If the transfer fails; carries the digest
        """
        src = Path(src)
        with self._new_blob(reference or src.resolve().name, is_dir=True) as blob:
            pack_directory(src, blob, exclude=exclude)
            blob.close()
            return self._publish(blob, progress)

    def upload_file(
        self,
        path: Union[str, Path],
        reference: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> UploadResult:
        """Upload a single file as a blob.

        Raises:
            ResourceAllocationError, PackagingError, FlushError, UploadError
        """
        path = Path(path)
        try:
            f = path.open("rb")
        except OSError as e:
            raise PackagingError(f"Failed to open {path}: {e}") from e

        with f:
            blob = reader_to_blob(
                f,
                reference=reference or path.name,
                compress_level=self.config.compress_level,
                spool_dir=self.config.spool_dir,
            )
        with blob:
            return self._publish(blob, progress)

    def upload_zip(
        self,
        path: Union[str, Path],
        reference: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> UploadResult:
        """Upload a zip archive as a directory blob (converted to tar).

        Raises:
            ResourceAllocationError, PackagingError, FlushError, UploadError
        """
        path = Path(path)
        with self._new_blob(reference or path.stem, is_dir=True) as blob:
            zip_to_tar(path, blob)
            blob.close()
            return self._publish(blob, progress)

    # === Download ===

    def fetch(self, digest: Union[bytes, str], dest: Union[str, Path]) -> DownloadResult:
        """Download a blob and restore it at dest.

        Directory blobs are unpacked into dest; file blobs are decompressed
        to the file dest. The uncompressed content is verified against the
        digest.

        Raises:
            NotFoundError: If the blob doesn't exist
            StoreError: If the download fails
            UnpackError: If the object can't be decompressed or unpacked
            DigestMismatchError: If the content doesn't match the digest
        """
        expected = to_hex(digest)
        key = object_key(expected)
        dest = Path(dest)

        info = self.store.stat(key)
        is_dir = bool(info.metadata and info.metadata.is_dir)

        spool = self._new_spool_path()
        try:
            self.store.get(key, spool)
            with open(spool, "rb") as raw, gzip.GzipFile(fileobj=raw, mode="rb") as gz:
                reader = HashingReader(gz)
                if is_dir:
                    unpack_tar(dest, reader, compressed=False)
                    self._drain(reader)
                else:
                    self._decompress_to(reader, dest)
        finally:
            try:
                spool.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Could not remove download spool file %s: %s", spool, e)

        actual = reader.hexdigest()
        if actual != expected:
            raise DigestMismatchError(key, expected, actual)

        logger.info("Fetched %s into %s", key, dest)
        return DownloadResult(
            digest=expected,
            key=key,
            dest=str(dest),
            size=info.size,
            uncompressed_size=reader.bytes_read,
            is_dir=is_dir,
        )

    # === Internals ===

    def _new_blob(self, reference: str, is_dir: bool) -> LocalBlob:
        return LocalBlob.create(
            reference=reference,
            is_dir=is_dir,
            compress_level=self.config.compress_level,
            spool_dir=self.config.spool_dir,
        )

    def _new_spool_path(self) -> Path:
        try:
            with tempfile.NamedTemporaryFile(
                prefix="fetch-",
                suffix=".gz",
                dir=str(self.config.spool_dir) if self.config.spool_dir else None,
                delete=False,
            ) as tmp:
                return Path(tmp.name)
        except OSError as e:
            raise ResourceAllocationError(f"Could not create temporary file: {e}") from e

    def _publish(self, blob: LocalBlob, progress: Optional[ProgressCallback]) -> UploadResult:
        """Dedup check, then upload if needed."""
        key = object_key(blob.digest())
        if self.check_duplicate(blob):
            # already exists, exit early
            logger.info("Blob %s already in store, skipping upload", key)
            uploaded = False
        else:
            self.upload_blob(blob, progress)
            uploaded = True

        return UploadResult(
            digest=blob.hexdigest(),
            key=key,
            size=blob.size(),
            uncompressed_size=blob.uncompressed_size(),
            is_dir=blob.is_dir,
            reference=blob.reference,
            uploaded=uploaded,
        )

    def _remove_partial(self, key: str) -> None:
        """Best-effort delete of a partially written object."""
        try:
            self.store.delete(key)
        except Exception as e:
            logger.warning("Could not remove partial upload %s: %s", key, e)

    @staticmethod
    def _drain(reader: HashingReader) -> None:
        """Read past tar padding so the digest covers the whole stream."""
        try:
            reader.drain()
        except (OSError, EOFError, zlib.error) as e:
            raise UnpackError(f"Failed to decompress: {e}") from e

    @staticmethod
    def _decompress_to(reader: HashingReader, dest: Path) -> None:
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            with open(dest, "wb") as out:
                shutil.copyfileobj(reader, out, COPY_BUFFER_SIZE)
        except (OSError, EOFError, zlib.error) as e:
            raise UnpackError(f"Failed to decompress into {dest}: {e}") from e
