"""Local blob: a single-pass encode pipeline spooled to a temporary file.

Every byte written to a LocalBlob goes through three stages, in order:

1. the uncompressed byte counter,
2. the running sha256 (the content address),
3. the gzip compressor, whose output passes through the compressed byte
   counter into the spool file.

Hashing happens before compression, so the digest only depends on the
content and never on the compressor or its level. The source may be a
one-shot stream (a directory tar stream), so everything is derived in one
pass and nothing is buffered in memory beyond what gzip holds internally.

Lifecycle:
    create() -> write()* -> close() -> size()/digest()... -> remove()

The spool file is NOT garbage collected. Use the blob as a context manager
so it is removed on every exit path:

    with LocalBlob.create(reference="data", is_dir=True) as blob:
        pack_directory(src, blob)
        blob.close()
        ...
"""

from __future__ import annotations

import contextlib
import gzip
import hashlib
import logging
import shutil
import tempfile
from pathlib import Path
from typing import BinaryIO, List, Optional, Protocol

from .constants import COPY_BUFFER_SIZE, DEFAULT_COMPRESS_LEVEL
from .errors import FlushError, PackagingError, ResourceAllocationError

logger = logging.getLogger(__name__)


# ---- Pipeline stages --------------------------------------------------------

class Stage(Protocol):
    """A single pipeline stage: accepts bytes, reports a value once sealed."""

    def write(self, data: bytes) -> int:
        ...

    def final_value(self):
        ...


class ByteCounter:
    """Counts bytes and optionally forwards them to a sink."""

    def __init__(self, sink: Optional[BinaryIO] = None):
        self._sink = sink
        self.count = 0

    def write(self, data: bytes) -> int:
        if self._sink is not None:
            self._sink.write(data)
        self.count += len(data)
        return len(data)

    def flush(self) -> None:
        if self._sink is not None:
            self._sink.flush()

    def final_value(self) -> int:
        return self.count


class HashStage:
    """Running sha256 over everything written."""

    def __init__(self):
        self._sha256 = hashlib.sha256()

    def write(self, data: bytes) -> int:
        self._sha256.update(data)
        return len(data)

    def final_value(self) -> bytes:
        return self._sha256.digest()


class CompressionStage:
    """Streaming gzip compressor writing into a counted sink.

    The gzip header is written with mtime=0 and no filename, so identical
    input at the same level always produces identical output.
    """

    def __init__(self, sink: ByteCounter, level: int = DEFAULT_COMPRESS_LEVEL):
        self._sink = sink
        self._gzip = gzip.GzipFile(
            filename="",
            mode="wb",
            compresslevel=level,
            fileobj=sink,
            mtime=0,
        )

    def write(self, data: bytes) -> int:
        return self._gzip.write(data)

    def close(self) -> None:
        """Flush buffered output and the gzip trailer into the sink."""
        self._gzip.close()

    def final_value(self) -> int:
        return self._sink.final_value()


# ---- LocalBlob --------------------------------------------------------------

class LocalBlob:
    """A gzip compressed object, either a single file or a directory tar.

    Attributes:
        is_dir: True if the payload is a tar stream of a directory
        reference: Human readable name (e.g. "Human Music.mp3"). Non-unique
            and user controlled, carried as metadata only; never use it for
            any logic.
        path: Spool file holding the compressed bytes
    """

    def __init__(
        self,
        spool: BinaryIO,
        reference: str = "",
        is_dir: bool = False,
        compress_level: int = DEFAULT_COMPRESS_LEVEL,
    ):
        self.is_dir = is_dir
        self.reference = reference
        self.path = Path(spool.name)
        self._spool = spool
        self._closed = False

        self._compressed = ByteCounter(spool)
        self._uncompressed = ByteCounter()
        self._hasher = HashStage()
        self._compressor = CompressionStage(self._compressed, compress_level)
        # Order matters: count, hash, then compress
        self._stages: List[Stage] = [self._uncompressed, self._hasher, self._compressor]

    @classmethod
    def create(
        cls,
        reference: str = "",
        is_dir: bool = False,
        compress_level: int = DEFAULT_COMPRESS_LEVEL,
        spool_dir: Optional[Path] = None,
    ) -> "LocalBlob":
        """Create a new blob backed by a temporary spool file.

        The spool file MUST be removed after all related actions are
        complete (see remove() and the context manager).

        Raises:
            ResourceAllocationError: If the temporary file cannot be created
        """
        try:
            spool = tempfile.NamedTemporaryFile(
                prefix="blob-",
                suffix=".gz",
                dir=str(spool_dir) if spool_dir else None,
                delete=False,
            )
        except OSError as e:
            raise ResourceAllocationError(f"Blob: could not create temporary file: {e}") from e

        try:
            return cls(spool, reference=reference, is_dir=is_dir, compress_level=compress_level)
        except Exception:
            # Wiring failed; don't leak the temp file
            spool.close()
            with contextlib.suppress(OSError):
                Path(spool.name).unlink()
            raise

    # Context manager: scoped ownership of the spool file

    def __enter__(self) -> "LocalBlob":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.discard()

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: bytes) -> int:
        """Push bytes through counter, hash and compressor."""
        if self._closed:
            raise ValueError("write to closed blob")
        for stage in self._stages:
            stage.write(data)
        return len(data)

    def close(self) -> None:
        """Finish the writing process, sealing size and digest.

        The compressor is closed first so its buffered bytes reach the spool
        file (and the compressed counter), then the spool file is closed.

        Raises:
            FlushError: If flushing the compressor or spool file fails
        """
        if self._closed:
            return
        self._closed = True
        try:
            try:
                self._compressor.close()
            finally:
                self._spool.close()
        except OSError as e:
            raise FlushError(f"Blob: could not flush {self.path}: {e}") from e
        logger.debug(
            "Sealed blob %s: %d -> %d bytes",
            self.hexdigest()[:12], self.uncompressed_size(), self.size(),
        )

    def size(self) -> int:
        """Compressed blob size (bytes written to the spool file)."""
        return self._compressed.final_value()

    def uncompressed_size(self) -> int:
        """Original size, or the size of the tar stream for dir blobs."""
        return self._uncompressed.final_value()

    def digest(self) -> bytes:
        """sha256 of the uncompressed data. Only valid after close()."""
        if not self._closed:
            raise ValueError("blob digest read before close()")
        return self._hasher.final_value()

    def hexdigest(self) -> str:
        return self.digest().hex()

    def open(self) -> BinaryIO:
        """Open the sealed spool file for reading."""
        if not self._closed:
            raise ValueError("blob opened for reading before close()")
        return self.path.open("rb")

    def discard(self) -> None:
        """Abandon the blob (sealed or not) and remove its spool file."""
        if not self._closed:
            self._closed = True
            # The spool is about to be deleted; flush errors are irrelevant
            with contextlib.suppress(OSError, ValueError):
                self._compressor.close()
            with contextlib.suppress(OSError):
                self._spool.close()
        self.remove()

    def remove(self) -> None:
        """Delete the spool file. Failures are logged, never raised."""
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove blob spool file %s: %s", self.path, e)

    def __repr__(self) -> str:
        return (
            f"LocalBlob(reference={self.reference!r}, is_dir={self.is_dir}, "
            f"path={str(self.path)!r}, closed={self._closed})"
        )


def reader_to_blob(
    reader: BinaryIO,
    reference: str = "",
    is_dir: bool = False,
    compress_level: int = DEFAULT_COMPRESS_LEVEL,
    spool_dir: Optional[Path] = None,
) -> LocalBlob:
    """Copy a readable stream into a new, sealed blob.

    The caller owns the returned blob and must remove it. On failure the
    spool file has already been removed.

    Raises:
        ResourceAllocationError: If the spool file cannot be created
        PackagingError: If reading the source or writing the spool fails
        FlushError: If sealing the blob fails
    """
    blob = LocalBlob.create(
        reference=reference, is_dir=is_dir,
        compress_level=compress_level, spool_dir=spool_dir,
    )
    try:
        try:
            shutil.copyfileobj(reader, blob, COPY_BUFFER_SIZE)
        except OSError as e:
            raise PackagingError(f"Error while processing {reference or 'stream'}: {e}") from e
        blob.close()
    except Exception:
        blob.discard()
        raise
    return blob


__all__ = [
    "ByteCounter",
    "CompressionStage",
    "HashStage",
    "LocalBlob",
    "reader_to_blob",
]
