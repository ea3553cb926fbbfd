"""Hashing utilities for content addressing.

Digests are sha256 over the *uncompressed* content, so the address of a blob
does not depend on the compressor or its settings.
"""

import hashlib
import re
from pathlib import Path
from typing import BinaryIO, Union

from .constants import COPY_BUFFER_SIZE


_HEX64 = re.compile(r"^[0-9a-f]{64}$")


def validate_hex_digest(digest: str) -> str:
    """Validate a sha256 hex digest.

    Accepts an optional "sha256:" scheme prefix and returns the bare
    64-character lowercase hex string.

    Raises:
        ValueError: If the digest is not 64 lowercase hex characters

    Security:
        Digests end up in object keys and local paths; validating the hex
        format prevents path traversal through crafted digests.
    """
    if digest.startswith("sha256:"):
        digest = digest.split(":", 1)[1]
    if not _HEX64.fullmatch(digest):
        raise ValueError(f"Invalid sha256 hex (must be 64 lowercase hex chars): {digest!r}")
    return digest


def to_hex(digest: Union[bytes, str]) -> str:
    """Normalize a raw or hex digest to lowercase hex."""
    if isinstance(digest, bytes):
        if len(digest) != hashlib.sha256().digest_size:
            raise ValueError(f"Invalid sha256 digest length: {len(digest)}")
        return digest.hex()
    return validate_hex_digest(digest)


def compute_stream_digest(stream: BinaryIO) -> str:
    """Compute the sha256 hex digest of a readable binary stream."""
    sha256 = hashlib.sha256()
    for chunk in iter(lambda: stream.read(COPY_BUFFER_SIZE), b""):
        sha256.update(chunk)
    return sha256.hexdigest()


def compute_file_digest(path: Path) -> str:
    """Compute the sha256 hex digest of file contents.

    Args:
        path: Path to file to hash

    Returns:
        64-character lowercase hex digest
    """
    with Path(path).open("rb") as f:
        return compute_stream_digest(f)


class HashingReader:
    """Read-through wrapper that hashes and counts everything read.

    Used when verifying downloads: the consumer (tarfile, copy loop) drives
    the reads and the digest falls out at the end.
    """

    def __init__(self, stream: BinaryIO):
        self._stream = stream
        self._sha256 = hashlib.sha256()
        self.bytes_read = 0

    def read(self, size: int = -1) -> bytes:
        data = self._stream.read(size)
        self._sha256.update(data)
        self.bytes_read += len(data)
        return data

    def drain(self) -> None:
        """Consume the remainder of the stream (e.g. tar padding)."""
        while self.read(COPY_BUFFER_SIZE):
            pass

    def hexdigest(self) -> str:
        return self._sha256.hexdigest()


__all__ = [
    "HashingReader",
    "compute_file_digest",
    "compute_stream_digest",
    "to_hex",
    "validate_hex_digest",
]
