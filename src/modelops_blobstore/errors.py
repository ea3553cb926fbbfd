"""Custom exceptions for modelops-blobstore.

This module defines typed exceptions so callers can tell which stage of an
upload failed (allocation, packing, flushing, transfer) without parsing
messages.
"""


class BlobStoreError(RuntimeError):
    """Base class for all blobstore errors."""
    pass


# Local Blob Errors
class ResourceAllocationError(BlobStoreError):
    """Temporary spool storage could not be created."""
    pass


class PackagingError(BlobStoreError):
    """Source could not be read or streamed into a blob."""
    pass


class FlushError(BlobStoreError):
    """Sealing a blob (compressor or spool flush) failed."""
    pass


class UnpackError(BlobStoreError):
    """Archive is corrupt or would write outside its destination."""
    pass


# Store Errors
class StoreError(BlobStoreError):
    """Base class for remote store errors."""
    pass


class NotFoundError(StoreError):
    """Object not found in the remote store."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Object not found: {key}")


class UploadError(StoreError):
    """Transfer to the remote store failed.

    Carries the content digest so the failure can be correlated with a
    specific content address.
    """

    def __init__(self, message: str, digest: str, key: str):
        self.digest = digest
        self.key = key
        super().__init__(f"{message} (digest {digest})")


# Integrity Errors
class IntegrityError(BlobStoreError):
    """Base class for data integrity errors."""
    pass


class DigestMismatchError(IntegrityError):
    """Downloaded content doesn't match its address."""

    def __init__(self, key: str, expected: str, actual: str):
        self.key = key
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Digest verification failed for {key}\n"
            f"  Expected: {expected}\n"
            f"  Got:      {actual}\n"
            f"The object may be corrupted or tampered with."
        )


# Configuration Errors
class ConfigError(BlobStoreError):
    """Invalid configuration or store client construction failure."""
    pass
