"""Service layer types for modelops-blobstore."""

from typing import Protocol

from pydantic import BaseModel


class UploadResult(BaseModel):
    """Result of an upload operation."""
    digest: str             # sha256 hex of the uncompressed content
    key: str                # blob/<digest>.gz
    size: int               # Compressed bytes
    uncompressed_size: int
    is_dir: bool
    reference: str = ""
    uploaded: bool          # False when an identical object already existed


class DownloadResult(BaseModel):
    """Result of a fetch operation."""
    digest: str
    key: str
    dest: str
    size: int               # Compressed bytes downloaded
    uncompressed_size: int
    is_dir: bool


class ProgressCallback(Protocol):
    """Progress reporting interface for uploads."""

    def on_upload_start(self, key: str, total: int) -> None:
        """Called before the transfer starts."""
        ...

    def on_progress(self, key: str, transferred: int) -> None:
        """Called with the cumulative number of bytes transferred."""
        ...

    def on_upload_complete(self, key: str) -> None:
        """Called when the transfer finished, successfully or not."""
        ...
