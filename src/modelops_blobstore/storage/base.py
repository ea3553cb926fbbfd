"""Base protocol for remote store implementations."""

from pathlib import Path
from typing import Callable, Optional, Protocol

from ..storage_models import RemoteObjectInfo, UploadMetadata

# Called with the cumulative number of bytes transferred
TransferCallback = Callable[[int], None]


class RemoteStore(Protocol):
    """
    Protocol for remote object stores.

    Keys are flat strings; no directory semantics are required. Retries,
    authentication and wire details belong to the underlying client.
    """

    def stat(self, key: str) -> RemoteObjectInfo:
        """
        Look up an object.

        Args:
            key: Object key

        Returns:
            RemoteObjectInfo with the stored (compressed) size and metadata

        Raises:
            NotFoundError: If no object exists at key
            StoreError: For any other lookup failure
        """
        ...

    def put(
        self,
        key: str,
        path: Path,
        metadata: UploadMetadata,
        progress: Optional[TransferCallback] = None,
    ) -> None:
        """
        Upload a local file as a gzip object.

        Args:
            key: Object key
            path: Local file to upload
            metadata: Metadata stored alongside the object
            progress: Optional callback receiving bytes transferred so far

        Raises:
            StoreError: If the transfer fails
        """
        ...

    def get(self, key: str, dest: Path) -> None:
        """
        Download an object to a local file.

        Raises:
            NotFoundError: If no object exists at key
            StoreError: For any other failure
        """
        ...

    def delete(self, key: str) -> None:
        """
        Delete an object.

        Raises:
            StoreError: If the delete fails
        """
        ...
