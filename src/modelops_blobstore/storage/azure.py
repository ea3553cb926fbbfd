"""Azure blob storage remote store implementation."""

import logging
from pathlib import Path
from typing import Dict, Optional

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.storage.blob import BlobServiceClient, ContentSettings

from ..constants import CONTENT_TYPE
from ..errors import ConfigError, NotFoundError, StoreError
from ..storage_models import RemoteObjectInfo, UploadMetadata
from .base import TransferCallback

logger = logging.getLogger(__name__)


def _azure_metadata(headers: Dict[str, str]) -> Dict[str, str]:
    """Azure metadata names must be C# identifiers: no hyphens."""
    return {name.replace("-", "_"): value for name, value in headers.items()}


class AzureRemoteStore:
    """
    Azure Blob Storage as a remote store.

    Keys are used as blob names within one container (blob/<sha256>.gz).
    """

    def __init__(self, container: str, connection_string: str = "", client=None):
        """
        Initialize Azure remote store.

        Args:
            container: Container name
            connection_string: Azure Storage connection string
            client: Pre-built BlobServiceClient (tests, custom credentials)

        Raises:
            ConfigError: If the client cannot be constructed
        """
        if not container:
            raise ConfigError("container required for Azure blob storage")
        self.container = container

        if client is None:
            try:
                client = BlobServiceClient.from_connection_string(connection_string)
            except (ValueError, AzureError) as e:
                raise ConfigError(f"Invalid Azure storage connection string: {e}") from e
        self.client = client

    def _blob_client(self, key: str):
        return self.client.get_blob_client(container=self.container, blob=key)

    def stat(self, key: str) -> RemoteObjectInfo:
        try:
            props = self._blob_client(key).get_blob_properties()
        except ResourceNotFoundError as e:
            raise NotFoundError(key) from e
        except AzureError as e:
            raise StoreError(f"Could not stat azure://{self.container}/{key}: {e}") from e

        return RemoteObjectInfo(
            key=key,
            size=props.size,
            metadata=UploadMetadata.from_headers(props.metadata or {}),
        )

    def put(
        self,
        key: str,
        path: Path,
        metadata: UploadMetadata,
        progress: Optional[TransferCallback] = None,
    ) -> None:
        def _hook(current: int, total: Optional[int]) -> None:
            if progress:
                progress(current)

        try:
            with open(path, "rb") as f:
                self._blob_client(key).upload_blob(
                    f,
                    overwrite=True,
                    metadata=_azure_metadata(metadata.to_headers()),
                    content_settings=ContentSettings(content_type=CONTENT_TYPE),
                    progress_hook=_hook,
                )
        except (AzureError, OSError) as e:
            raise StoreError(f"Could not upload azure://{self.container}/{key}: {e}") from e
        logger.debug("Uploaded azure://%s/%s", self.container, key)

    def get(self, key: str, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        try:
            downloader = self._blob_client(key).download_blob()
            with open(dest, "wb") as f:
                downloader.readinto(f)
        except ResourceNotFoundError as e:
            raise NotFoundError(key) from e
        except (AzureError, OSError) as e:
            raise StoreError(f"Could not download azure://{self.container}/{key}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._blob_client(key).delete_blob()
        except ResourceNotFoundError:
            logger.debug("Nothing to delete at azure://%s/%s", self.container, key)
        except AzureError as e:
            raise StoreError(f"Could not delete azure://{self.container}/{key}: {e}") from e
