"""Content-addressed blob uploads to S3, Azure or a local directory."""

from .blob import LocalBlob, reader_to_blob
from .blob_service import BlobService
from .config import StoreConfig, load_store_config
from .constants import VERSION as __version__
from .errors import (
    BlobStoreError,
    ConfigError,
    DigestMismatchError,
    FlushError,
    NotFoundError,
    PackagingError,
    ResourceAllocationError,
    StoreError,
    UnpackError,
    UploadError,
)
from .packing import pack_directory, unpack_tar, zip_to_tar
from .service_types import DownloadResult, UploadResult
from .storage import RemoteStore, make_remote_store
from .storage_models import RemoteObjectInfo, UploadMetadata, object_key

__all__ = [
    "BlobService",
    "BlobStoreError",
    "ConfigError",
    "DigestMismatchError",
    "DownloadResult",
    "FlushError",
    "LocalBlob",
    "NotFoundError",
    "PackagingError",
    "RemoteObjectInfo",
    "RemoteStore",
    "ResourceAllocationError",
    "StoreConfig",
    "StoreError",
    "UnpackError",
    "UploadError",
    "UploadMetadata",
    "UploadResult",
    "load_store_config",
    "make_remote_store",
    "object_key",
    "pack_directory",
    "reader_to_blob",
    "unpack_tar",
    "zip_to_tar",
]
