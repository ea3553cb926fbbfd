"""Remote store adapters."""

from .base import RemoteStore, TransferCallback
from .factory import make_remote_store
from .fs import FilesystemRemoteStore

__all__ = ["FilesystemRemoteStore", "RemoteStore", "TransferCallback", "make_remote_store"]
