"""Factory for creating remote store instances."""

from pathlib import Path

from ..config import StoreConfig
from ..errors import ConfigError
from .azure import AzureRemoteStore
from .base import RemoteStore
from .fs import FilesystemRemoteStore
from .s3 import S3RemoteStore


def validate_azure_config(config: StoreConfig) -> None:
    """
    Early validation of Azure configuration.

    Raises:
        ConfigError: If configuration is invalid
    """
    if not config.bucket:
        raise ConfigError("bucket (container name) required for Azure blob storage")

    if not config.connection_string:
        raise ConfigError(
            "Set AZURE_STORAGE_CONNECTION_STRING or connection_string "
            "for Azure blob storage"
        )


def make_remote_store(config: StoreConfig) -> RemoteStore:
    """
    Create remote store instance based on configuration.

    Bad endpoints or credentials surface as ConfigError rather than
    crashing, so callers can report them and carry on.

    Raises:
        ConfigError: If configuration is invalid or the client can't be built
    """
    if config.provider == "s3":
        if not config.bucket:
            raise ConfigError("bucket required for S3 storage")
        return S3RemoteStore(
            config.bucket,
            endpoint=config.endpoint,
            region=config.region,
            access_key=config.access_key,
            secret_key=config.secret_key,
            ssl=config.ssl,
        )

    elif config.provider == "azure":
        validate_azure_config(config)
        return AzureRemoteStore(config.bucket, connection_string=config.connection_string)

    elif config.provider == "fs":
        if not config.bucket:
            raise ConfigError("bucket (directory path) required for filesystem storage")
        try:
            return FilesystemRemoteStore(Path(config.bucket).expanduser())
        except OSError as e:
            raise ConfigError(f"Cannot use {config.bucket} as store directory: {e}") from e

    else:
        raise ConfigError(f"Provider {config.provider} not supported")
