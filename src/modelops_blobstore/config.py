"""Store configuration helpers.

Configuration is a small YAML file:

    provider: s3            # "s3" | "azure" | "fs"
    bucket: my-bucket       # bucket, container or directory
    endpoint: play.min.io   # S3-compatible endpoint (optional)
    access_key: ...
    secret_key: ...
    ssl: true
    compress_level: 9

Lookup order: explicit path > $MODELOPS_BLOBSTORE_CONFIG > user config dir.
"""

import os
from pathlib import Path
from typing import Literal, Optional

import platformdirs
import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from .constants import APP_NAME, CONFIG_ENV_VAR, CONFIG_FILE, DEFAULT_COMPRESS_LEVEL
from .errors import ConfigError


class StoreConfig(BaseModel):
    """Remote store and encoder configuration."""

    provider: Literal["s3", "azure", "fs"] = "fs"
    bucket: str = ""                # Bucket (s3), container (azure) or directory (fs)

    # S3
    endpoint: str = ""              # host[:port] or URL; empty for AWS
    region: str = ""
    access_key: str = ""            # Empty = default credential chain
    secret_key: str = ""
    ssl: bool = True

    # Azure (falls back to AZURE_STORAGE_CONNECTION_STRING)
    connection_string: str = ""

    # Encoder
    compress_level: int = Field(default=DEFAULT_COMPRESS_LEVEL, ge=0, le=9)
    spool_dir: Optional[Path] = None

    @model_validator(mode="after")
    def fill_connection_string(self):
        """Pick up the Azure connection string from the environment."""
        if self.provider == "azure" and not self.connection_string:
            self.connection_string = os.environ.get("AZURE_STORAGE_CONNECTION_STRING", "")
        return self


def default_config_path() -> Path:
    """Platform-appropriate user config location."""
    return Path(platformdirs.user_config_dir(APP_NAME)) / CONFIG_FILE


def load_store_config(path: Optional[Path] = None) -> StoreConfig:
    """Load store configuration from YAML.

    A missing file at the default location yields defaults (local "fs"
    provider); a missing explicit or $MODELOPS_BLOBSTORE_CONFIG file is an
    error.

    Raises:
        ConfigError: If the file is missing, unreadable or invalid
    """
    explicit = path is not None or CONFIG_ENV_VAR in os.environ
    if path is None:
        path = Path(os.environ[CONFIG_ENV_VAR]) if CONFIG_ENV_VAR in os.environ else default_config_path()
    path = Path(path)

    if not path.exists():
        if explicit:
            raise ConfigError(f"Config file not found: {path}")
        return StoreConfig()

    try:
        data = yaml.safe_load(path.read_text()) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Could not read config {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must be a mapping")

    try:
        return StoreConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config {path}:\n{e}") from e
