"""Constants for modelops-blobstore."""

# Remote object keys: blob/<lowercase hex sha256>.gz
OBJECT_KEY_PREFIX = "blob/"
OBJECT_KEY_SUFFIX = ".gz"

CONTENT_TYPE = "application/gzip"

# Object metadata field names
META_UNCOMPRESSED_SIZE = "Uncompressed-Size"
META_REFERENCE_NAME = "Reference-Name"
META_IS_DIR = "Is-Dir"

# gzip level 9 is best compression
DEFAULT_COMPRESS_LEVEL = 9

# Reusable buffer size for stream copies
COPY_BUFFER_SIZE = 32 * 1024

# Configuration
APP_NAME = "modelops-blobstore"
CONFIG_FILE = "config.yaml"
CONFIG_ENV_VAR = "MODELOPS_BLOBSTORE_CONFIG"
EXCLUDE_FILE = ".blobignore"

VERSION = "0.1.0"
