"""Storage-related data models: object keys and object metadata.

Object keys are derived from content only:

    blob/<lowercase hex sha256 of the uncompressed content>.gz

The format is shared with objects already in existing buckets and must not
change. Two blobs with identical content always map to the same key,
whatever their reference name or kind.
"""

from typing import Dict, Mapping, Optional, Union

from pydantic import BaseModel, Field

from .constants import (
    META_IS_DIR,
    META_REFERENCE_NAME,
    META_UNCOMPRESSED_SIZE,
    OBJECT_KEY_PREFIX,
    OBJECT_KEY_SUFFIX,
)
from .hashing import to_hex


def object_key(digest: Union[bytes, str]) -> str:
    """Remote key for a digest (raw bytes or hex)."""
    return f"{OBJECT_KEY_PREFIX}{to_hex(digest)}{OBJECT_KEY_SUFFIX}"


def _normalize_header(name: str) -> str:
    return name.lower().replace("_", "-")


class UploadMetadata(BaseModel):
    """Side-channel metadata attached to uploaded objects.

    Informational for readers; the upload protocol never relies on it.
    """
    uncompressed_size: int = Field(ge=0)
    reference_name: str = ""
    is_dir: bool = False

    @classmethod
    def from_blob(cls, blob) -> "UploadMetadata":
        return cls(
            uncompressed_size=blob.uncompressed_size(),
            reference_name=blob.reference,
            is_dir=blob.is_dir,
        )

    def to_headers(self) -> Dict[str, str]:
        """String-valued metadata fields, as stored on the object."""
        return {
            META_UNCOMPRESSED_SIZE: str(self.uncompressed_size),
            META_REFERENCE_NAME: self.reference_name,
            META_IS_DIR: "true" if self.is_dir else "false",
        }

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> Optional["UploadMetadata"]:
        """Parse stored metadata.

        Names match case-insensitively and "_" stands in for "-", since
        stores differ in what they allow and return (S3 lowercases, Azure
        forbids hyphens). Returns None when the size field is absent or
        not a non-negative integer.
        """
        fields = {_normalize_header(k): v for k, v in headers.items()}
        raw_size = fields.get(_normalize_header(META_UNCOMPRESSED_SIZE))
        if raw_size is None:
            return None
        try:
            size = int(raw_size)
        except ValueError:
            return None
        if size < 0:
            return None
        return cls(
            uncompressed_size=size,
            reference_name=fields.get(_normalize_header(META_REFERENCE_NAME), ""),
            is_dir=fields.get(_normalize_header(META_IS_DIR), "false").lower() == "true",
        )


class RemoteObjectInfo(BaseModel):
    """What the remote store reports about an object."""
    key: str
    size: int                                  # Compressed bytes
    metadata: Optional[UploadMetadata] = None
