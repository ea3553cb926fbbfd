"""S3-compatible remote store implementation (AWS S3, MinIO, ...)."""

import logging
from pathlib import Path
from typing import Optional

import boto3
from boto3.exceptions import Boto3Error
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..constants import CONTENT_TYPE
from ..errors import ConfigError, NotFoundError, StoreError
from ..storage_models import RemoteObjectInfo, UploadMetadata
from .base import TransferCallback

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}

# Keep transfers on the caller's thread
_TRANSFER_CONFIG = TransferConfig(use_threads=False)


def _is_not_found(err: ClientError) -> bool:
    return str(err.response.get("Error", {}).get("Code")) in _NOT_FOUND_CODES


class S3RemoteStore:
    """
    S3 bucket as a remote store.

    Keys are used as-is (blob/<sha256>.gz); metadata travels as
    x-amz-meta-* headers.
    """

    def __init__(
        self,
        bucket: str,
        endpoint: str = "",
        region: str = "",
        access_key: str = "",
        secret_key: str = "",
        ssl: bool = True,
        client=None,
    ):
        """
        Initialize S3 store.

        Args:
            bucket: Bucket name
            endpoint: Host[:port] or URL of an S3-compatible service; empty for AWS
            region: Region name; empty to use the environment default
            access_key: Access key; empty to use the default credential chain
            secret_key: Secret key; empty to use the default credential chain
            ssl: Use https when endpoint has no scheme
            client: Pre-built boto3 S3 client (tests, custom sessions)

        Raises:
            ConfigError: If the client cannot be constructed
        """
        if not bucket:
            raise ConfigError("bucket required for S3 storage")
        self.bucket = bucket

        if client is None:
            endpoint_url = None
            if endpoint:
                endpoint_url = endpoint if "://" in endpoint else f"{'https' if ssl else 'http'}://{endpoint}"
            try:
                client = boto3.client(
                    "s3",
                    endpoint_url=endpoint_url,
                    region_name=region or None,
                    aws_access_key_id=access_key or None,
                    aws_secret_access_key=secret_key or None,
                    use_ssl=ssl,
                )
            except (BotoCoreError, ValueError) as e:
                raise ConfigError(f"Could not create S3 client for {endpoint or 'AWS'}: {e}") from e
        self.client = client

    def stat(self, key: str) -> RemoteObjectInfo:
        try:
            head = self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _is_not_found(e):
                raise NotFoundError(key) from e
            raise StoreError(f"Could not stat s3://{self.bucket}/{key}: {e}") from e
        except BotoCoreError as e:
            raise StoreError(f"Could not stat s3://{self.bucket}/{key}: {e}") from e

        return RemoteObjectInfo(
            key=key,
            size=int(head["ContentLength"]),
            metadata=UploadMetadata.from_headers(head.get("Metadata") or {}),
        )

    def put(
        self,
        key: str,
        path: Path,
        metadata: UploadMetadata,
        progress: Optional[TransferCallback] = None,
    ) -> None:
        transferred = 0

        def _callback(nbytes: int) -> None:
            # boto3 reports increments; callers want running totals
            nonlocal transferred
            transferred += nbytes
            if progress:
                progress(transferred)

        try:
            self.client.upload_file(
                str(path),
                self.bucket,
                key,
                ExtraArgs={
                    "ContentType": CONTENT_TYPE,
                    "Metadata": metadata.to_headers(),
                },
                Callback=_callback,
                Config=_TRANSFER_CONFIG,
            )
        except (ClientError, BotoCoreError, Boto3Error, OSError) as e:
            raise StoreError(f"Could not upload s3://{self.bucket}/{key}: {e}") from e
        logger.debug("Uploaded s3://%s/%s (%d bytes)", self.bucket, key, transferred)

    def get(self, key: str, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        try:
            self.client.download_file(self.bucket, key, str(dest), Config=_TRANSFER_CONFIG)
        except ClientError as e:
            if _is_not_found(e):
                raise NotFoundError(key) from e
            raise StoreError(f"Could not download s3://{self.bucket}/{key}: {e}") from e
        except (BotoCoreError, Boto3Error, OSError) as e:
            raise StoreError(f"Could not download s3://{self.bucket}/{key}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"Could not delete s3://{self.bucket}/{key}: {e}") from e
