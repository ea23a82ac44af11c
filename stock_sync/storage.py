"""Blob storage for the SKU list and the run snapshots.

Provides an abstract bucket/key interface with an S3 implementation and a
local-directory implementation for development runs.
"""

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from . import settings
from .exceptions import ConfigurationError, ObjectNotFoundError, StorageError
from .schemas import BlobInfo

logger = logging.getLogger(__name__)


class BlobStore(ABC):
    """Key-value blob store addressed by bucket and key."""

    @abstractmethod
    def read(self, bucket: str, key: str) -> bytes:
        """Return the object's content.

        Raises:
            ObjectNotFoundError: If nothing exists at bucket/key.
            StorageError: For any other failure.
        """
        pass

    @abstractmethod
    def write(
        self, bucket: str, key: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> None:
        """Store `data` at bucket/key in a single put, replacing any old object."""
        pass

    @abstractmethod
    def list_objects(self, bucket: str, prefix: str = "") -> Iterator[BlobInfo]:
        """Yield every object whose key starts with `prefix`.

        Implementations page through the backend listing until it is exhausted.
        """
        pass

    @abstractmethod
    def delete(self, bucket: str, key: str) -> None:
        pass


class S3BlobStore(BlobStore):
    def __init__(self, client=None, region: str = settings.AWS_REGION):
        if client is None:
            client = boto3.client(
                "s3",
                region_name=region,
                config=Config(
                    connect_timeout=settings.S3_CONNECT_TIMEOUT,
                    read_timeout=settings.S3_READ_TIMEOUT,
                    retries={"max_attempts": 3, "mode": "standard"},
                ),
            )
            logger.info(f"S3 client initialized with region: {region}")
        self.client = client

    def read(self, bucket: str, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=bucket, Key=key)
            return response["Body"].read()
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in ("NoSuchKey", "404", "NotFound"):
                raise ObjectNotFoundError(f"s3://{bucket}/{key} not found") from e
            raise StorageError(f"Failed to read s3://{bucket}/{key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to read s3://{bucket}/{key}: {e}") from e

    def write(
        self, bucket: str, key: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> None:
        try:
            self.client.put_object(Bucket=bucket, Key=key, Body=data, ContentType=content_type)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to write s3://{bucket}/{key}: {e}") from e

    def list_objects(self, bucket: str, prefix: str = "") -> Iterator[BlobInfo]:
        # S3 returns at most 1000 keys per call; the paginator follows the
        # continuation tokens.
        paginator = self.client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    yield BlobInfo(
                        key=obj["Key"],
                        last_modified=obj["LastModified"],
                        size=obj.get("Size", 0),
                    )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to list s3://{bucket}/{prefix}: {e}") from e

    def delete(self, bucket: str, key: str) -> None:
        try:
            self.client.delete_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to delete s3://{bucket}/{key}: {e}") from e


class LocalBlobStore(BlobStore):
    """
    Buckets are sub-directories of `root_dir`; keys are relative paths.
    Used for local runs and tests.
    """

    def __init__(self, root_dir: Path | str = settings.LOCAL_STORAGE_DIR):
        self.root_dir = Path(root_dir).resolve()
        self.root_dir.mkdir(parents=True, exist_ok=True)

    def _resolve(self, *parts: str) -> Path:
        path = self.root_dir.joinpath(*parts).resolve()
        # Keys must stay inside the storage root
        try:
            path.relative_to(self.root_dir)
        except ValueError:
            raise StorageError(f"Path escapes storage root: {'/'.join(parts)}") from None
        return path

    def read(self, bucket: str, key: str) -> bytes:
        path = self._resolve(bucket, key)
        if not path.is_file():
            raise ObjectNotFoundError(f"{bucket}/{key} not found")
        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read {bucket}/{key}: {e}") from e

    def write(
        self, bucket: str, key: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> None:
        path = self._resolve(bucket, key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # Write to a temp file and rename so readers never see a partial object.
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write {bucket}/{key}: {e}") from e

    def list_objects(self, bucket: str, prefix: str = "") -> Iterator[BlobInfo]:
        bucket_dir = self._resolve(bucket)
        if not bucket_dir.is_dir():
            return
        try:
            paths = sorted(p for p in bucket_dir.rglob("*") if p.is_file())
            for path in paths:
                key = path.relative_to(bucket_dir).as_posix()
                if path.name.startswith(".tmp-") or not key.startswith(prefix):
                    continue
                stat = path.stat()
                yield BlobInfo(
                    key=key,
                    last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                    size=stat.st_size,
                )
        except OSError as e:
            raise StorageError(f"Failed to list {bucket}/{prefix}: {e}") from e

    def delete(self, bucket: str, key: str) -> None:
        path = self._resolve(bucket, key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete {bucket}/{key}: {e}") from e


def build_blob_store(backend: Optional[str] = None) -> BlobStore:
    backend = (backend or settings.STORAGE_BACKEND).lower()
    if backend == "s3":
        return S3BlobStore()
    if backend == "local":
        return LocalBlobStore(settings.LOCAL_STORAGE_DIR)
    raise ConfigurationError(f"Unknown STORAGE_BACKEND '{backend}' (expected 's3' or 'local').")
