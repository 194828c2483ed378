"""
Object Storage

Document blobs are stored under opaque keys; the database keeps only the
key, content hash and metadata. Two backends are available, selected by
``STORAGE_BACKEND``:

- ``local``: files under ``UPLOAD_DIR`` (development and tests)
- ``s3``: an S3 bucket via boto3, downloads served with presigned URLs

The backend is constructed once in the application lifespan and injected
with ``get_storage``.
"""

import asyncio
import logging
import uuid
from pathlib import Path, PurePosixPath
from typing import Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import Request

from eacz_registry.core.config import settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a blob cannot be stored or addressed."""


class ObjectStorage(Protocol):
    async def put(self, key: str, data: bytes, content_type: str) -> None: ...

    async def presigned_url(self, key: str) -> str: ...


def build_storage_key(application_id: str, doc_type: str, filename: str) -> str:
    """
    Build an opaque storage key for an uploaded document.

    Only the extension of the client filename is kept.
    """
    suffix = PurePosixPath(filename).suffix.lower()
    if not suffix.isascii() or len(suffix) > 10:
        suffix = ""
    return f"applications/{application_id}/{doc_type}/{uuid.uuid4().hex}{suffix}"


class LocalObjectStorage:
    """Store blobs on the local filesystem."""

    def __init__(self, root: str | Path, base_url: str):
        self.root = Path(root).resolve()
        self.base_url = base_url.rstrip("/")

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root):
            raise StorageError(f"Storage key escapes upload directory: {key}")
        return path

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        path = self._path(key)

        def write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(write)
        logger.debug(f"Stored {len(data)} bytes at {path}")

    async def presigned_url(self, key: str) -> str:
        self._path(key)
        return f"{self.base_url}/uploads/{key}"


class S3ObjectStorage:
    """Store blobs in S3."""

    def __init__(self, bucket: str, region: str | None, expiry_seconds: int, client=None):
        self.bucket = bucket
        self.expiry_seconds = expiry_seconds
        self.client = client or boto3.client("s3", region_name=region)

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"S3 upload failed for {key}: {e}")
            raise StorageError(f"Failed to store object {key}") from e

    async def presigned_url(self, key: str) -> str:
        try:
            return await asyncio.to_thread(
                self.client.generate_presigned_url,
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=self.expiry_seconds,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to presign {key}: {e}")
            raise StorageError(f"Failed to presign object {key}") from e


def build_storage() -> ObjectStorage:
    """Construct the configured storage backend."""
    if settings.storage_backend == "s3":
        if not settings.s3_bucket:
            raise RuntimeError("S3_BUCKET must be set when STORAGE_BACKEND=s3")
        return S3ObjectStorage(
            bucket=settings.s3_bucket,
            region=settings.s3_region,
            expiry_seconds=settings.presign_expiry_seconds,
        )
    return LocalObjectStorage(settings.upload_dir, settings.backend_url)


def get_storage(request: Request) -> ObjectStorage:
    """FastAPI dependency returning the storage backend built at startup."""
    return request.app.state.storage
