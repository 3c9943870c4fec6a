import asyncio
import shutil
import uuid
from pathlib import Path
from typing import Protocol, runtime_checkable

import aiofiles
import boto3
from botocore.exceptions import ClientError
from loguru import logger

from ..core.config import Settings, StorageBackend


class BlobNotFound(Exception):
    pass


class BlobStoreError(IOError):
    pass


@runtime_checkable
class BlobStore(Protocol):
    async def put(self, data: bytes, key: str, content_type: str) -> str: ...

    async def get(self, handle: str) -> bytes: ...

    async def delete(self, handle: str) -> bool: ...

    async def exists(self, handle: str) -> bool: ...


def build_original_key(asset_id: str, revision: str, filename: str) -> str:
    return f"originals/{asset_id}/{revision}_{filename}"


def build_variant_key(asset_id: str, revision: str, size_name: str, extension: str) -> str:
    return f"variants/{asset_id}/{revision}/{size_name}.{extension}"


class LocalBlobStore:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.root = Path(settings.absolute_storage_dir).resolve()
        self.temp_dir = Path(settings.absolute_temp_dir)
        self._ensure_directories()

    def _ensure_directories(self) -> None:
        for directory in (self.root, self.temp_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def _resolve(self, handle: str) -> Path:
        path = (self.root / handle).resolve()
        if not path.is_relative_to(self.root):
            raise BlobNotFound(f"Handle escapes storage root: {handle}")
        return path

    async def put(self, data: bytes, key: str, content_type: str) -> str:
        target = self._resolve(key)
        temp_path = self.temp_dir / f"{uuid.uuid4().hex}_temp"

        try:
            async with aiofiles.open(temp_path, "wb") as f:
                await f.write(data)

            target.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(shutil.move, str(temp_path), str(target))
            return key

        except asyncio.CancelledError:
            await self._safe_delete_file(temp_path)
            raise
        except Exception as e:
            await self._safe_delete_file(temp_path)
            raise BlobStoreError(f"Failed to store blob {key}: {e}") from e

    async def get(self, handle: str) -> bytes:
        path = self._resolve(handle)
        if not path.is_file():
            raise BlobNotFound(f"Blob not found: {handle}")

        async with aiofiles.open(path, "rb") as f:
            return await f.read()

    async def delete(self, handle: str) -> bool:
        try:
            path = self._resolve(handle)
        except BlobNotFound:
            return False
        deleted = await self._safe_delete_file(path)
        if deleted:
            self._prune_empty_parents(path.parent)
        return deleted

    async def exists(self, handle: str) -> bool:
        try:
            return self._resolve(handle).is_file()
        except BlobNotFound:
            return False

    def _prune_empty_parents(self, directory: Path) -> None:
        while directory != self.root and directory.is_relative_to(self.root):
            try:
                directory.rmdir()
            except OSError:
                return
            directory = directory.parent

    async def _safe_delete_file(self, path: Path) -> bool:
        try:
            if path.exists():
                await asyncio.to_thread(path.unlink)
                return True
            return False
        except OSError as e:
            logger.warning(f"Failed to delete blob file {path}: {e}")
            return False


class S3BlobStore:
    """Blob store over an S3-compatible bucket.

    boto3 is synchronous; every call is pushed to a worker thread.
    """

    def __init__(self, settings: Settings, client=None):
        if not settings.S3_BUCKET:
            raise RuntimeError("S3_BUCKET must be set for the s3 storage backend")

        self.settings = settings
        self.bucket = settings.S3_BUCKET
        self._client = client or boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            region_name=settings.S3_REGION,
        )

    async def put(self, data: bytes, key: str, content_type: str) -> str:
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                ServerSideEncryption="AES256",
            )
            return key
        except ClientError as e:
            raise BlobStoreError(f"Failed to store blob {key}: {e}") from e

    async def get(self, handle: str) -> bytes:
        try:
            response = await asyncio.to_thread(
                self._client.get_object, Bucket=self.bucket, Key=handle
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise BlobNotFound(f"Blob not found: {handle}") from e
            raise BlobStoreError(f"Failed to read blob {handle}: {e}") from e

        return await asyncio.to_thread(response["Body"].read)

    async def delete(self, handle: str) -> bool:
        try:
            await asyncio.to_thread(
                self._client.delete_object, Bucket=self.bucket, Key=handle
            )
            return True
        except ClientError as e:
            logger.warning(f"Failed to delete blob {handle}: {e}")
            return False

    async def exists(self, handle: str) -> bool:
        try:
            await asyncio.to_thread(
                self._client.head_object, Bucket=self.bucket, Key=handle
            )
            return True
        except ClientError:
            return False


def create_blob_store(settings: Settings) -> BlobStore:
    if settings.STORAGE_BACKEND == StorageBackend.S3:
        return S3BlobStore(settings)
    return LocalBlobStore(settings)
