"""Object Storage — S3-compatible client for Cloudflare R2.

Invariants:
    - Keys are {workspace_id}/{folder}/{uuid}.{ext}; the original filename
      lives only in object metadata and the source_materials row
    - Only ALLOWED_MIME_TYPES up to MAX_FILE_SIZE are accepted
    - Every botocore failure surfaces as StorageError

Design Decisions:
    - boto3 is blocking: each call runs in a worker thread (asyncio.to_thread)
      so request handlers never stall the event loop
    - R2 public URL, when configured, replaces presigned download URLs
"""

import asyncio
import logging
import uuid
from functools import lru_cache

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from tutorassist.config import get_settings
from tutorassist.core.domain_types import StorageFolder
from tutorassist.core.errors import StorageError, ValidationFailedError

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = frozenset({
    "application/pdf",
    "image/png",
    "image/jpeg",
    "image/gif",
    "image/webp",
    "text/plain",
    "text/markdown",
})
MAX_FILE_SIZE = 50 * 1024 * 1024
UPLOAD_URL_EXPIRES = 3600
DOWNLOAD_URL_EXPIRES = 3600
UPLOAD_RESULT_URL_EXPIRES = 7 * 24 * 3600


def validate_upload(content_type: str, size: int | None = None) -> None:
    if content_type not in ALLOWED_MIME_TYPES:
        raise ValidationFailedError(f"File type not allowed: {content_type}", "file")
    if size is not None and size > MAX_FILE_SIZE:
        raise ValidationFailedError(
            f"File too large. Maximum size is {MAX_FILE_SIZE // (1024 * 1024)}MB", "file",
        )


def build_key(workspace_id: str, folder: StorageFolder | str, filename: str) -> str:
    ext = filename.rsplit(".", 1)[-1] if "." in filename else ""
    folder_name = folder.value if isinstance(folder, StorageFolder) else folder
    return f"{workspace_id}/{folder_name}/{uuid.uuid4()}.{ext}"


class ObjectStorage:
    """R2 bucket operations for one bucket."""

    def __init__(
        self,
        account_id: str,
        access_key_id: str,
        secret_access_key: str,
        bucket: str,
        public_url: str | None = None,
    ):
        self._bucket = bucket
        self._public_url = public_url.rstrip("/") if public_url else None
        self._client = boto3.client(
            "s3",
            endpoint_url=f"https://{account_id}.r2.cloudflarestorage.com",
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name="auto",
            config=Config(signature_version="s3v4"),
        )

    async def _run(self, operation: str, fn, **kwargs):
        try:
            return await asyncio.to_thread(fn, **kwargs)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"R2 {operation} failed: {e}")
            raise StorageError(str(e), operation)

    async def upload(
        self,
        workspace_id: str,
        folder: StorageFolder,
        data: bytes,
        filename: str,
        content_type: str,
    ) -> dict:
        """Validate, upload, and return {key, url}."""
        validate_upload(content_type, len(data))
        key = build_key(workspace_id, folder, filename)
        await self._run(
            "upload", self._client.put_object,
            Bucket=self._bucket, Key=key, Body=data, ContentType=content_type,
            Metadata={"workspace-id": workspace_id, "original-filename": filename},
        )
        url = await self.download_url(key, UPLOAD_RESULT_URL_EXPIRES)
        return {"key": key, "url": url}

    async def upload_url(
        self,
        workspace_id: str,
        folder: StorageFolder,
        filename: str,
        content_type: str,
        expires_in: int = UPLOAD_URL_EXPIRES,
    ) -> dict:
        validate_upload(content_type)
        key = build_key(workspace_id, folder, filename)
        url = await self._run(
            "presign_upload", self._client.generate_presigned_url,
            ClientMethod="put_object",
            Params={
                "Bucket": self._bucket,
                "Key": key,
                "ContentType": content_type,
                "Metadata": {"workspace-id": workspace_id, "original-filename": filename},
            },
            ExpiresIn=expires_in,
        )
        return {"key": key, "upload_url": url}

    async def download_url(self, key: str, expires_in: int = DOWNLOAD_URL_EXPIRES) -> str:
        if self._public_url:
            return f"{self._public_url}/{key}"
        return await self._run(
            "presign_download", self._client.generate_presigned_url,
            ClientMethod="get_object",
            Params={"Bucket": self._bucket, "Key": key},
            ExpiresIn=expires_in,
        )

    async def read(self, key: str) -> bytes:
        response = await self._run(
            "read", self._client.get_object, Bucket=self._bucket, Key=key,
        )
        return await asyncio.to_thread(response["Body"].read)

    async def delete(self, key: str) -> None:
        await self._run(
            "delete", self._client.delete_object, Bucket=self._bucket, Key=key,
        )

    async def exists(self, key: str) -> bool:
        try:
            await asyncio.to_thread(
                self._client.head_object, Bucket=self._bucket, Key=key,
            )
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise StorageError(str(e), "exists")


@lru_cache
def get_object_storage() -> ObjectStorage:
    settings = get_settings()
    return ObjectStorage(
        account_id=settings.r2_account_id,
        access_key_id=settings.r2_access_key_id,
        secret_access_key=settings.r2_secret_access_key,
        bucket=settings.r2_bucket_name,
        public_url=settings.r2_public_url,
    )
