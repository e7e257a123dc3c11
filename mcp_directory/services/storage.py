from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import quote

import httpx

from mcp_directory.core.config import get_settings

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS: dict[str, str] = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
}


class StorageError(Exception):
    """Base object storage error."""


class StorageUnavailableError(StorageError):
    """Raised when storage is not configured, unreachable or rejects the upload."""


class StorageBucketNotFoundError(StorageError):
    """Raised when the target bucket does not exist."""


class StoragePermissionError(StorageError):
    """Raised when the storage policies reject the caller."""


@dataclass(slots=True)
class StoredObject:
    bucket: str
    path: str
    public_url: str


class SupabaseStorage:
    def __init__(
        self,
        supabase_url: str | None,
        api_key: str | None,
        timeout_seconds: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.supabase_url = supabase_url.rstrip("/") if supabase_url else None
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def public_url(self, bucket: str, path: str) -> str:
        base_url = self._require_base_url()
        return f"{base_url}/storage/v1/object/public/{quote(bucket)}/{quote(path)}"

    async def upload(
        self,
        *,
        bucket: str,
        path: str,
        content: bytes,
        content_type: str,
        access_token: str | None = None,
    ) -> StoredObject:
        base_url = self._require_base_url()
        if not self.api_key:
            raise StorageUnavailableError("Supabase storage is not configured")

        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {access_token or self.api_key}",
            "Content-Type": content_type,
            "Cache-Control": "3600",
            "x-upsert": "false",
        }
        url = f"{base_url}/storage/v1/object/{quote(bucket)}/{quote(path)}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.post(url, content=content, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("storage upload failed bucket=%s path=%s error=%s", bucket, path, exc)
            raise StorageUnavailableError("storage upload unavailable") from exc

        if response.status_code in {200, 201}:
            logger.info("stored object bucket=%s path=%s bytes=%s", bucket, path, len(content))
            return StoredObject(bucket=bucket, path=path, public_url=self.public_url(bucket, path))

        detail = _error_detail(response)
        logger.error(
            "storage upload rejected bucket=%s path=%s status=%s detail=%s",
            bucket,
            path,
            response.status_code,
            detail,
        )
        if response.status_code == 404 or "bucket not found" in detail.lower():
            raise StorageBucketNotFoundError(f"storage bucket '{bucket}' not found")
        if response.status_code in {401, 403}:
            raise StoragePermissionError("permission denied by storage policies")
        raise StorageUnavailableError(f"storage upload failed with status {response.status_code}")

    def _require_base_url(self) -> str:
        if not self.supabase_url:
            raise StorageUnavailableError("Supabase storage is not configured")
        return self.supabase_url


def build_object_path(owner_id: str, content_type: str) -> str:
    extension = IMAGE_EXTENSIONS.get(content_type, "bin")
    return f"{owner_id}/{uuid.uuid4().hex}.{extension}"


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text
    if isinstance(payload, dict):
        for key in ("message", "error", "detail"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    return response.text


@lru_cache
def get_storage() -> SupabaseStorage:
    settings = get_settings()
    return SupabaseStorage(
        supabase_url=settings.supabase_url,
        api_key=settings.supabase_anon_key,
        timeout_seconds=settings.storage_timeout_seconds,
    )
