"""
config/storage.py
Blob storage client for partner verification documents.
Objects are written with a single HTTP PUT to an S3-compatible / storage-API endpoint.
"""

import logging
from typing import Optional

import httpx

from config.settings import settings
from shared.utils.errors import StoreError

logger = logging.getLogger(__name__)


class BlobStorage:
    """Uploads raw bytes to `{base_url}/object/{bucket}/{path}`."""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.timeout = timeout
        self.transport = transport

    def object_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/object/{bucket}/{path.lstrip('/')}"

    async def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        """Upload one object. Returns the stored path (relative to the bucket)."""
        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": content_type,
            "x-upsert": "false",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.put(self.object_url(bucket, path), content=content, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Blob upload network error for {bucket}/{path}: {e}")
            raise StoreError("File storage is unavailable") from e

        if resp.status_code not in (200, 201):
            logger.error(f"Blob upload failed for {bucket}/{path}: HTTP {resp.status_code} {resp.text}")
            raise StoreError(f"File upload failed: HTTP {resp.status_code}")

        logger.info(f"Uploaded {bucket}/{path} ({len(content)} bytes)")
        return path


_storage: Optional[BlobStorage] = None


def get_storage() -> BlobStorage:
    """FastAPI dependency to get the blob storage client."""
    global _storage
    if _storage is None:
        _storage = BlobStorage(
            settings.STORAGE_URL,
            settings.STORAGE_SERVICE_KEY,
            timeout=settings.STORAGE_TIMEOUT_SECONDS,
        )
    return _storage
