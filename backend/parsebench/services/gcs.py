"""Google Cloud Storage asset store for inlined images."""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Optional, Protocol

from google.cloud import storage

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)


class ObjectStore(Protocol):
    async def store(self, data: bytes, content_type: str, name: str) -> Optional[str]:
        """Persist ``data`` and return a durable URL, or None when unavailable."""


class NullAssetStore:
    """Storage not configured: every asset falls back to inline encoding."""

    async def store(self, data: bytes, content_type: str, name: str) -> Optional[str]:
        return None


class GCSAssetStore:
    """Wrapper around google-cloud-storage for public asset uploads.

    Uploads are best-effort: any failure is logged and reported as None so
    callers fall back to data URIs.
    """

    def __init__(
        self,
        bucket_name: str,
        prefix: str = "parse-benchmark",
        public_base_url: str = "https://storage.googleapis.com",
        client: Optional[storage.Client] = None,
    ) -> None:
        self.bucket_name = bucket_name
        self.prefix = prefix.strip("/")
        self.public_base_url = public_base_url.rstrip("/")
        self._client = client
        self._bucket: Optional[storage.Bucket] = None

    def _get_bucket(self) -> storage.Bucket:
        # Created lazily: constructing a client needs credentials
        if self._bucket is None:
            if self._client is None:
                self._client = storage.Client()
            self._bucket = self._client.bucket(self.bucket_name)
        return self._bucket

    def blob_path(self, name: str) -> str:
        unique = f"{uuid.uuid4().hex}-{name.replace('/', '_')}"
        return f"{self.prefix}/{unique}" if self.prefix else unique

    def public_url(self, blob_path: str) -> str:
        return f"{self.public_base_url}/{self.bucket_name}/{blob_path}"

    def upload_bytes(self, blob_path: str, data: bytes, content_type: str) -> str:
        blob = self._get_bucket().blob(blob_path)
        blob.upload_from_string(data, content_type=content_type)
        return self.public_url(blob_path)

    async def store(self, data: bytes, content_type: str, name: str) -> Optional[str]:
        path = self.blob_path(name)
        try:
            url = await asyncio.to_thread(self.upload_bytes, path, data, content_type)
        except Exception as exc:
            logger.warning("[assets] upload of %s to gs://%s failed: %s", name, self.bucket_name, exc)
            return None
        logger.info("[assets] uploaded %s -> %s", name, url)
        return url


def get_asset_store(settings: Optional[Settings] = None) -> ObjectStore:
    settings = settings or get_settings()
    if not settings.ASSET_BUCKET:
        logger.debug("[assets] ASSET_BUCKET not set, assets will be inlined as data URIs")
        return NullAssetStore()
    return GCSAssetStore(settings.ASSET_BUCKET, settings.ASSET_PREFIX, settings.ASSET_PUBLIC_BASE_URL)
