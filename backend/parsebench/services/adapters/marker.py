"""Datalab Marker batch OCR adapter.

Marker returns everything (markdown, html, block JSON, base64 images) in the
final poll payload, so collecting the result needs no extra request.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ...config import Settings, get_settings
from ...documents import Document
from ...exceptions import UpstreamError
from ...providers import ProviderConfig
from .base import ERROR, PENDING, SUCCESS, PollingAdapter, PollStatus, ProviderJob
from .raw import MarkerRaw

logger = logging.getLogger(__name__)


class MarkerAdapter(PollingAdapter):
    label = "Datalab Marker"
    accepts_url = True

    def __init__(self, config: ProviderConfig, settings: Optional[Settings] = None, **kwargs: Any) -> None:
        settings = settings or get_settings()
        kwargs.setdefault("poll_interval", settings.MARKER_POLL_INTERVAL_SEC)
        kwargs.setdefault("max_attempts", settings.MARKER_MAX_ATTEMPTS)
        super().__init__(config, settings, **kwargs)
        self.endpoint = settings.DATALAB_MARKER_API.rstrip("/")
        self._check_urls: Dict[str, str] = {}

    def _headers(self) -> Dict[str, str]:
        return {"X-API-Key": self._require_key(self.settings.DATALAB_API_KEY), "Accept": "application/json"}

    async def _submit(self, client: httpx.AsyncClient, document: Document) -> str:
        headers = self._headers()
        form = {
            # tier/mode, e.g. "fast" | "balanced" | "accurate"
            "mode": self.config.model_id,
            "output_format": "markdown,html,json",
            # 0-indexed, so "0-1" means pages 1-2
            "page_range": f"0-{max(1, self.settings.MAX_PDF_PAGES) - 1}",
        }
        kwargs: Dict[str, Any] = {"headers": headers, "data": form}
        if document.has_bytes:
            kwargs["files"] = {"file": (document.filename, document.data, document.media_type)}
        elif document.source_url:
            # plain multipart field (no filename) keeps the request multipart
            kwargs["files"] = {"file_url": (None, document.source_url)}
        else:
            raise UpstreamError(f"{self.label}: No file or URL provided")

        resp = await self._request(client, "POST", self.endpoint, failure="Failed to submit document", **kwargs)
        data = self._json(resp, "Failed to submit document") or {}
        if not data.get("success", False) or not data.get("request_id"):
            raise UpstreamError(f"{self.label}: {data.get('error') or 'Submission failed'}")
        request_id = str(data["request_id"])
        if data.get("request_check_url"):
            self._check_urls[request_id] = str(data["request_check_url"])
        return request_id

    async def _poll(self, client: httpx.AsyncClient, job: ProviderJob) -> PollStatus:
        url = self._check_urls.get(job.job_id) or f"{self.endpoint}/{job.job_id}"
        resp = await self._request(client, "GET", url, failure="Failed to check result status", headers=self._headers())
        data = self._json(resp, "Failed to check result status") or {}
        status = str(data.get("status", "")).lower()
        if status == "complete":
            if not data.get("success", True):
                return PollStatus(ERROR, data, data.get("error") or "Processing failed")
            return PollStatus(SUCCESS, data)
        if status in ("error", "failed"):
            return PollStatus(ERROR, data, data.get("error") or "Processing failed")
        return PollStatus(PENDING, data)

    async def _collect(self, client: httpx.AsyncClient, job: ProviderJob, status: PollStatus) -> MarkerRaw:
        return MarkerRaw(request_id=job.job_id, payload=status.payload)
