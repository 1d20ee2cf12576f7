"""LlamaParse layout-extraction adapter (upload, poll job, fetch results)."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from ...config import Settings, get_settings
from ...documents import Document
from ...exceptions import ProviderError, UpstreamError
from ...providers import ProviderConfig
from .base import ERROR, PENDING, SUCCESS, PollingAdapter, PollStatus, ProviderJob
from .raw import LlamaParseRaw

logger = logging.getLogger(__name__)

_STATUS_MAP = {
    "PENDING": PENDING,
    "SUCCESS": SUCCESS,
    # Partial results are good enough for a benchmark
    "PARTIAL_SUCCESS": SUCCESS,
    "ERROR": ERROR,
    "CANCELED": ERROR,
}


class LlamaParseAdapter(PollingAdapter):
    label = "LlamaParse"

    def __init__(self, config: ProviderConfig, settings: Optional[Settings] = None, **kwargs: Any) -> None:
        settings = settings or get_settings()
        kwargs.setdefault("poll_interval", settings.LLAMAPARSE_POLL_INTERVAL_SEC)
        kwargs.setdefault("max_attempts", settings.LLAMAPARSE_MAX_ATTEMPTS)
        super().__init__(config, settings, **kwargs)
        self.base_url = settings.LLAMAPARSE_API_BASE.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        key = self._require_key(self.settings.LLAMA_PARSE_API_KEY)
        return {"Authorization": f"Bearer {key}", "Accept": "application/json"}

    async def _submit(self, client: httpx.AsyncClient, document: Document) -> str:
        headers = self._headers()
        form = {
            # Layout extraction returns bounding boxes (one extra credit per page)
            "extract_layout": "true",
            "coordinates": "true",
            "target_pages": f"0-{max(1, self.settings.MAX_PDF_PAGES) - 1}",
        }
        files = {"file": (document.filename, document.data, document.media_type)}
        resp = await self._request(
            client,
            "POST",
            f"{self.base_url}/upload",
            failure="Failed to upload file",
            headers=headers,
            data=form,
            files=files,
        )
        data = self._json(resp, "Failed to upload file")
        job_id = data.get("id") if isinstance(data, dict) else None
        if not job_id:
            raise UpstreamError(f"{self.label}: Failed to upload file")
        return str(job_id)

    async def _poll(self, client: httpx.AsyncClient, job: ProviderJob) -> PollStatus:
        resp = await self._request(
            client,
            "GET",
            f"{self.base_url}/job/{job.job_id}",
            failure="Failed to check job status",
            headers=self._headers(),
        )
        data = self._json(resp, "Failed to check job status") or {}
        raw_status = str(data.get("status", "PENDING")).upper()
        return PollStatus(
            state=_STATUS_MAP.get(raw_status, PENDING),
            payload=data,
            message=data.get("error_message"),
        )

    async def _collect(self, client: httpx.AsyncClient, job: ProviderJob, status: PollStatus) -> LlamaParseRaw:
        markdown, json_result = await asyncio.gather(
            self._fetch_markdown(client, job.job_id),
            self._fetch_json(client, job.job_id),
        )
        return LlamaParseRaw(
            job_id=job.job_id,
            markdown=markdown,
            json_result=json_result,
            pages=status.payload.get("num_pages"),
        )

    async def _fetch_markdown(self, client: httpx.AsyncClient, job_id: str) -> str:
        resp = await self._request(
            client,
            "GET",
            f"{self.base_url}/job/{job_id}/result/markdown",
            failure="Failed to get markdown results",
            headers=self._headers(),
        )
        data = self._json(resp, "Failed to get markdown results") or {}
        return data.get("markdown") or ""

    async def _fetch_json(self, client: httpx.AsyncClient, job_id: str) -> Optional[Dict[str, Any]]:
        """Structured JSON is optional: any failure yields None instead of failing the job."""
        try:
            resp = await self._request(
                client,
                "GET",
                f"{self.base_url}/job/{job_id}/result/json",
                failure="Failed to get JSON results",
                headers=self._headers(),
            )
            data = self._json(resp, "Failed to get JSON results")
        except ProviderError as exc:
            logger.warning("[%s][%s] structured JSON unavailable, continuing without blocks: %s", self.config.id, job_id, exc)
            return None
        return data if isinstance(data, dict) else None
