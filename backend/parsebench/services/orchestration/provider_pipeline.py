from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from ...config import Settings, get_settings
from ...documents import Document
from ...exceptions import FileValidationError, ProviderError, UnsupportedDocumentError
from ...models import ParseOutputs, ParseResponse, ParseStats
from ...pipeline.accounting import build_stats
from ...pipeline.assets import AssetInliner
from ...pipeline.normalization import NormalizedBlocks, normalize_result
from ...pipeline.preprocessing import truncate_document
from ...providers import ProviderConfig, get_provider_config
from ...utils.network import fetch_remote_document
from ..adapters.factory import ADAPTERS, create_adapter
from ..gcs import ObjectStore, get_asset_store

logger = logging.getLogger(__name__)

PDF_SKIP_REASON = "PDF not supported by Vision LLMs"
GENERIC_ERROR = "An error occurred while processing your request"


def sanitize_error(exc: BaseException) -> str:
    """User-visible message for a provider failure.

    Messages labelled with a backend name were written for users and pass
    through; anything else may leak internals and is replaced.
    """
    message = str(exc)
    labels = {cls.label for cls in ADAPTERS.values()}
    if isinstance(exc, ProviderError) and any(message.startswith(f"{label}:") for label in labels):
        return message
    if "API" in message:
        return "Service temporarily unavailable"
    if "timeout" in message.lower():
        return "Request timed out"
    return GENERIC_ERROR


@dataclass
class ProviderRun:
    content: str
    outputs: ParseOutputs
    stats: ParseStats

    def to_response(self) -> ParseResponse:
        return ParseResponse(content=self.content, outputs=self.outputs, stats=self.stats)


class ProviderPipeline:
    """Runs one document through one provider: prepare, dispatch, normalize, inline, account.

    ``adapter_options`` (transport, sleep, clock) are handed to every adapter
    so tests and embedding code can replace the network and the timer.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        store: Optional[ObjectStore] = None,
        max_pages: Optional[int] = None,
        adapter_options: Optional[Dict[str, Any]] = None,
        fetch_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store if store is not None else get_asset_store(self.settings)
        self.max_pages = max_pages if max_pages is not None else self.settings.MAX_PDF_PAGES
        self.adapter_options = dict(adapter_options or {})
        self.fetch_transport = fetch_transport

    def resolve(self, provider_id: str) -> ProviderConfig:
        config = get_provider_config(provider_id)
        if config is None:
            raise FileValidationError("Invalid provider")
        return config

    def needs_download(self, document: Document, config: ProviderConfig) -> bool:
        if document.has_bytes or not document.source_url or config.is_vision_llm:
            return False
        return self.settings.FETCH_REMOTE_DOCUMENTS or not ADAPTERS[config.type].accepts_url

    async def download(self, document: Document) -> Document:
        logger.info("[%s] fetching remote document", document.source_url)
        return await fetch_remote_document(
            document.source_url or "",
            max_bytes=self.settings.max_size_bytes,
            timeout=self.settings.HTTP_TIMEOUT_SEC,
            transport=self.fetch_transport,
        )

    async def prepare(self, document: Document, config: ProviderConfig) -> Document:
        if config.is_vision_llm and document.is_pdf:
            raise UnsupportedDocumentError(PDF_SKIP_REASON)
        if self.needs_download(document, config):
            document = await self.download(document)
        if config.is_parser:
            document = truncate_document(document, self.max_pages)
        return document

    def _normalize(self, config: ProviderConfig, raw: Any) -> NormalizedBlocks:
        try:
            return normalize_result(raw)
        except Exception:
            # Degraded: markdown and stats are still reported
            logger.exception("[%s] block normalization failed, continuing without blocks", config.id)
            return NormalizedBlocks(degraded=True)

    async def run_provider(self, document: Document, provider_id: str) -> ProviderRun:
        """Parse ``document`` with ``provider_id``.

        Raises:
            FileValidationError: unknown provider id, or the remote document is unusable
            UnsupportedDocumentError: the provider cannot take this media type
            ProviderError: the backend failed; ``elapsed_seconds`` is set
        """
        config = self.resolve(provider_id)
        document = await self.prepare(document, config)

        adapter = create_adapter(config, self.settings, **self.adapter_options)
        logger.info("[%s] dispatching %s (%s, %d bytes)", config.id, document.filename, document.media_type, len(document.data))
        raw = await adapter.run(document)

        normalized = self._normalize(config, raw)
        inliner = AssetInliner(self.store, name_prefix=f"{config.id}-")
        inlined = await inliner.inline(raw)
        if normalized.degraded or inlined.unresolved:
            logger.warning(
                "[%s] degraded result: page dimensions missing=%s, unresolved assets=%d",
                config.id,
                normalized.degraded,
                inlined.unresolved,
            )

        stats = build_stats(config, raw)
        outputs = ParseOutputs(
            markdown=inlined.markdown,
            html=inlined.html,
            blocks=normalized.blocks or None,
            pageDimensions=normalized.page_dimensions or None,
        )
        logger.info(
            "[%s] complete in %.2fs: %d chars, %d blocks, cost=%s",
            config.id,
            stats.elapsedSeconds,
            len(outputs.markdown),
            len(normalized.blocks),
            stats.cost,
        )
        return ProviderRun(content=outputs.markdown, outputs=outputs, stats=stats)
