"""Cost and time accounting for provider results."""
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from ..models import ParseStats
from ..providers import FALLBACK_PAGE_PRICE, PAGE_PRICING, TOKEN_PRICING, ProviderConfig
from ..services.adapters.raw import LlamaParseRaw, MarkerRaw, MistralRaw, RawResult, VisionLLMRaw

logger = logging.getLogger(__name__)

# Keeps float noise (3 * 0.003 = 0.009000000000000001) out of reported costs
COST_DECIMALS = 8


def page_cost(pages: int, price_key: str, pricing: Mapping[str, float] = PAGE_PRICING) -> float:
    """``pages x pricePerPage``; unknown tiers use a minimal non-zero rate."""
    price = pricing.get(price_key)
    if price is None:
        logger.warning("No per-page price for %r, using fallback %s", price_key, FALLBACK_PAGE_PRICE)
        price = FALLBACK_PAGE_PRICE
    return round(pages * price, COST_DECIMALS)


def token_cost(
    provider_id: str,
    input_tokens: int,
    output_tokens: int,
    pricing: Mapping[str, Mapping[str, float]] = TOKEN_PRICING,
) -> float:
    """Per-million-token cost. Unknown models cost nothing per token but are logged."""
    price = pricing.get(provider_id)
    if price is None:
        logger.warning("No token price for %r", provider_id)
        return 0.0
    cost = input_tokens / 1e6 * price.get("input", 0) + output_tokens / 1e6 * price.get("output", 0)
    return round(cost, COST_DECIMALS)


def _positive_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)) and value >= 1:
        return int(value)
    return None


def pages_processed(raw: RawResult) -> int:
    """Backend-reported page count, else the number of returned pages, else 1."""
    reported: Optional[int] = None
    returned: Optional[int] = None
    if isinstance(raw, LlamaParseRaw):
        reported = _positive_int(raw.pages)
        returned = _positive_int(len((raw.json_result or {}).get("pages") or []))
    elif isinstance(raw, MarkerRaw):
        payload = raw.payload or {}
        reported = _positive_int(payload.get("page_count"))
        metadata = payload.get("metadata") or {}
        if isinstance(metadata, Mapping):
            returned = _positive_int(len(metadata.get("pages") or []))
    elif isinstance(raw, MistralRaw):
        payload = raw.payload or {}
        usage = payload.get("usage_info") or {}
        if isinstance(usage, Mapping):
            reported = _positive_int(usage.get("pages_processed"))
        returned = _positive_int(len(payload.get("pages") or []))
    return reported or returned or 1


def build_stats(config: ProviderConfig, raw: RawResult) -> ParseStats:
    elapsed = max(0.0, raw.elapsed_seconds)
    if isinstance(raw, VisionLLMRaw):
        return ParseStats(
            elapsedSeconds=elapsed,
            cost=token_cost(config.id, raw.input_tokens, raw.output_tokens),
            tokens=raw.input_tokens + raw.output_tokens,
            inputTokens=raw.input_tokens,
            outputTokens=raw.output_tokens,
        )
    pages = pages_processed(raw)
    return ParseStats(
        elapsedSeconds=elapsed,
        cost=page_cost(pages, config.model_id),
        tokens=0,
        pages=pages,
    )
