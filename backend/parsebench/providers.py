"""Static provider registry and pricing tables.

Resolved once at import time and never mutated; look providers up by id with
:func:`get_provider_config`.
"""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

# Provider types: one adapter implementation per type
LLAMAPARSE = "llamaparse"
MISTRAL_OCR = "mistral-ocr"
DATALAB_MARKER = "datalab-marker"
VISION_LLM = "vision-llm"

# Categories
PARSER = "parser"
VISION_LLM_CATEGORY = "vision-llm"


@dataclass(frozen=True)
class ProviderConfig:
    id: str
    name: str
    model: str  # display name of the model version
    description: str
    model_id: str  # backend tier/mode for parsers, provider/model for vision LLMs
    type: str
    category: str
    category_label: str

    @property
    def is_parser(self) -> bool:
        return self.category == PARSER

    @property
    def is_vision_llm(self) -> bool:
        return self.category == VISION_LLM_CATEGORY


def _parser(id: str, name: str, model: str, description: str, model_id: str, type_: str) -> ProviderConfig:
    return ProviderConfig(id, name, model, description, model_id, type_, PARSER, "Document Parser")


def _vision(id: str, name: str, model: str, description: str, model_id: str) -> ProviderConfig:
    return ProviderConfig(id, name, model, description, model_id, VISION_LLM, VISION_LLM_CATEGORY, "Vision LLM")


PROVIDERS: Tuple[ProviderConfig, ...] = (
    # Specialized document parsers
    _parser("llamaparse", "LlamaParse", "cost-effective", "LlamaIndex", "cost-effective", LLAMAPARSE),
    _parser("mistral-ocr", "Mistral OCR", "mistral-ocr-latest", "Mistral", "mistral-ocr-latest", MISTRAL_OCR),
    _parser("datalab-marker", "Marker", "fast", "Datalab", "fast", DATALAB_MARKER),
    # Vision LLMs via OpenRouter
    _vision("gpt-4o", "GPT-4o", "gpt-4o-2024-11-20", "OpenAI", "openai/gpt-4o-2024-11-20"),
    _vision("gpt-4o-mini", "GPT-4o Mini", "gpt-4o-mini-2024-07-18", "OpenAI", "openai/gpt-4o-mini-2024-07-18"),
    _vision("claude-sonnet-4", "Claude Sonnet 4", "claude-sonnet-4-20250514", "Anthropic", "anthropic/claude-sonnet-4"),
    _vision("claude-haiku-35", "Claude Haiku 3.5", "claude-3-5-haiku-20241022", "Anthropic", "anthropic/claude-3.5-haiku"),
    _vision("gemini-2-flash", "Gemini 2.0 Flash", "gemini-2.0-flash", "Google", "google/gemini-2.0-flash-001"),
    _vision("gemini-25-pro", "Gemini 2.5 Pro", "gemini-2.5-pro", "Google", "google/gemini-2.5-pro"),
)

PROVIDER_INDEX: Mapping[str, ProviderConfig] = MappingProxyType({p.id: p for p in PROVIDERS})

# Pricing per 1M tokens (approximate, for cost estimation)
TOKEN_PRICING: Mapping[str, Mapping[str, float]] = MappingProxyType(
    {
        "gpt-4o": {"input": 2.5, "output": 10},
        "gpt-4o-mini": {"input": 0.15, "output": 0.6},
        "claude-sonnet-4": {"input": 3, "output": 15},
        "claude-haiku-35": {"input": 0.8, "output": 4},
        "gemini-2-flash": {"input": 0.075, "output": 0.3},
        "gemini-25-pro": {"input": 1.25, "output": 10},
    }
)

# Per-page pricing for dedicated OCR services, keyed by backend tier
PAGE_PRICING: Mapping[str, float] = MappingProxyType(
    {
        # LlamaParse tiers
        "cost-effective": 0.003,
        "agentic": 0.01,
        "agentic-plus": 0.03,
        # Mistral OCR
        "mistral-ocr-latest": 0.001,
        # Datalab Marker modes
        "fast": 0.005,
        "balanced": 0.01,
        "accurate": 0.02,
    }
)

# Used for price keys outside the tables so cost is never reported as free
FALLBACK_PAGE_PRICE = 0.001


def get_provider_config(provider_id: str) -> Optional[ProviderConfig]:
    return PROVIDER_INDEX.get(provider_id)


def is_valid_provider_id(provider_id: str) -> bool:
    return provider_id in PROVIDER_INDEX


def credential_settings_key(config: ProviderConfig) -> str:
    """Name of the settings attribute holding the credential for ``config``."""
    keys: Dict[str, str] = {
        LLAMAPARSE: "LLAMA_PARSE_API_KEY",
        MISTRAL_OCR: "MISTRAL_API_KEY",
        DATALAB_MARKER: "DATALAB_API_KEY",
        VISION_LLM: "OPENROUTER_API_KEY",
    }
    return keys[config.type]


def validate_registry(
    providers: Tuple[ProviderConfig, ...] = PROVIDERS,
    page_pricing: Mapping[str, float] = PAGE_PRICING,
    token_pricing: Mapping[str, Mapping[str, float]] = TOKEN_PRICING,
) -> None:
    """Fail loudly when a registered provider has no price entry."""
    seen = set()
    for p in providers:
        if p.id in seen:
            raise RuntimeError(f"Duplicate provider id in registry: {p.id}")
        seen.add(p.id)
        if p.is_parser and p.model_id not in page_pricing:
            raise RuntimeError(f"No per-page price configured for {p.id} tier {p.model_id!r}")
        if p.is_vision_llm and p.id not in token_pricing:
            raise RuntimeError(f"No token price configured for {p.id}")


validate_registry()
