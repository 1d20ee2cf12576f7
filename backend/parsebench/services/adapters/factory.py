"""
Factory for creating provider adapters from registry entries.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Type

from ...config import Settings
from ...providers import DATALAB_MARKER, LLAMAPARSE, MISTRAL_OCR, VISION_LLM, ProviderConfig
from .base import ProviderAdapter
from .llamaparse import LlamaParseAdapter
from .marker import MarkerAdapter
from .mistral import MistralOCRAdapter
from .vision_llm import VisionLLMAdapter

logger = logging.getLogger(__name__)

ADAPTERS: Dict[str, Type[ProviderAdapter]] = {
    LLAMAPARSE: LlamaParseAdapter,
    MISTRAL_OCR: MistralOCRAdapter,
    DATALAB_MARKER: MarkerAdapter,
    VISION_LLM: VisionLLMAdapter,
}


def create_adapter(config: ProviderConfig, settings: Optional[Settings] = None, **kwargs: Any) -> ProviderAdapter:
    """
    Create the adapter for ``config``.

    Args:
        config: Registry entry of the provider
        settings: Settings override (defaults to the cached settings)
        **kwargs: Adapter options (transport, sleep, clock, poll_interval, max_attempts)

    Raises:
        ValueError: If the provider type has no adapter
    """
    try:
        cls = ADAPTERS[config.type]
    except KeyError:
        raise ValueError(f"Unsupported provider type: {config.type}")
    logger.debug("Created %s adapter for %s", cls.__name__, config.id)
    return cls(config, settings, **kwargs)
