"""Backend-native results, one variant per backend.

Adapters return these untouched; only the normalization and asset-inlining
steps know how to read each shape.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union


@dataclass
class LlamaParseRaw:
    job_id: str
    markdown: str
    # /result/json payload; None when that fetch failed
    json_result: Optional[Dict[str, Any]] = None
    pages: Optional[int] = None
    elapsed_seconds: float = 0.0


@dataclass
class MarkerRaw:
    request_id: str
    # Final poll payload: markdown, html, json|children, images, metadata, page_count
    payload: Dict[str, Any] = field(default_factory=dict)
    elapsed_seconds: float = 0.0


@dataclass
class MistralRaw:
    # OCR response: pages[{index, markdown, images, tables, dimensions}], usage_info
    payload: Dict[str, Any] = field(default_factory=dict)
    elapsed_seconds: float = 0.0


@dataclass
class VisionLLMRaw:
    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    elapsed_seconds: float = 0.0


RawResult = Union[LlamaParseRaw, MarkerRaw, MistralRaw, VisionLLMRaw]
