"""Pydantic models for the canonical parse result and API responses."""
from __future__ import annotations

from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

# Slack tolerated on the far edges of a unit box (backends round pixel boxes outward)
BBOX_EPSILON = 0.01


class BlockType(str, Enum):
    """Closed set of canonical block types."""

    TEXT = "text"
    TABLE = "table"
    FIGURE = "figure"
    TITLE = "title"
    LIST = "list"
    HEADER = "header"
    FOOTER = "footer"
    CODE = "code"
    EQUATION = "equation"
    UNKNOWN = "unknown"


class UnitBBox(BaseModel):
    """Axis-aligned box expressed as fractions of page width/height."""

    x: float
    y: float
    w: float
    h: float

    @model_validator(mode="after")
    def _inside_unit_square(self) -> "UnitBBox":
        if self.x < 0 or self.y < 0 or self.w < 0 or self.h < 0:
            raise ValueError("bbox components must be non-negative")
        if self.x + self.w > 1 + BBOX_EPSILON or self.y + self.h > 1 + BBOX_EPSILON:
            raise ValueError("bbox extends beyond the unit square")
        return self


class PageDimensions(BaseModel):
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)


class CanonicalBlock(BaseModel):
    """A single structured-content unit after normalization."""

    id: str
    type: BlockType
    content: str = ""
    bbox: Optional[UnitBBox] = None
    confidence: Optional[float] = Field(default=None, ge=0, le=1)
    pageIndex: int = Field(..., ge=0)


class ParseOutputs(BaseModel):
    """Rich outputs of one provider. ``markdown`` is always populated on success."""

    markdown: str
    html: Optional[str] = None
    blocks: Optional[List[CanonicalBlock]] = None
    pageDimensions: Optional[List[PageDimensions]] = None


class ParseStats(BaseModel):
    elapsedSeconds: float = Field(..., ge=0)
    cost: float = Field(default=0.0, ge=0)
    tokens: int = Field(default=0, ge=0)
    pages: Optional[int] = Field(default=None, ge=1)
    inputTokens: Optional[int] = Field(default=None, ge=0)
    outputTokens: Optional[int] = Field(default=None, ge=0)


class ParseResponse(BaseModel):
    """Successful single-provider response (``content`` mirrors ``outputs.markdown``)."""

    content: str
    outputs: ParseOutputs
    stats: ParseStats


class ParseResult(BaseModel):
    """Per-provider outcome within a benchmark run."""

    providerId: str
    status: Literal["complete", "error", "skipped"]
    content: Optional[str] = None
    outputs: Optional[ParseOutputs] = None
    stats: Optional[ParseStats] = None
    error: Optional[str] = None
    errorKind: Optional[str] = None
    skipReason: Optional[str] = None


class BenchmarkResponse(BaseModel):
    status: Literal["idle", "running", "settled"]
    mediaType: str
    results: List[ParseResult]


class UrlParseRequest(BaseModel):
    url: str
    providerId: str


class UrlBenchmarkRequest(BaseModel):
    url: str
    providerIds: List[str] = Field(..., min_length=1)


class ProviderInfo(BaseModel):
    """Provider registry entry exposed to the frontend."""

    id: str
    name: str
    model: str
    description: str
    category: str
    categoryLabel: str
    configured: bool


class Limits(BaseModel):
    """Runtime limits exposed to the frontend."""

    maxSizeMb: int = Field(..., description="Maximum size per document in MB")
    maxPdfPages: int = Field(..., description="PDF pages sent to document parsers")
