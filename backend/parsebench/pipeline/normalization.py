"""Normalize backend-native results into canonical blocks.

Bounding boxes arrive in three conventions and all leave as unit boxes:
1) unit-fraction ``{x, y, w, h}``: passed through;
2) pixel ``{x, y, w, h}`` plus page size: divided by page width/height;
3) corner or polygon points in pixels: axis-aligned min/max, then divided.

Page size is resolved per page from explicit backend metadata, then from a
page-level region reported among the blocks, then from a 1x1 fallback. The
fallback is degraded: the resulting boxes usually fall outside the unit
square and are dropped (the block itself is kept).
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError

from ..models import BlockType, CanonicalBlock, PageDimensions, UnitBBox
from ..services.adapters.raw import LlamaParseRaw, MarkerRaw, MistralRaw, RawResult, VisionLLMRaw

logger = logging.getLogger(__name__)

LLAMAPARSE_TYPES: Mapping[str, BlockType] = {
    "text": BlockType.TEXT,
    "table": BlockType.TABLE,
    "figure": BlockType.FIGURE,
    "picture": BlockType.FIGURE,
    "image": BlockType.FIGURE,
    "title": BlockType.TITLE,
    "heading": BlockType.TITLE,
    "list": BlockType.LIST,
    "list_item": BlockType.LIST,
    "header": BlockType.HEADER,
    "page_header": BlockType.HEADER,
    "footer": BlockType.FOOTER,
    "page_footer": BlockType.FOOTER,
    "code": BlockType.CODE,
    "equation": BlockType.EQUATION,
    "formula": BlockType.EQUATION,
}

MARKER_TYPES: Mapping[str, BlockType] = {
    "Text": BlockType.TEXT,
    "TextInlineMath": BlockType.TEXT,
    "Title": BlockType.TITLE,
    "SectionHeader": BlockType.TITLE,
    "Table": BlockType.TABLE,
    "TableCell": BlockType.TABLE,
    "Figure": BlockType.FIGURE,
    "Picture": BlockType.FIGURE,
    "FigureCaption": BlockType.FIGURE,
    "ListGroup": BlockType.LIST,
    "ListItem": BlockType.LIST,
    "Code": BlockType.CODE,
    "Equation": BlockType.EQUATION,
    "PageHeader": BlockType.HEADER,
    "PageFooter": BlockType.FOOTER,
}

# Structural nodes: they carry page geometry and become box-less unknown blocks
MARKER_CONTAINERS = frozenset({"Document", "Page"})

_MARKER_PAGE_ID_RE = re.compile(r"/page/(\d+)/")


@dataclass
class NormalizedBlocks:
    blocks: List[CanonicalBlock] = field(default_factory=list)
    page_dimensions: List[PageDimensions] = field(default_factory=list)
    degraded: bool = False


def map_type(label: Any, table: Mapping[str, BlockType]) -> BlockType:
    """Closed lookup; unmapped labels become UNKNOWN rather than being dropped."""
    if not isinstance(label, str) or not label:
        return BlockType.UNKNOWN
    return table.get(label) or table.get(label.lower()) or BlockType.UNKNOWN


def page_dimensions(width: Any, height: Any) -> Optional[PageDimensions]:
    try:
        w = float(width)
        h = float(height)
    except (TypeError, ValueError):
        return None
    if w <= 0 or h <= 0:
        return None
    return PageDimensions(width=w, height=h)


def region_dimensions(points: Any) -> Optional[PageDimensions]:
    """Page size from a page-level ``[x1, y1, x2, y2]`` box or polygon."""
    corners = _corners(points)
    if corners is None:
        return None
    x1, y1, x2, y2 = corners
    return page_dimensions(x2 - x1, y2 - y1)


# --- bounding boxes ---------------------------------------------------------


def _unit_bbox(x: float, y: float, w: float, h: float, context: str) -> Optional[UnitBBox]:
    try:
        return UnitBBox(x=x, y=y, w=w, h=h)
    except ValidationError:
        logger.warning("[normalize] %s: bbox (%.4f, %.4f, %.4f, %.4f) outside the unit square, dropped", context, x, y, w, h)
        return None


def _xywh(box: Any) -> Optional[Tuple[float, float, float, float]]:
    if not isinstance(box, Mapping):
        return None
    try:
        return float(box["x"]), float(box["y"]), float(box["w"]), float(box["h"])
    except (KeyError, TypeError, ValueError):
        return None


def _corners(points: Any) -> Optional[Tuple[float, float, float, float]]:
    """Axis-aligned ``(min_x, min_y, max_x, max_y)`` of a point set or flat corner box."""
    if not isinstance(points, Sequence) or isinstance(points, (str, bytes)) or not points:
        return None
    try:
        if all(isinstance(p, (int, float)) for p in points):
            if len(points) != 4:
                return None
            x1, y1, x2, y2 = (float(v) for v in points)
            return min(x1, x2), min(y1, y2), max(x1, x2), max(y1, y2)
        xs = [float(p[0]) for p in points]
        ys = [float(p[1]) for p in points]
    except (TypeError, ValueError, IndexError):
        return None
    return min(xs), min(ys), max(xs), max(ys)


def bbox_from_unit(box: Any, context: str = "unit") -> Optional[UnitBBox]:
    vals = _xywh(box)
    if vals is None:
        return None
    return _unit_bbox(*vals, context=context)


def bbox_from_pixels(box: Any, page: PageDimensions, context: str = "pixels") -> Optional[UnitBBox]:
    vals = _xywh(box)
    if vals is None:
        return None
    x, y, w, h = vals
    return _unit_bbox(x / page.width, y / page.height, w / page.width, h / page.height, context=context)


def bbox_from_points(points: Any, page: PageDimensions, context: str = "points") -> Optional[UnitBBox]:
    corners = _corners(points)
    if corners is None:
        return None
    x1, y1, x2, y2 = corners
    return _unit_bbox(
        x1 / page.width,
        y1 / page.height,
        (x2 - x1) / page.width,
        (y2 - y1) / page.height,
        context=context,
    )


def _confidence(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if 0.0 <= float(value) <= 1.0:
        return float(value)
    logger.debug("[normalize] confidence %s outside [0, 1], dropped", value)
    return None


# --- page geometry ----------------------------------------------------------


class PageGeometry:
    """Resolves page size per page index: explicit, then region, then 1x1."""

    FALLBACK = PageDimensions(width=1.0, height=1.0)

    def __init__(
        self,
        provider: str,
        explicit: Optional[Dict[int, PageDimensions]] = None,
        default_explicit: Optional[PageDimensions] = None,
    ) -> None:
        self.provider = provider
        self.explicit = dict(explicit or {})
        self.default_explicit = default_explicit
        self.regions: Dict[int, PageDimensions] = {}
        self.default_region: Optional[PageDimensions] = None
        self.degraded_pages: List[int] = []

    def add_region(self, page_index: int, dims: Optional[PageDimensions]) -> None:
        if dims is not None:
            self.regions.setdefault(page_index, dims)

    def resolve(self, page_index: int) -> PageDimensions:
        dims = (
            self.explicit.get(page_index)
            or self.default_explicit
            or self.regions.get(page_index)
            or self.default_region
        )
        if dims is not None:
            return dims
        if page_index not in self.degraded_pages:
            self.degraded_pages.append(page_index)
            logger.warning("[%s] page %d: no page dimensions reported, using unnormalized 1x1 page", self.provider, page_index)
        return self.FALLBACK

    def known(self) -> List[PageDimensions]:
        """Known dimensions ordered by page index."""
        indices = sorted(set(self.explicit) | set(self.regions))
        if not indices and (self.default_explicit or self.default_region):
            return [self.default_explicit or self.default_region]  # type: ignore[list-item]
        return [self.explicit.get(i) or self.regions[i] for i in indices]


class _Emitter:
    def __init__(self, prefix: str) -> None:
        self.prefix = prefix
        self.blocks: List[CanonicalBlock] = []

    def emit(
        self,
        block_type: BlockType,
        page_index: int,
        content: str = "",
        bbox: Optional[UnitBBox] = None,
        confidence: Optional[float] = None,
    ) -> None:
        self.blocks.append(
            CanonicalBlock(
                id=f"{self.prefix}-{len(self.blocks)}",
                type=block_type,
                content=content,
                bbox=bbox,
                confidence=confidence,
                pageIndex=max(0, page_index),
            )
        )

    def ordered(self) -> List[CanonicalBlock]:
        # Stable: emission order is kept within a page
        return sorted(self.blocks, key=lambda b: b.pageIndex)


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


# --- LlamaParse -------------------------------------------------------------


def normalize_llamaparse(raw: LlamaParseRaw) -> NormalizedBlocks:
    """Layout items carry unit boxes; content items carry pixel boxes (``bBox``)."""
    pages = (raw.json_result or {}).get("pages") or []
    out = _Emitter("llama")
    explicit: Dict[int, PageDimensions] = {}
    for pos, page in enumerate(pages):
        if not isinstance(page, Mapping):
            continue
        number = _as_int(page.get("page"))
        page_index = number - 1 if number else pos
        dims = page_dimensions(page.get("width"), page.get("height"))
        if dims is not None:
            explicit[page_index] = dims
    geometry = PageGeometry("llamaparse", explicit)

    for pos, page in enumerate(pages):
        if not isinstance(page, Mapping):
            continue
        number = _as_int(page.get("page"))
        page_index = number - 1 if number else pos
        layout = page.get("layout") or []
        items = page.get("items") or []
        logger.debug("[llamaparse] page %d: layout=%d items=%d", page_index, len(layout), len(items))

        for item in layout:
            if not isinstance(item, Mapping) or item.get("isLikelyNoise"):
                continue
            out.emit(
                map_type(item.get("label") or item.get("type"), LLAMAPARSE_TYPES),
                page_index,
                bbox=bbox_from_unit(item.get("bbox"), context=f"llamaparse layout p{page_index}"),
                confidence=_confidence(item.get("confidence")),
            )

        for item in _depth_first(items):
            if item.get("isLikelyNoise") or not item.get("type"):
                continue
            bbox = None
            if item.get("bBox") is not None:
                bbox = bbox_from_pixels(item["bBox"], geometry.resolve(page_index), context=f"llamaparse item p{page_index}")
            out.emit(
                map_type(item.get("type"), LLAMAPARSE_TYPES),
                page_index,
                content=str(item.get("value") or item.get("md") or ""),
                bbox=bbox,
                confidence=_confidence(item.get("confidence")),
            )

    blocks = out.ordered()
    logger.info("[llamaparse] normalized blocks: %d, with bbox: %d", len(blocks), sum(1 for b in blocks if b.bbox))
    return NormalizedBlocks(blocks, geometry.known(), degraded=bool(geometry.degraded_pages))


def _depth_first(nodes: Any) -> Iterable[Mapping[str, Any]]:
    if not isinstance(nodes, list):
        return
    for node in nodes:
        if not isinstance(node, Mapping):
            continue
        yield node
        yield from _depth_first(node.get("children"))


# --- Datalab Marker ---------------------------------------------------------


def _marker_explicit(metadata: Mapping[str, Any]) -> Tuple[Dict[int, PageDimensions], Optional[PageDimensions]]:
    explicit: Dict[int, PageDimensions] = {}
    for pos, meta in enumerate(metadata.get("pages") or []):
        if isinstance(meta, Mapping):
            dims = page_dimensions(meta.get("width"), meta.get("height"))
            if dims is not None:
                explicit[pos] = dims
    flat = page_dimensions(metadata.get("page_width"), metadata.get("page_height"))
    return explicit, flat


def _marker_page_index(node: Mapping[str, Any], inherited: int) -> int:
    idx = _as_int(node.get("page_idx"))
    if idx is None:
        idx = _as_int(node.get("page"))
    if idx is not None:
        return idx
    match = _MARKER_PAGE_ID_RE.search(str(node.get("id") or ""))
    if match:
        return int(match.group(1))
    return inherited


def normalize_marker(raw: MarkerRaw) -> NormalizedBlocks:
    """Flatten Marker's block tree depth-first.

    Every typed node contributes a block; traversal always continues into
    children. ``Page``/``Document`` nodes supply geometry and are emitted as
    ``unknown`` blocks without a box.
    """
    payload = raw.payload or {}
    tree = payload.get("json") or payload.get("children")
    metadata = payload.get("metadata") if isinstance(payload.get("metadata"), Mapping) else {}
    explicit, flat = _marker_explicit(metadata)
    geometry = PageGeometry("datalab-marker", explicit, flat)
    out = _Emitter("marker")

    if isinstance(tree, list):
        roots: List[Any] = tree
    elif isinstance(tree, Mapping):
        if isinstance(tree.get("children"), list):
            roots = tree["children"]
            if tree.get("block_type") in (None, "Page", "Document"):
                geometry.default_region = region_dimensions(tree.get("bbox"))
        elif tree.get("block_type"):
            roots = [tree]
        else:
            roots = []
    else:
        roots = []

    pages_seen = 0

    def visit(node: Any, page_index: int) -> None:
        nonlocal pages_seen
        if not isinstance(node, Mapping):
            return
        block_type = node.get("block_type")
        if block_type == "Page":
            page_index = _marker_page_index(node, pages_seen)
            pages_seen += 1
            geometry.add_region(page_index, region_dimensions(node.get("bbox")) or region_dimensions(node.get("polygon")))
            out.emit(BlockType.UNKNOWN, page_index)
        elif block_type in MARKER_CONTAINERS:
            out.emit(BlockType.UNKNOWN, _marker_page_index(node, page_index))
        elif block_type:
            idx = _marker_page_index(node, page_index)
            bbox = None
            polygon = node.get("polygon")
            context = f"marker {block_type} p{idx}"
            if isinstance(polygon, list) and len(polygon) >= 4:
                bbox = bbox_from_points(polygon, geometry.resolve(idx), context=context)
            elif isinstance(node.get("bbox"), list):
                bbox = bbox_from_points(node["bbox"], geometry.resolve(idx), context=context)
            out.emit(
                map_type(block_type, MARKER_TYPES),
                idx,
                content=str(node.get("text") or node.get("html") or ""),
                bbox=bbox,
                confidence=_confidence(node.get("confidence")),
            )
        for child in node.get("children") or []:
            visit(child, page_index)

    for root in roots:
        visit(root, 0)

    blocks = out.ordered()
    logger.info("[datalab-marker] normalized blocks: %d, with bbox: %d", len(blocks), sum(1 for b in blocks if b.bbox))
    return NormalizedBlocks(blocks, geometry.known(), degraded=bool(geometry.degraded_pages))


# --- Mistral OCR ------------------------------------------------------------


def _mistral_corners(item: Mapping[str, Any]) -> Optional[List[Tuple[Any, Any]]]:
    keys = ("top_left_x", "top_left_y", "bottom_right_x", "bottom_right_y")
    if any(item.get(k) is None for k in keys):
        return None
    return [(item["top_left_x"], item["top_left_y"]), (item["bottom_right_x"], item["bottom_right_y"])]


def normalize_mistral(raw: MistralRaw) -> NormalizedBlocks:
    """One text block per page (no bbox), plus figure and table blocks with corner boxes."""
    pages = (raw.payload or {}).get("pages") or []
    out = _Emitter("mistral")
    explicit: Dict[int, PageDimensions] = {}
    indexed: List[Tuple[int, Mapping[str, Any]]] = []
    for pos, page in enumerate(pages):
        if not isinstance(page, Mapping):
            continue
        page_index = _as_int(page.get("index"))
        page_index = pos if page_index is None else page_index
        indexed.append((page_index, page))
        dims_raw = page.get("dimensions") or {}
        if isinstance(dims_raw, Mapping):
            dims = page_dimensions(dims_raw.get("width"), dims_raw.get("height"))
            if dims is not None:
                explicit[page_index] = dims
    geometry = PageGeometry("mistral-ocr", explicit)

    for page_index, page in indexed:
        if page.get("markdown"):
            out.emit(BlockType.TEXT, page_index, content=str(page["markdown"]))
        for img in page.get("images") or []:
            if not isinstance(img, Mapping):
                continue
            corners = _mistral_corners(img)
            bbox = None
            if corners is not None:
                bbox = bbox_from_points(corners, geometry.resolve(page_index), context=f"mistral image p{page_index}")
            out.emit(BlockType.FIGURE, page_index, content=str(img.get("id") or ""), bbox=bbox)
        for table in page.get("tables") or []:
            if not isinstance(table, Mapping):
                continue
            corners = _mistral_corners(table)
            bbox = None
            if corners is not None:
                bbox = bbox_from_points(corners, geometry.resolve(page_index), context=f"mistral table p{page_index}")
            content = table.get("html") or table.get("content") or table.get("markdown") or table.get("id") or ""
            out.emit(BlockType.TABLE, page_index, content=str(content), bbox=bbox)

    blocks = out.ordered()
    logger.info("[mistral-ocr] normalized blocks: %d, with bbox: %d", len(blocks), sum(1 for b in blocks if b.bbox))
    return NormalizedBlocks(blocks, geometry.known(), degraded=bool(geometry.degraded_pages))


# --- entry points -----------------------------------------------------------


def normalize_blocks(blocks: Iterable[CanonicalBlock]) -> List[CanonicalBlock]:
    """Re-validate canonical blocks and apply the canonical ordering.

    Canonical input comes back unchanged.
    """
    validated = [CanonicalBlock.model_validate(b.model_dump()) for b in blocks]
    return sorted(validated, key=lambda b: b.pageIndex)


def normalize_result(raw: RawResult) -> NormalizedBlocks:
    if isinstance(raw, LlamaParseRaw):
        return normalize_llamaparse(raw)
    if isinstance(raw, MarkerRaw):
        return normalize_marker(raw)
    if isinstance(raw, MistralRaw):
        return normalize_mistral(raw)
    if isinstance(raw, VisionLLMRaw):
        return NormalizedBlocks()
    raise TypeError(f"Unsupported raw result: {type(raw).__name__}")
