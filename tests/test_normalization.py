import pytest

from parsebench.models import BBOX_EPSILON, BlockType, CanonicalBlock, PageDimensions, UnitBBox
from parsebench.pipeline.normalization import (
    bbox_from_pixels,
    bbox_from_points,
    bbox_from_unit,
    normalize_blocks,
    normalize_llamaparse,
    normalize_marker,
    normalize_mistral,
    normalize_result,
)
from parsebench.services.adapters.raw import LlamaParseRaw, MarkerRaw, MistralRaw, VisionLLMRaw


def assert_unit(blocks):
    for block in blocks:
        if block.bbox is None:
            continue
        b = block.bbox
        assert 0 <= b.x <= 1 + BBOX_EPSILON
        assert 0 <= b.y <= 1 + BBOX_EPSILON
        assert b.x + b.w <= 1 + BBOX_EPSILON
        assert b.y + b.h <= 1 + BBOX_EPSILON


def test_pixel_box_round_trip():
    box = bbox_from_pixels({"x": 100, "y": 50, "w": 200, "h": 100}, PageDimensions(width=1000, height=500))

    assert box.x == pytest.approx(0.1)
    assert box.y == pytest.approx(0.1)
    assert box.w == pytest.approx(0.2)
    assert box.h == pytest.approx(0.2)


def test_points_use_axis_aligned_extent():
    page = PageDimensions(width=200, height=100)
    box = bbox_from_points([[50, 10], [150, 20], [150, 60], [40, 50]], page)

    assert (box.x, box.y) == (pytest.approx(0.2), pytest.approx(0.1))
    assert (box.w, box.h) == (pytest.approx(0.55), pytest.approx(0.5))
    assert bbox_from_points([20, 10, 100, 50], page) == bbox_from_points([[20, 10], [100, 50]], page)


def test_unit_box_passes_through_and_out_of_range_is_dropped():
    assert bbox_from_unit({"x": 0.1, "y": 0.2, "w": 0.3, "h": 0.4}) == UnitBBox(x=0.1, y=0.2, w=0.3, h=0.4)
    assert bbox_from_unit({"x": 0.9, "y": 0.2, "w": 0.5, "h": 0.1}) is None
    assert bbox_from_unit({"x": "a"}) is None


def test_unit_bbox_rejects_boxes_outside_slack():
    with pytest.raises(ValueError):
        UnitBBox(x=0.5, y=0.5, w=0.6, h=0.1)
    assert UnitBBox(x=0.5, y=0.5, w=0.505, h=0.5).w == 0.505


def test_llamaparse_layout_and_items():
    raw = LlamaParseRaw(
        job_id="job-1",
        markdown="# Title",
        json_result={
            "pages": [
                {
                    "page": 1,
                    "width": 1000,
                    "height": 500,
                    "layout": [
                        {"label": "title", "bbox": {"x": 0.1, "y": 0.05, "w": 0.5, "h": 0.1}, "confidence": 0.9},
                        {"label": "page_number", "bbox": {"x": 0.9, "y": 0.9, "w": 0.05, "h": 0.05}, "isLikelyNoise": True},
                        {"label": "sidebar", "bbox": {"x": 0.0, "y": 0.2, "w": 0.2, "h": 0.5}},
                    ],
                    "items": [
                        {
                            "type": "table",
                            "value": "| a |",
                            "bBox": {"x": 100, "y": 50, "w": 200, "h": 100},
                            "children": [{"type": "text", "md": "cell", "bBox": {"x": 110, "y": 60, "w": 10, "h": 10}}],
                        }
                    ],
                },
                {"page": 2, "width": 1000, "height": 500, "layout": [{"label": "text", "bbox": {"x": 0, "y": 0, "w": 1, "h": 1}}]},
            ]
        },
    )

    result = normalize_llamaparse(raw)

    types = [b.type for b in result.blocks]
    assert types == [BlockType.TITLE, BlockType.UNKNOWN, BlockType.TABLE, BlockType.TEXT, BlockType.TEXT]
    assert [b.pageIndex for b in result.blocks] == [0, 0, 0, 0, 1]
    assert result.blocks[0].confidence == 0.9
    table = result.blocks[2]
    assert table.content == "| a |"
    assert table.bbox.x == pytest.approx(0.1) and table.bbox.h == pytest.approx(0.2)
    assert result.blocks[3].content == "cell"
    assert result.page_dimensions == [PageDimensions(width=1000, height=500)] * 2
    assert not result.degraded
    assert_unit(result.blocks)


def test_llamaparse_without_json_has_no_blocks():
    result = normalize_llamaparse(LlamaParseRaw(job_id="j", markdown="text", json_result=None))

    assert result.blocks == []
    assert result.page_dimensions == []


MARKER_DOCUMENT = {
    "json": {
        "block_type": "Document",
        "children": [
            {
                "id": "/page/0/Page/0",
                "block_type": "Page",
                "bbox": [0, 0, 612, 792],
                "children": [
                    {"id": "/page/0/SectionHeader/1", "block_type": "SectionHeader", "html": "<h1>Intro</h1>", "polygon": [[61.2, 79.2], [306, 79.2], [306, 158.4], [61.2, 158.4]]},
                    {
                        "id": "/page/0/ListGroup/2",
                        "block_type": "ListGroup",
                        "bbox": [61.2, 200, 551, 300],
                        "children": [
                            {"id": "/page/0/ListItem/3", "block_type": "ListItem", "html": "<li>one</li>", "bbox": [61.2, 200, 551, 250]},
                            {"id": "/page/0/ListItem/4", "block_type": "ListItem", "html": "<li>two</li>", "bbox": [61.2, 250, 551, 300]},
                        ],
                    },
                    {"id": "/page/0/Oddity/5", "block_type": "Oddity", "bbox": [0, 0, 10, 10]},
                    {"id": "/page/0/Text/6", "block_type": "Text", "bbox": [500, 700, 900, 800]},
                ],
            },
            {
                "id": "/page/1/Page/7",
                "block_type": "Page",
                "bbox": [0, 0, 612, 792],
                "children": [{"id": "/page/1/Text/8", "block_type": "Text", "html": "<p>p2</p>", "bbox": [0, 0, 612, 396]}],
            },
        ],
    },
    "metadata": {},
}


def test_marker_tree_is_flattened_depth_first():
    result = normalize_marker(MarkerRaw(request_id="r", payload=MARKER_DOCUMENT))

    assert [b.type for b in result.blocks] == [
        BlockType.UNKNOWN,
        BlockType.TITLE,
        BlockType.LIST,
        BlockType.LIST,
        BlockType.LIST,
        BlockType.UNKNOWN,
        BlockType.TEXT,
        BlockType.UNKNOWN,
        BlockType.TEXT,
    ]
    assert [b.pageIndex for b in result.blocks] == [0, 0, 0, 0, 0, 0, 0, 1, 1]
    # Page nodes become box-less unknown blocks
    assert result.blocks[0].bbox is None and result.blocks[7].bbox is None
    title = result.blocks[1]
    assert title.content == "<h1>Intro</h1>"
    assert title.bbox.x == pytest.approx(0.1) and title.bbox.y == pytest.approx(0.1)
    assert title.bbox.w == pytest.approx(0.4) and title.bbox.h == pytest.approx(0.1)
    # Box spilling past the page edge is dropped, the block is kept
    assert result.blocks[6].bbox is None
    assert result.blocks[8].bbox.h == pytest.approx(0.5)
    assert result.page_dimensions == [PageDimensions(width=612, height=792)] * 2
    assert not result.degraded
    assert_unit(result.blocks)


def test_marker_explicit_metadata_wins_over_page_region():
    payload = {
        "children": [
            {"block_type": "Text", "page_idx": 0, "bbox": [100, 100, 200, 200]},
        ],
        "metadata": {"page_width": 1000, "page_height": 1000},
    }

    result = normalize_marker(MarkerRaw(request_id="r", payload=payload))

    assert result.blocks[0].bbox == UnitBBox(x=0.1, y=0.1, w=0.1, h=0.1)
    assert result.page_dimensions == [PageDimensions(width=1000, height=1000)]


def test_marker_without_dimensions_degrades_without_failing():
    payload = {"json": [{"block_type": "Text", "html": "<p>x</p>", "bbox": [10, 10, 100, 40]}]}

    result = normalize_marker(MarkerRaw(request_id="r", payload=payload))

    assert result.degraded
    assert len(result.blocks) == 1
    assert result.blocks[0].bbox is None
    assert result.blocks[0].content == "<p>x</p>"


def test_ordering_is_stable_by_page():
    payload = {
        "json": [
            {"block_type": "Text", "html": "b1", "page_idx": 1},
            {"block_type": "Text", "html": "a1", "page_idx": 0},
            {"block_type": "Title", "html": "b2", "page_idx": 1},
            {"block_type": "Code", "html": "a2", "page_idx": 0},
        ]
    }

    result = normalize_marker(MarkerRaw(request_id="r", payload=payload))

    assert [b.content for b in result.blocks] == ["a1", "a2", "b1", "b2"]


def test_mistral_pages_images_and_tables():
    payload = {
        "pages": [
            {
                "index": 0,
                "markdown": "![img-0.jpeg](img-0.jpeg)",
                "dimensions": {"width": 1000, "height": 2000, "dpi": 200},
                "images": [{"id": "img-0.jpeg", "top_left_x": 100, "top_left_y": 200, "bottom_right_x": 600, "bottom_right_y": 1200}],
                "tables": [{"id": "tbl-0", "html": "<table></table>", "top_left_x": 0, "top_left_y": 0, "bottom_right_x": 1000, "bottom_right_y": 500}],
            },
            {"index": 1, "markdown": "page two", "dimensions": {"width": 1000, "height": 2000}},
        ]
    }

    result = normalize_mistral(MistralRaw(payload=payload))

    assert [b.type for b in result.blocks] == [BlockType.TEXT, BlockType.FIGURE, BlockType.TABLE, BlockType.TEXT]
    figure = result.blocks[1]
    assert figure.bbox == UnitBBox(x=0.1, y=0.1, w=0.5, h=0.5)
    assert result.blocks[2].content == "<table></table>"
    assert result.blocks[0].bbox is None
    assert len(result.page_dimensions) == 2
    assert_unit(result.blocks)


def test_vision_llm_has_no_blocks():
    result = normalize_result(VisionLLMRaw(text="hello"))

    assert result.blocks == []


def test_normalizing_canonical_blocks_is_idempotent():
    blocks = normalize_marker(MarkerRaw(request_id="r", payload=MARKER_DOCUMENT)).blocks

    once = normalize_blocks(blocks)
    twice = normalize_blocks(once)

    assert once == blocks
    assert twice == once


def test_canonical_block_rejects_negative_page():
    with pytest.raises(ValueError):
        CanonicalBlock(id="x", type=BlockType.TEXT, pageIndex=-1)
