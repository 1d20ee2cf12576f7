import pytest

from parsebench.pipeline.accounting import build_stats, page_cost, pages_processed, token_cost
from parsebench.providers import FALLBACK_PAGE_PRICE, get_provider_config
from parsebench.services.adapters.raw import LlamaParseRaw, MarkerRaw, MistralRaw, VisionLLMRaw


def test_page_cost():
    assert page_cost(3, "cost-effective") == pytest.approx(0.009)
    assert page_cost(3, "cost-effective") == 0.009


def test_token_cost():
    assert token_cost("gpt-4o", 1000, 500) == pytest.approx(0.0075)


def test_unknown_price_key_is_never_free():
    assert page_cost(2, "mystery-tier") == pytest.approx(2 * FALLBACK_PAGE_PRICE)
    assert page_cost(2, "mystery-tier") > 0


def test_pages_processed_sources():
    assert pages_processed(MistralRaw(payload={"pages": [{}, {}], "usage_info": {"pages_processed": 3}})) == 3
    assert pages_processed(MistralRaw(payload={"pages": [{}, {}]})) == 2
    assert pages_processed(MarkerRaw(request_id="r", payload={"page_count": 2})) == 2
    assert pages_processed(LlamaParseRaw(job_id="j", markdown="", pages=None)) == 1
    assert pages_processed(LlamaParseRaw(job_id="j", markdown="", json_result={"pages": [{}, {}]})) == 2


def test_parser_stats():
    raw = LlamaParseRaw(job_id="j", markdown="", pages=3, elapsed_seconds=7.5)

    stats = build_stats(get_provider_config("llamaparse"), raw)

    assert stats.pages == 3
    assert stats.cost == pytest.approx(0.009)
    assert stats.tokens == 0
    assert stats.elapsedSeconds == 7.5


def test_vision_llm_stats():
    raw = VisionLLMRaw(text="x", input_tokens=1000, output_tokens=500, elapsed_seconds=1.25)

    stats = build_stats(get_provider_config("gpt-4o"), raw)

    assert stats.cost == pytest.approx(0.0075)
    assert stats.tokens == 1500
    assert (stats.inputTokens, stats.outputTokens) == (1000, 500)
    assert stats.pages is None
