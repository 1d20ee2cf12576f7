from typing import Dict, List, Union

import pytest

from conftest import PNG_BYTES, FakeStore, make_pdf
from parsebench.documents import Document
from parsebench.exceptions import FileValidationError, UpstreamError, UpstreamTimeoutError
from parsebench.models import ParseOutputs, ParseStats
from parsebench.services.orchestration.benchmark_service import BenchmarkService, RunState
from parsebench.services.orchestration.provider_pipeline import ProviderPipeline, ProviderRun

PNG_DOC = Document(data=PNG_BYTES, media_type="image/png", filename="a.png")
PDF_DOC = Document(data=make_pdf(1), media_type="application/pdf", filename="a.pdf")


def completed(text: str, elapsed: float, cost: float) -> ProviderRun:
    return ProviderRun(
        content=text,
        outputs=ParseOutputs(markdown=text),
        stats=ParseStats(elapsedSeconds=elapsed, cost=cost, pages=1),
    )


class StubPipeline(ProviderPipeline):
    """Scripted outcomes per provider id; records which providers were invoked."""

    def __init__(self, settings, outcomes: Dict[str, Union[ProviderRun, Exception]]) -> None:
        super().__init__(settings, store=FakeStore())
        self.outcomes = outcomes
        self.invoked: List[str] = []

    async def run_provider(self, document, provider_id):
        self.resolve(provider_id)
        self.invoked.append(provider_id)
        outcome = self.outcomes[provider_id]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.mark.asyncio
async def test_one_failure_does_not_affect_siblings(settings):
    pipeline = StubPipeline(
        settings,
        {
            "llamaparse": UpstreamTimeoutError("LlamaParse: Processing timed out", elapsed_seconds=60.0),
            "mistral-ocr": completed("mistral", 1.5, 0.001),
            "datalab-marker": completed("marker", 4.0, 0.005),
        },
    )

    run = await BenchmarkService(pipeline).run(PNG_DOC, ["llamaparse", "mistral-ocr", "datalab-marker"])

    assert run.state is RunState.SETTLED
    statuses = {r.providerId: r.status for r in run.ordered_results()}
    assert statuses == {"llamaparse": "error", "mistral-ocr": "complete", "datalab-marker": "complete"}
    failed = run.results["llamaparse"]
    assert failed.error == "LlamaParse: Processing timed out"
    assert failed.errorKind == "UpstreamTimeout"
    assert failed.stats.elapsedSeconds == 60.0
    assert run.results["mistral-ocr"].stats == ParseStats(elapsedSeconds=1.5, cost=0.001, pages=1)
    assert run.results["datalab-marker"].stats == ParseStats(elapsedSeconds=4.0, cost=0.005, pages=1)
    assert [r.providerId for r in run.ordered_results()] == ["llamaparse", "mistral-ocr", "datalab-marker"]


@pytest.mark.asyncio
async def test_vision_llms_skipped_for_pdf_without_invocation(settings):
    pipeline = StubPipeline(settings, {"llamaparse": completed("llama", 2.0, 0.003)})

    run = await BenchmarkService(pipeline).run(PDF_DOC, ["gpt-4o", "llamaparse", "gemini-2-flash"])

    assert pipeline.invoked == ["llamaparse"]
    assert run.results["gpt-4o"].status == "skipped"
    assert run.results["gpt-4o"].skipReason == "PDF not supported by Vision LLMs"
    assert run.results["gemini-2-flash"].status == "skipped"
    assert run.results["llamaparse"].status == "complete"
    response = run.to_response()
    assert response.status == "settled"
    assert response.mediaType == "application/pdf"


@pytest.mark.asyncio
async def test_unexpected_errors_are_sanitized(settings):
    pipeline = StubPipeline(
        settings,
        {"gpt-4o": RuntimeError("KeyError deep inside"), "mistral-ocr": UpstreamError("boom from API gateway")},
    )

    run = await BenchmarkService(pipeline).run(PNG_DOC, ["gpt-4o", "mistral-ocr"])

    assert run.results["gpt-4o"].error == "An error occurred while processing your request"
    assert run.results["gpt-4o"].errorKind == "InternalError"
    assert run.results["mistral-ocr"].error == "Service temporarily unavailable"


@pytest.mark.asyncio
async def test_unknown_provider_rejects_run_before_dispatch(settings):
    pipeline = StubPipeline(settings, {"mistral-ocr": completed("m", 1.0, 0.001)})

    with pytest.raises(FileValidationError):
        await BenchmarkService(pipeline).run(PNG_DOC, ["mistral-ocr", "does-not-exist"])

    assert pipeline.invoked == []


@pytest.mark.asyncio
async def test_duplicates_collapse(settings):
    pipeline = StubPipeline(settings, {"mistral-ocr": completed("m", 1.0, 0.001)})

    run = await BenchmarkService(pipeline).run(PNG_DOC, ["mistral-ocr", "mistral-ocr"])

    assert pipeline.invoked == ["mistral-ocr"]
    assert len(run.ordered_results()) == 1


@pytest.mark.asyncio
async def test_stream_yields_skipped_first(settings):
    pipeline = StubPipeline(
        settings,
        {"llamaparse": completed("l", 3.0, 0.003), "datalab-marker": completed("d", 1.0, 0.005)},
    )

    results = [r async for r in BenchmarkService(pipeline).stream(PDF_DOC, ["llamaparse", "gpt-4o", "datalab-marker"])]

    assert results[0].providerId == "gpt-4o"
    assert results[0].status == "skipped"
    assert sorted(r.providerId for r in results[1:]) == ["datalab-marker", "llamaparse"]
