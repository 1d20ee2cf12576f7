from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Callable, Dict, Iterable, List, Optional, Tuple

from ...documents import Document
from ...exceptions import FileValidationError, ProviderError, UnsupportedDocumentError
from ...models import BenchmarkResponse, ParseResult, ParseStats
from ...providers import ProviderConfig
from .provider_pipeline import PDF_SKIP_REASON, ProviderPipeline, sanitize_error

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SETTLED = "settled"


@dataclass
class BenchmarkRun:
    """One document fanned out to several providers.

    ``results`` is keyed by provider id and filled in completion order.
    """

    document: Document
    providers: List[ProviderConfig]
    state: RunState = RunState.IDLE
    results: Dict[str, ParseResult] = field(default_factory=dict)

    @property
    def eligible(self) -> List[ProviderConfig]:
        if not self.document.is_pdf:
            return list(self.providers)
        return [p for p in self.providers if not p.is_vision_llm]

    @property
    def skipped(self) -> List[ProviderConfig]:
        if not self.document.is_pdf:
            return []
        return [p for p in self.providers if p.is_vision_llm]

    def ordered_results(self) -> List[ParseResult]:
        """Results in selection order."""
        return [self.results[p.id] for p in self.providers if p.id in self.results]

    def to_response(self) -> BenchmarkResponse:
        return BenchmarkResponse(
            status=self.state.value,
            mediaType=self.document.media_type,
            results=self.ordered_results(),
        )


class BenchmarkService:
    """Fans a document out to the selected providers concurrently.

    Each provider is an independent task; a failure becomes that provider's
    error outcome and never touches its siblings.
    """

    def __init__(self, pipeline: Optional[ProviderPipeline] = None, *, clock: Optional[Callable[[], float]] = None) -> None:
        self.pipeline = pipeline or ProviderPipeline()
        self.clock = clock or time.monotonic

    def plan(self, provider_ids: Iterable[str]) -> List[ProviderConfig]:
        """Resolve ids once, dropping duplicates. Unknown ids reject the whole run."""
        seen = set()
        configs: List[ProviderConfig] = []
        for provider_id in provider_ids:
            if provider_id in seen:
                continue
            seen.add(provider_id)
            configs.append(self.pipeline.resolve(provider_id))
        if not configs:
            raise FileValidationError("No providers selected")
        return configs

    async def start(self, document: Document, provider_ids: Iterable[str]) -> BenchmarkRun:
        configs = self.plan(provider_ids)
        # A URL document is downloaded once for all parsers, and its real media type decides skips
        if any(self.pipeline.needs_download(document, c) for c in configs):
            document = await self.pipeline.download(document)
        return BenchmarkRun(document=document, providers=configs)

    async def run_one(self, document: Document, config: ProviderConfig) -> ParseResult:
        started = self.clock()
        try:
            run = await self.pipeline.run_provider(document, config.id)
        except UnsupportedDocumentError as exc:
            logger.info("[%s] skipped: %s", config.id, exc)
            return ParseResult(providerId=config.id, status="skipped", skipReason=str(exc))
        except ProviderError as exc:
            elapsed = exc.elapsed_seconds if exc.elapsed_seconds is not None else self.clock() - started
            logger.warning("[%s] failed after %.2fs (%s): %s", config.id, elapsed, exc.kind, exc)
            return ParseResult(
                providerId=config.id,
                status="error",
                error=sanitize_error(exc),
                errorKind=exc.kind,
                stats=ParseStats(elapsedSeconds=max(0.0, elapsed)),
            )
        except Exception as exc:
            logger.exception("[%s] unexpected error", config.id)
            return ParseResult(
                providerId=config.id,
                status="error",
                error=sanitize_error(exc),
                errorKind="InternalError",
                stats=ParseStats(elapsedSeconds=max(0.0, self.clock() - started)),
            )
        return ParseResult(
            providerId=config.id,
            status="complete",
            content=run.content,
            outputs=run.outputs,
            stats=run.stats,
        )

    async def execute(self, run: BenchmarkRun) -> AsyncIterator[ParseResult]:
        run.state = RunState.RUNNING
        for config in run.skipped:
            result = ParseResult(providerId=config.id, status="skipped", skipReason=PDF_SKIP_REASON)
            run.results[config.id] = result
            yield result

        tasks = [asyncio.create_task(self.run_one(run.document, c)) for c in run.eligible]
        logger.info("Benchmark dispatched %d providers (%d skipped)", len(tasks), len(run.skipped))
        try:
            for next_done in asyncio.as_completed(tasks):
                result = await next_done
                run.results[result.providerId] = result
                yield result
        finally:
            # Only reached with pending tasks when the consumer stopped early
            for task in tasks:
                if not task.done():
                    task.cancel()
        run.state = RunState.SETTLED
        logger.info("Benchmark settled: %s", _summary(run.ordered_results()))

    async def run(self, document: Document, provider_ids: Iterable[str]) -> BenchmarkRun:
        """Gather every outcome; the returned run is settled."""
        run = await self.start(document, provider_ids)
        async for _ in self.execute(run):
            pass
        return run

    async def stream(self, document: Document, provider_ids: Iterable[str]) -> AsyncIterator[ParseResult]:
        """Yield outcomes as they resolve (skipped ones first)."""
        run = await self.start(document, provider_ids)
        async for result in self.execute(run):
            yield result


def _summary(results: List[ParseResult]) -> str:
    counts: Dict[str, int] = {}
    for r in results:
        counts[r.status] = counts.get(r.status, 0) + 1
    parts: List[Tuple[str, int]] = sorted(counts.items())
    return ", ".join(f"{k}={v}" for k, v in parts)
