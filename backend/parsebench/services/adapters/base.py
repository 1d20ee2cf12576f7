"""Provider adapter contract and the shared submit/poll state machine.

Every adapter owns its own HTTP client for the lifetime of one job. Transient
failures (network errors, timeouts, 429/5xx) are retried with tenacity before
being mapped into the provider error taxonomy.
"""
from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)

from ...config import Settings, get_settings
from ...documents import Document
from ...exceptions import (
    AuthMissingError,
    ProviderError,
    UpstreamError,
    UpstreamRejectedError,
    UpstreamTimeoutError,
)
from ...providers import ProviderConfig
from .raw import RawResult

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]


# Retry predicate: network errors, timeouts, and 429/5xx HTTP errors
def _is_retryable(exc: BaseException) -> bool:  # pragma: no cover - simple predicate
    if isinstance(exc, (httpx.RequestError, httpx.TimeoutException)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or 500 <= status < 600
    return False


class ProviderAdapter(ABC):
    """Drives one backend's wire protocol to a terminal raw result.

    ``run`` measures wall-clock time (with the injectable ``clock``) from
    acceptance of the document to the terminal result or failure.
    """

    label = "Provider"
    # Whether the adapter can send ``document.source_url`` instead of bytes
    accepts_url = False

    def __init__(
        self,
        config: ProviderConfig,
        settings: Optional[Settings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Sleep] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.config = config
        self.settings = settings or get_settings()
        self._transport = transport
        self._sleep = sleep or asyncio.sleep
        self.clock = clock or time.monotonic

    async def run(self, document: Document) -> RawResult:
        started = self.clock()
        try:
            raw = await self._execute(document)
        except ProviderError as exc:
            exc.elapsed_seconds = self.clock() - started
            raise
        raw.elapsed_seconds = self.clock() - started
        return raw

    @abstractmethod
    async def _execute(self, document: Document) -> RawResult:
        ...

    # --- HTTP helpers ---

    def _client(self) -> httpx.AsyncClient:
        t = httpx.Timeout(self.settings.HTTP_TIMEOUT_SEC, connect=self.settings.HTTP_CONNECT_TIMEOUT_SEC)
        return httpx.AsyncClient(timeout=t, transport=self._transport)

    def _require_key(self, value: str) -> str:
        if not value:
            raise AuthMissingError(f"{self.label}: API key not configured")
        return value

    @retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_random_exponential(multiplier=0.2, max=5),
        retry=retry_if_exception(_is_retryable),
    )
    async def _send(self, client: httpx.AsyncClient, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Single HTTP call with retries. Raises httpx.HTTPStatusError on non-2xx."""
        resp = await client.request(method, url, **kwargs)
        resp.raise_for_status()
        return resp

    async def _request(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        *,
        failure: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """``_send`` with failures mapped to provider errors labelled ``failure``."""
        try:
            return await self._send(client, method, url, **kwargs)
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.error("[%s] %s %s -> %s: %s", self.config.id, method, url, status, exc.response.text[:500])
            if 400 <= status < 500:
                raise UpstreamRejectedError(f"{self.label}: {failure}") from exc
            raise UpstreamError(f"{self.label}: {failure}") from exc
        except httpx.RequestError as exc:
            logger.error("[%s] %s %s failed: %s", self.config.id, method, url, exc)
            raise UpstreamError(f"{self.label}: {failure}") from exc

    def _json(self, resp: httpx.Response, failure: str) -> Any:
        try:
            return resp.json()
        except ValueError as exc:
            logger.error("[%s] non-JSON response: %s", self.config.id, resp.text[:500])
            raise UpstreamError(f"{self.label}: {failure}") from exc


class JobState(str, Enum):
    SUBMITTED = "submitted"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


# Classified poll outcomes
PENDING = "pending"
SUCCESS = "success"
ERROR = "error"


@dataclass
class PollStatus:
    state: str
    payload: Dict[str, Any] = field(default_factory=dict)
    message: Optional[str] = None


@dataclass
class ProviderJob:
    """One (document, provider) job as seen by its adapter."""

    provider_id: str
    job_id: str
    state: JobState = JobState.SUBMITTED
    polls: int = 0
    last_status: Optional[PollStatus] = None


class PollingAdapter(ProviderAdapter):
    """Submit, then check status every ``poll_interval`` seconds.

    Each attempt sleeps first and then polls, so a job that succeeds on the
    Nth poll has waited at least ``N * poll_interval``. The attempt budget is
    the only cancellation mechanism: once spent the job fails with
    UpstreamTimeoutError and no further polls are issued.
    """

    def __init__(
        self,
        config: ProviderConfig,
        settings: Optional[Settings] = None,
        *,
        poll_interval: float,
        max_attempts: int,
        **kwargs: Any,
    ) -> None:
        super().__init__(config, settings, **kwargs)
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.job: Optional[ProviderJob] = None

    async def _execute(self, document: Document) -> RawResult:
        async with self._client() as client:
            job_id = await self._submit(client, document)
            job = self.job = ProviderJob(provider_id=self.config.id, job_id=job_id)
            logger.info("[%s][%s] submitted", self.config.id, job_id)

            job.state = JobState.POLLING
            while job.polls < self.max_attempts:
                await self._sleep(self.poll_interval)
                status = await self._poll(client, job)
                job.polls += 1
                job.last_status = status
                if status.state == SUCCESS:
                    job.state = JobState.SUCCEEDED
                    logger.info("[%s][%s] succeeded after %d polls", self.config.id, job_id, job.polls)
                    return await self._collect(client, job, status)
                if status.state == ERROR:
                    job.state = JobState.FAILED
                    logger.warning("[%s][%s] failed: %s", self.config.id, job_id, status.message)
                    raise UpstreamError(f"{self.label}: {status.message or 'Processing failed'}")

            job.state = JobState.TIMED_OUT
            logger.warning("[%s][%s] no result after %d polls", self.config.id, job_id, job.polls)
            raise UpstreamTimeoutError(f"{self.label}: Processing timed out")

    @abstractmethod
    async def _submit(self, client: httpx.AsyncClient, document: Document) -> str:
        """Submit the document and return the backend job id."""

    @abstractmethod
    async def _poll(self, client: httpx.AsyncClient, job: ProviderJob) -> PollStatus:
        """Check job status once."""

    @abstractmethod
    async def _collect(self, client: httpx.AsyncClient, job: ProviderJob, status: PollStatus) -> RawResult:
        """Fetch result representations after success."""
