from __future__ import annotations

import io
import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest
from pypdf import PdfWriter
from pypdf.generic import DecodedStreamObject, NameObject

from parsebench.config import Settings

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32

CREDENTIALS = ("LLAMA_PARSE_API_KEY", "DATALAB_API_KEY", "MISTRAL_API_KEY", "OPENROUTER_API_KEY")


def page_stream(index: int) -> bytes:
    return f"BT /F1 12 Tf 72 720 Td (page {index + 1}) Tj ET".encode("ascii")


def make_pdf(pages: int) -> bytes:
    """PDF whose pages differ in size and content stream."""
    writer = PdfWriter()
    for i in range(pages):
        page = writer.add_blank_page(width=600 + i, height=800)
        stream = DecodedStreamObject()
        stream.set_data(page_stream(i))
        page[NameObject("/Contents")] = writer._add_object(stream)
    out = io.BytesIO()
    writer.write(out)
    return out.getvalue()


class FakeClock:
    """Injectable clock whose ``sleep`` advances time instantly."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeStore:
    """Object store double; ``url`` None behaves like an unavailable store."""

    def __init__(self, url: Optional[str] = "https://assets.test", fail: bool = False) -> None:
        self.url = url
        self.fail = fail
        self.calls: List[Tuple[bytes, str, str]] = []

    async def store(self, data: bytes, content_type: str, name: str) -> Optional[str]:
        self.calls.append((data, content_type, name))
        if self.fail:
            raise RuntimeError("bucket unavailable")
        if self.url is None:
            return None
        return f"{self.url}/{name}"


Handler = Callable[[httpx.Request], httpx.Response]


class Router:
    """Routes MockTransport requests by (method, path suffix) and records them."""

    def __init__(self) -> None:
        self.routes: List[Tuple[str, str, Handler]] = []
        self.requests: List[httpx.Request] = []

    def add(self, method: str, suffix: str, handler: Any) -> None:
        if not callable(handler):
            payload = handler
            handler = lambda _req: httpx.Response(200, json=payload)  # noqa: E731
        self.routes.append((method, suffix, handler))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for method, suffix, handler in self.routes:
            if request.method == method and request.url.path.endswith(suffix):
                return handler(request)
        return httpx.Response(404, json={"detail": f"no route for {request.url.path}"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def paths(self) -> List[str]:
        return [r.url.path for r in self.requests]


def request_json(request: httpx.Request) -> Dict[str, Any]:
    return json.loads(request.content)


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    for key in CREDENTIALS:
        monkeypatch.setenv(key, f"test-{key.lower()}")
    monkeypatch.setenv("ASSET_BUCKET", "")
    monkeypatch.setenv("MAX_PDF_PAGES", "2")
    monkeypatch.setenv("FETCH_REMOTE_DOCUMENTS", "true")
    return Settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def router() -> Router:
    return Router()
