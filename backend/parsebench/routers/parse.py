"""Parse router: run one provider, or benchmark several, on an uploaded or remote document.

Both endpoints take multipart form data (``file`` plus provider fields) or a
JSON body with a ``url``. Domain exceptions are mapped to HTTP responses by
the handlers registered in ``main``.
"""
from __future__ import annotations

import logging
from typing import AsyncIterator, List, Tuple

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ValidationError
from starlette.datastructures import UploadFile

from ..config import get_settings
from ..documents import Document, accept_upload
from ..exceptions import FileValidationError, ProviderError
from ..models import UrlBenchmarkRequest, UrlParseRequest
from ..services.orchestration.benchmark_service import BenchmarkRun, BenchmarkService
from ..services.orchestration.provider_pipeline import ProviderPipeline, sanitize_error
from ..utils.network import remote_document

logger = logging.getLogger(__name__)

router = APIRouter(tags=["parse"])

SECURE_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Cache-Control": "no-store, no-cache, must-revalidate",
}


def get_pipeline() -> ProviderPipeline:
    return ProviderPipeline()


def get_benchmark_service(pipeline: ProviderPipeline = Depends(get_pipeline)) -> BenchmarkService:
    return BenchmarkService(pipeline)


def _is_multipart(request: Request) -> bool:
    return request.headers.get("content-type", "").startswith("multipart/form-data")


async def _json_body(request: Request, model: type) -> BaseModel:
    try:
        payload = await request.json()
        return model.model_validate(payload)
    except (ValueError, ValidationError) as exc:
        raise FileValidationError("Invalid request parameters") from exc


async def _form_document(form) -> Document:
    settings = get_settings()
    upload = form.get("file")
    if isinstance(upload, UploadFile):
        data = await upload.read()
        return accept_upload(upload.filename or "document", upload.content_type or "", data, max_bytes=settings.max_size_bytes)
    url = form.get("url")
    if isinstance(url, str) and url:
        return remote_document(url)
    raise FileValidationError("Missing file or provider")


async def read_parse_request(request: Request) -> Tuple[Document, str]:
    if _is_multipart(request):
        form = await request.form()
        provider_id = form.get("providerId")
        if not isinstance(provider_id, str) or not provider_id:
            raise FileValidationError("Missing file or provider")
        return await _form_document(form), provider_id
    body = await _json_body(request, UrlParseRequest)
    return remote_document(body.url), body.providerId


async def read_benchmark_request(request: Request) -> Tuple[Document, List[str]]:
    if _is_multipart(request):
        form = await request.form()
        provider_ids = [p for p in form.getlist("providerIds") if isinstance(p, str) and p]
        if not provider_ids:
            raise FileValidationError("Missing file or provider")
        return await _form_document(form), provider_ids
    body = await _json_body(request, UrlBenchmarkRequest)
    return remote_document(body.url), body.providerIds


@router.post("/parse")
async def parse_document(request: Request, pipeline: ProviderPipeline = Depends(get_pipeline)) -> JSONResponse:
    """Parse a document with a single provider."""
    document, provider_id = await read_parse_request(request)
    try:
        run = await pipeline.run_provider(document, provider_id)
    except ProviderError as exc:
        elapsed = exc.elapsed_seconds or 0.0
        logger.warning("[%s] parse failed after %.2fs: %s", provider_id, elapsed, exc)
        return JSONResponse(
            {"error": sanitize_error(exc), "errorKind": exc.kind, "stats": {"elapsedSeconds": elapsed}},
            status_code=500,
            headers=SECURE_HEADERS,
        )
    return JSONResponse(run.to_response().model_dump(mode="json", exclude_none=True), headers=SECURE_HEADERS)


async def _ndjson(service: BenchmarkService, run: BenchmarkRun) -> AsyncIterator[str]:
    async for result in service.execute(run):
        yield result.model_dump_json(exclude_none=True) + "\n"


@router.post("/benchmark")
async def benchmark_document(
    request: Request,
    stream: bool = Query(default=False, description="Emit NDJSON lines as providers settle"),
    service: BenchmarkService = Depends(get_benchmark_service),
):
    """Run every selected provider on one document."""
    document, provider_ids = await read_benchmark_request(request)
    # Validation and the one-time download happen before any bytes are sent
    run = await service.start(document, provider_ids)
    if stream:
        return StreamingResponse(_ndjson(service, run), media_type="application/x-ndjson", headers=SECURE_HEADERS)
    async for _ in service.execute(run):
        pass
    return JSONResponse(run.to_response().model_dump(mode="json", exclude_none=True), headers=SECURE_HEADERS)
