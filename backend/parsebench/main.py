"""
Main FastAPI application for the Parse Benchmark backend.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from .config import get_settings
from .exceptions import (
    ExternalServiceError,
    FileValidationError,
    PayloadTooLargeError,
    UnsupportedDocumentError,
)
from .routers.config import router as config_router
from .routers.health import router as health_router
from .routers.parse import SECURE_HEADERS, router as parse_router


settings = get_settings()
logger = logging.getLogger(__name__)


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(health_router, prefix=settings.API_PREFIX)
app.include_router(config_router, prefix=settings.API_PREFIX)
app.include_router(parse_router, prefix=settings.API_PREFIX)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code, headers=SECURE_HEADERS)


@app.exception_handler(FileValidationError)
async def file_validation_handler(request: Request, exc: FileValidationError) -> JSONResponse:
    return _error(400, str(exc))


@app.exception_handler(UnsupportedDocumentError)
async def unsupported_document_handler(request: Request, exc: UnsupportedDocumentError) -> JSONResponse:
    return _error(400, str(exc))


@app.exception_handler(PayloadTooLargeError)
async def payload_too_large_handler(request: Request, exc: PayloadTooLargeError) -> JSONResponse:
    return _error(413, str(exc))


@app.exception_handler(ExternalServiceError)
async def external_service_handler(request: Request, exc: ExternalServiceError) -> JSONResponse:
    logger.error("External service error on %s: %s", request.url.path, exc)
    return _error(503, "Service temporarily unavailable")


@app.get("/", tags=["root"])
async def root() -> dict:
    """Simple root endpoint."""
    return {"name": app.title, "version": app.version}
