"""Application settings and configuration helpers."""
from __future__ import annotations

import os
from functools import lru_cache
from typing import List
from dotenv import load_dotenv, find_dotenv


class Settings:
    """Runtime configuration loaded from environment variables.

    Defaults match the reference deployment. Backend credentials are read
    here but never required at startup: a missing key only fails the
    provider that needs it.
    """

    APP_NAME: str = "Parse Benchmark API"
    API_PREFIX: str = "/api"

    # CORS
    CORS_ORIGINS: List[str]

    # Limits
    MAX_SIZE_MB: int
    MAX_PDF_PAGES: int
    ACCEPTED_MIME: List[str]
    FETCH_REMOTE_DOCUMENTS: bool

    # HTTP
    HTTP_TIMEOUT_SEC: float
    HTTP_CONNECT_TIMEOUT_SEC: float

    # LlamaParse
    LLAMA_PARSE_API_KEY: str
    LLAMAPARSE_API_BASE: str
    LLAMAPARSE_POLL_INTERVAL_SEC: float
    LLAMAPARSE_MAX_ATTEMPTS: int

    # Datalab Marker
    DATALAB_API_KEY: str
    DATALAB_MARKER_API: str
    MARKER_POLL_INTERVAL_SEC: float
    MARKER_MAX_ATTEMPTS: int

    # Mistral OCR
    MISTRAL_API_KEY: str
    MISTRAL_OCR_API: str

    # Vision LLMs
    OPENROUTER_API_KEY: str
    OPENROUTER_URL: str
    LLM_MAX_OUTPUT_TOKENS: int

    # Asset storage
    ASSET_BUCKET: str
    ASSET_PREFIX: str
    ASSET_PUBLIC_BASE_URL: str

    def __init__(self) -> None:
        # Load .env once (supports parent directories)
        load_dotenv(find_dotenv(), override=False)
        self.CORS_ORIGINS = self._get_list("CORS_ORIGINS", default="*")
        self.MAX_SIZE_MB = int(os.getenv("MAX_SIZE_MB", "10"))
        self.MAX_PDF_PAGES = int(os.getenv("MAX_PDF_PAGES", "2"))
        self.ACCEPTED_MIME = [
            "image/png",
            "image/jpeg",
            "image/jpg",
            "image/webp",
            "image/gif",
            "application/pdf",
        ]
        self.FETCH_REMOTE_DOCUMENTS = os.getenv("FETCH_REMOTE_DOCUMENTS", "true").lower() == "true"

        self.HTTP_TIMEOUT_SEC = float(os.getenv("HTTP_TIMEOUT_SEC", "60"))
        self.HTTP_CONNECT_TIMEOUT_SEC = float(os.getenv("HTTP_CONNECT_TIMEOUT_SEC", "5"))

        self.LLAMA_PARSE_API_KEY = os.getenv("LLAMA_PARSE_API_KEY", "")
        self.LLAMAPARSE_API_BASE = os.getenv(
            "LLAMAPARSE_API_BASE", "https://api.cloud.llamaindex.ai/api/parsing"
        )
        self.LLAMAPARSE_POLL_INTERVAL_SEC = float(os.getenv("LLAMAPARSE_POLL_INTERVAL_SEC", "2"))
        self.LLAMAPARSE_MAX_ATTEMPTS = int(os.getenv("LLAMAPARSE_MAX_ATTEMPTS", "30"))

        self.DATALAB_API_KEY = os.getenv("DATALAB_API_KEY", "")
        self.DATALAB_MARKER_API = os.getenv("DATALAB_MARKER_API", "https://www.datalab.to/api/v1/marker")
        self.MARKER_POLL_INTERVAL_SEC = float(os.getenv("MARKER_POLL_INTERVAL_SEC", "2"))
        self.MARKER_MAX_ATTEMPTS = int(os.getenv("MARKER_MAX_ATTEMPTS", "60"))

        self.MISTRAL_API_KEY = os.getenv("MISTRAL_API_KEY", "")
        self.MISTRAL_OCR_API = os.getenv("MISTRAL_OCR_API", "https://api.mistral.ai/v1/ocr")

        self.OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY", "")
        self.OPENROUTER_URL = os.getenv("OPENROUTER_URL", "https://openrouter.ai/api/v1/chat/completions")
        try:
            mot = int(os.getenv("LLM_MAX_OUTPUT_TOKENS", "4096"))
        except ValueError:
            mot = 4096
        # Clamp to a reasonable range to avoid provider errors
        self.LLM_MAX_OUTPUT_TOKENS = max(256, min(8192, mot))

        # Empty bucket means "no storage configured"; assets fall back to data URIs
        self.ASSET_BUCKET = os.getenv("ASSET_BUCKET", "")
        self.ASSET_PREFIX = os.getenv("ASSET_PREFIX", "parse-benchmark")
        self.ASSET_PUBLIC_BASE_URL = os.getenv("ASSET_PUBLIC_BASE_URL", "https://storage.googleapis.com")

    @property
    def max_size_bytes(self) -> int:
        return self.MAX_SIZE_MB * 1024 * 1024

    @staticmethod
    def _get_list(name: str, default: str = "") -> List[str]:
        raw = os.getenv(name, default)
        return [item.strip() for item in raw.split(",") if item.strip()] or ["*"]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()
