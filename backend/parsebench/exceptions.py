from __future__ import annotations

"""Domain-specific exceptions for service and orchestration layers.

Routers should catch these and translate them to appropriate HTTP responses.
"""

from typing import Optional


class FileValidationError(Exception):
    """Invalid input (mime, extension, signature, empty, bad URL, unknown provider)."""


class PayloadTooLargeError(Exception):
    """Payload exceeds configured size limits (maps to HTTP 413)."""


class UnsupportedDocumentError(Exception):
    """Provider cannot accept this kind of document (e.g. a PDF for a vision LLM)."""


class ExternalServiceError(Exception):
    """Upstream provider or storage error (maps to HTTP 503)."""


class ProviderError(ExternalServiceError):
    """Terminal failure of one provider job.

    ``kind`` names the failure class; ``elapsed_seconds`` is filled in by the
    adapter once the failure is terminal so callers can report time-to-failure.
    """

    kind = "UpstreamError"

    def __init__(self, message: str, *, elapsed_seconds: Optional[float] = None) -> None:
        super().__init__(message)
        self.message = message
        self.elapsed_seconds = elapsed_seconds


class AuthMissingError(ProviderError):
    """Backend credential is absent. Never retried."""

    kind = "AuthMissing"


class UpstreamRejectedError(ProviderError):
    """Backend answered with a 4xx."""

    kind = "UpstreamRejected"


class UpstreamTimeoutError(ProviderError):
    """Polling attempt budget exhausted."""

    kind = "UpstreamTimeout"


class UpstreamError(ProviderError):
    """Backend reported a processing failure, or stayed unreachable after retries."""

    kind = "UpstreamError"
