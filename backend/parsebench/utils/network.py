from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlparse

import httpx

from ..documents import Document, media_type_from_name, normalize_media_type
from ..exceptions import FileValidationError, PayloadTooLargeError

logger = logging.getLogger(__name__)

USER_AGENT = "ParseBenchmark/1.0"

_BLOCKED_PREFIXES = ("192.168.", "10.", "172.16.")
_BLOCKED_HOSTS = {"localhost", "127.0.0.1", "0.0.0.0"}


def validate_remote_url(url: str) -> str:
    """Accept only https URLs that do not point at local or private hosts."""
    try:
        parsed = urlparse((url or "").strip())
    except ValueError as exc:
        raise FileValidationError("Invalid or disallowed URL") from exc
    host = (parsed.hostname or "").lower()
    if parsed.scheme != "https" or not host:
        raise FileValidationError("Invalid or disallowed URL")
    if host in _BLOCKED_HOSTS or host.startswith(_BLOCKED_PREFIXES) or host.endswith(".local"):
        raise FileValidationError("Invalid or disallowed URL")
    return parsed.geturl()


def remote_document(url: str) -> Document:
    """URL-only document; the media type is inferred from the path extension."""
    url = validate_remote_url(url)
    filename = urlparse(url).path.rsplit("/", 1)[-1] or "document"
    media_type = media_type_from_name(filename) or "application/octet-stream"
    return Document(data=b"", media_type=media_type, filename=filename, source_url=url)


async def _check_hop(request: httpx.Request) -> None:
    # Runs for the first request and again for every redirect target
    validate_remote_url(str(request.url))


async def fetch_remote_document(
    url: str,
    *,
    max_bytes: int,
    timeout: float = 30.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Document:
    """Download ``url`` into a :class:`Document`.

    The media type comes from Content-Type; a generic
    ``application/octet-stream`` falls back to the filename extension.
    """
    url = validate_remote_url(url)
    t = httpx.Timeout(timeout, connect=5.0)
    hooks = {"request": [_check_hop]}
    async with httpx.AsyncClient(timeout=t, transport=transport, follow_redirects=True, event_hooks=hooks) as client:
        try:
            resp = await client.get(url, headers={"User-Agent": USER_AGENT})
        except httpx.RequestError as exc:
            logger.warning("Fetching %s failed: %s", url, exc)
            raise FileValidationError("Failed to fetch file from URL") from exc
        if resp.status_code >= 400:
            raise FileValidationError(f"Failed to fetch file from URL: {resp.status_code} {resp.reason_phrase}")
        data = resp.content

    if len(data) > max_bytes:
        raise PayloadTooLargeError(f"File too large (max {max_bytes // (1024 * 1024)}MB)")

    filename = urlparse(url).path.rsplit("/", 1)[-1] or "document"
    media_type = normalize_media_type(resp.headers.get("content-type", "application/octet-stream"))
    if media_type == "application/octet-stream":
        media_type = media_type_from_name(filename) or media_type
    logger.info("Fetched %s (%d bytes, %s)", url, len(data), media_type)
    return Document(data=data, media_type=media_type, filename=filename, source_url=url)
