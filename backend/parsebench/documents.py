"""Document value object and upload validation."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from .exceptions import FileValidationError, PayloadTooLargeError

PDF = "application/pdf"
PNG = "image/png"
JPEG = "image/jpeg"
WEBP = "image/webp"
GIF = "image/gif"

ALLOWED_MIME_TYPES = frozenset({PNG, JPEG, "image/jpg", WEBP, GIF, PDF})
ALLOWED_EXTENSIONS = frozenset({".png", ".jpg", ".jpeg", ".webp", ".gif", ".pdf"})

_EXTENSION_TYPES = {
    ".pdf": PDF,
    ".png": PNG,
    ".jpg": JPEG,
    ".jpeg": JPEG,
    ".webp": WEBP,
    ".gif": GIF,
}


@dataclass(frozen=True)
class Document:
    """Immutable document payload.

    ``data`` may be empty when only ``source_url`` is known; adapters that
    cannot take a URL get the document fetched first.
    """

    data: bytes
    media_type: str
    filename: str = "document"
    source_url: Optional[str] = None

    @property
    def is_pdf(self) -> bool:
        return self.media_type == PDF

    @property
    def is_image(self) -> bool:
        return self.media_type.startswith("image/")

    @property
    def has_bytes(self) -> bool:
        return bool(self.data)

    def with_data(self, data: bytes) -> "Document":
        return Document(data=data, media_type=self.media_type, filename=self.filename, source_url=self.source_url)


def normalize_media_type(media_type: str) -> str:
    media_type = (media_type or "").split(";")[0].strip().lower()
    return JPEG if media_type == "image/jpg" else media_type


def media_type_from_name(name: str) -> Optional[str]:
    """Infer the media type from a filename or URL path extension."""
    path = (name or "").split("?", 1)[0].split("#", 1)[0]
    ext = os.path.splitext(path)[1].lower()
    return _EXTENSION_TYPES.get(ext)


def sniff_media_type(data: bytes) -> Optional[str]:
    """Identify the payload by its magic bytes."""
    head = data[:12]
    if head.startswith(b"\x89PNG"):
        return PNG
    if head.startswith(b"\xff\xd8\xff"):
        return JPEG
    if head.startswith(b"RIFF") and (len(head) < 12 or head[8:12] == b"WEBP"):
        return WEBP
    if head.startswith(b"GIF8"):
        return GIF
    if head.startswith(b"%PDF"):
        return PDF
    return None


def accept_upload(filename: str, content_type: str, data: bytes, *, max_bytes: int) -> Document:
    """Validate an uploaded file and wrap it as a :class:`Document`.

    Checks the MIME allowlist, the extension allowlist, size, and that the
    magic bytes match the declared type.
    """
    if not data:
        raise FileValidationError(f"File {filename} is empty")
    if len(data) > max_bytes:
        raise PayloadTooLargeError(f"File too large (max {max_bytes // (1024 * 1024)}MB)")

    declared = (content_type or "").split(";")[0].strip().lower()
    if declared not in ALLOWED_MIME_TYPES:
        raise FileValidationError("Unsupported file type")

    ext = os.path.splitext(filename or "")[1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise FileValidationError("Unsupported file extension")

    media_type = normalize_media_type(declared)
    if sniff_media_type(data) != media_type:
        raise FileValidationError("File content does not match declared type")

    return Document(data=data, media_type=media_type, filename=filename)
