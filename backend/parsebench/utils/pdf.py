from __future__ import annotations

import io
from pypdf import PdfReader, PdfWriter

from ..exceptions import FileValidationError


def count_pdf_pages(data: bytes) -> int:
    """Count pages of a PDF from raw bytes.

    Only the page tree is walked; page content streams are not decoded.
    Raises FileValidationError on invalid or unreadable PDFs.
    """
    try:
        reader = PdfReader(io.BytesIO(data))
        return len(reader.pages)
    except Exception as exc:  # noqa: BLE001 broad, returns user error
        raise FileValidationError("Invalid or unreadable PDF") from exc


def extract_first_pages(data: bytes, max_pages: int) -> bytes:
    """Build a new PDF holding pages ``[0, max_pages)`` of ``data`` in order.

    Page objects (and their content streams) are copied as-is. Parsing or
    writing errors propagate to the caller.
    """
    reader = PdfReader(io.BytesIO(data))
    writer = PdfWriter()
    for page in reader.pages[:max_pages]:
        writer.add_page(page)
    out = io.BytesIO()
    writer.write(out)
    return out.getvalue()
