from __future__ import annotations

import logging

from ..documents import Document
from ..utils.pdf import count_pdf_pages, extract_first_pages

logger = logging.getLogger(__name__)


def truncate_document(document: Document, max_pages: int) -> Document:
    """Bound backend cost by keeping only the first ``max_pages`` PDF pages.

    Steps:
    1) Non-paged media (images) and URL-only documents pass through unchanged.
    2) Count pages; documents within budget are returned as-is.
    3) Rebuild a PDF with pages ``[0, max_pages)`` in their original order.

    Truncation is an optimization only: any failure to parse or rebuild
    returns the original document.
    """
    if not document.is_pdf or not document.has_bytes:
        return document
    if max_pages < 1:
        logger.warning("[PDF Strip] ignoring non-positive page budget %s", max_pages)
        return document

    try:
        total_pages = count_pdf_pages(document.data)
        if total_pages <= max_pages:
            logger.info("[PDF Strip] document has %d pages, no stripping needed", total_pages)
            return document
        logger.info("[PDF Strip] stripping PDF from %d to %d pages", total_pages, max_pages)
        stripped = extract_first_pages(document.data, max_pages)
    except Exception as exc:  # noqa: BLE001 truncation must never fail the request
        logger.warning("[PDF Strip] error stripping %s, sending original: %s", document.filename, exc)
        return document

    return document.with_data(stripped)
