"""Resolve backend-local image and table references in markdown and HTML.

Backends point at assets three ways: an opaque id inside markdown link syntax
(Mistral), a filename in markdown or an HTML ``src`` attribute (Marker), or a
ready-made HTML fragment keyed by id (Mistral tables). References with bytes
become a hosted URL or a data URI; references without bytes become a neutral
placeholder. Each asset is resolved independently and a failure on one never
fails the parse.
"""
from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..services.adapters.raw import LlamaParseRaw, MarkerRaw, MistralRaw, RawResult, VisionLLMRaw
from ..services.gcs import NullAssetStore, ObjectStore

logger = logging.getLogger(__name__)

PAGE_SEPARATOR = "\n\n---\n\n"

_DATA_URI_RE = re.compile(r"^data:([^;,]+);base64,(.*)$", re.DOTALL)
_MD_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\(([^)]+)\)")
_HTML_IMG_RE = re.compile(r"<img\s+[^>]*src=\"([^\"]+)\"[^>]*>", re.IGNORECASE)
_TABLE_LINK_RE = re.compile(r"\[([^\]]*)\]\((tbl-(\d+)\.html)\)", re.IGNORECASE)

MISTRAL_IMAGE_TYPE = "image/jpeg"
MARKER_IMAGE_TYPE = "image/png"


def is_external(src: str) -> bool:
    return src.startswith(("http://", "https://", "data:"))


def image_placeholder(alt: str) -> str:
    return f"[Image: {alt}]" if alt else "[Image]"


def split_encoded(encoded: str, default_type: str) -> Tuple[str, str]:
    """Return ``(content_type, base64_payload)`` for a bare or data-URI encoding."""
    match = _DATA_URI_RE.match(encoded)
    if match:
        return match.group(1), match.group(2)
    return default_type, encoded


@dataclass
class InlinedOutputs:
    markdown: str
    html: Optional[str] = None
    unresolved: int = 0


class AssetInliner:
    """Inline assets for one provider result.

    Resolved URLs are cached per asset so the same image referenced from both
    markdown and HTML is uploaded once.
    """

    def __init__(self, store: Optional[ObjectStore] = None, *, name_prefix: str = "") -> None:
        self.store = store or NullAssetStore()
        self.name_prefix = name_prefix
        self._urls: Dict[str, str] = {}
        self.unresolved = 0

    async def asset_url(self, key: str, encoded: str, default_type: str) -> str:
        """Durable URL for an encoded asset, else a data URI with the same bytes."""
        if key in self._urls:
            return self._urls[key]
        content_type, payload = split_encoded(encoded, default_type)
        data_uri = f"data:{content_type};base64,{payload}"
        url: Optional[str] = None
        try:
            data = base64.b64decode(payload)
        except (binascii.Error, ValueError) as exc:
            logger.warning("[assets] %s: undecodable image payload (%s), keeping it inline", key, exc)
        else:
            try:
                url = await self.store.store(data, content_type, f"{self.name_prefix}{key}")
            except Exception as exc:
                logger.warning("[assets] %s: upload failed (%s), inlining as data URI", key, exc)
        self._urls[key] = url or data_uri
        return self._urls[key]

    async def inline(self, raw: RawResult) -> InlinedOutputs:
        if isinstance(raw, MistralRaw):
            return await self.inline_mistral(raw.payload)
        if isinstance(raw, MarkerRaw):
            payload = raw.payload or {}
            images = payload.get("images") if isinstance(payload.get("images"), Mapping) else {}
            markdown = await self.inline_marker_markdown(str(payload.get("markdown") or ""), images)
            html = await self.inline_marker_html(str(payload.get("html") or ""), images)
            return InlinedOutputs(markdown, html or None, self.unresolved)
        if isinstance(raw, LlamaParseRaw):
            return InlinedOutputs(raw.markdown)
        if isinstance(raw, VisionLLMRaw):
            return InlinedOutputs(raw.text)
        raise TypeError(f"Unsupported raw result: {type(raw).__name__}")

    # --- Mistral ---

    async def inline_mistral(self, payload: Mapping[str, Any]) -> InlinedOutputs:
        pages = [p for p in (payload.get("pages") or []) if isinstance(p, Mapping)]
        processed: List[str] = []
        fragments: List[str] = []
        for page in pages:
            images = [i for i in (page.get("images") or []) if isinstance(i, Mapping)]
            tables = [t for t in (page.get("tables") or []) if isinstance(t, Mapping)]
            processed.append(await self.inline_mistral_page(str(page.get("markdown") or ""), images, tables))
            fragments.extend(h for h in (_table_html(t) for t in tables) if h)
        html = "\n".join(fragments) or None
        return InlinedOutputs(PAGE_SEPARATOR.join(processed), html, self.unresolved)

    async def inline_mistral_page(
        self,
        markdown: str,
        images: List[Mapping[str, Any]],
        tables: List[Mapping[str, Any]],
    ) -> str:
        out = markdown
        for img in images:
            img_id = str(img.get("id") or "")
            if not img_id:
                continue
            try:
                out = await self._inline_mistral_image(out, img_id, img.get("image_base64"))
            except Exception:
                # The reference is left in place and counted by the sweep below
                logger.exception("[assets] mistral image %s could not be inlined", img_id)

        def strip_local(match: "re.Match[str]") -> str:
            alt, src = match.group(1), match.group(2)
            if is_external(src):
                return match.group(0)
            self.unresolved += 1
            logger.warning("[assets] mistral image %s unresolved, using placeholder", src)
            return image_placeholder(alt)

        out = _MD_IMAGE_RE.sub(strip_local, out)

        for index, table in enumerate(tables):
            html = _table_html(table)
            if not html:
                continue
            table_id = str(table.get("id") or "")
            candidates = [f"tbl-{index}.html", f"tbl-{index}"]
            if table_id:
                candidates = [table_id, f"{table_id}.html"] + candidates
            for target in candidates:
                pattern = re.compile(r"\[([^\]]*)\]\(" + re.escape(target) + r"\)", re.IGNORECASE)
                out, n = pattern.subn(lambda _m: f"\n\n{html}\n\n", out)
                if n:
                    logger.debug("[assets] mistral table %d matched %s", index, target)
                    break

        def remaining_table(match: "re.Match[str]") -> str:
            index = int(match.group(3))
            html = _table_html(tables[index]) if index < len(tables) else None
            if html:
                return f"\n\n{html}\n\n"
            self.unresolved += 1
            logger.warning("[assets] table reference %s has no content", match.group(2))
            return f"[Table: {match.group(1)}]"

        return _TABLE_LINK_RE.sub(remaining_table, out)

    async def _inline_mistral_image(self, markdown: str, img_id: str, encoded: Any) -> str:
        # Matches ![alt](id) and ![alt](id.jpeg); img-1 never matches img-10
        pattern = re.compile(r"!\[([^\]]*)\]\(" + re.escape(img_id) + r"(?:\.[A-Za-z0-9]+)?\)", re.IGNORECASE)
        if not pattern.search(markdown):
            return markdown
        if not encoded:
            self.unresolved += 1
            logger.warning("[assets] mistral image %s has no bytes, using placeholder", img_id)
            return pattern.sub(lambda m: f"[Image: {m.group(1)}]", markdown)
        url = await self.asset_url(f"mistral-{img_id}", str(encoded), MISTRAL_IMAGE_TYPE)
        return pattern.sub(lambda m: f"![{m.group(1)}]({url})", markdown)

    # --- Marker ---

    async def inline_marker_markdown(self, markdown: str, images: Mapping[str, Any]) -> str:
        out = markdown
        for filename, encoded in images.items():
            if not encoded:
                continue
            try:
                url = await self.asset_url(f"marker-{filename}", str(encoded), MARKER_IMAGE_TYPE)
                exact = re.compile(r"!\[([^\]]*)\]\(" + re.escape(filename) + r"\)", re.IGNORECASE)
                out, n = exact.subn(lambda m: f"![{m.group(1)}]({url})", out)
                if not n:
                    basename = filename.rsplit("/", 1)[-1]
                    loose = re.compile(r"!\[([^\]]*)\]\([^)]*" + re.escape(basename) + r"[^)]*\)", re.IGNORECASE)
                    out = loose.sub(lambda m: f"![{m.group(1)}]({url})", out)
            except Exception:
                self.unresolved += 1
                logger.exception("[assets] marker image %s could not be inlined", filename)

        def strip_local(match: "re.Match[str]") -> str:
            alt, src = match.group(1), match.group(2)
            if is_external(src):
                return match.group(0)
            self.unresolved += 1
            logger.warning("[assets] marker image %s unresolved, using placeholder", src)
            return image_placeholder(alt)

        return _MD_IMAGE_RE.sub(strip_local, out)

    async def inline_marker_html(self, html: str, images: Mapping[str, Any]) -> str:
        if not html:
            return ""
        out = html
        for filename, encoded in images.items():
            if not encoded:
                continue
            try:
                url = await self.asset_url(f"marker-{filename}", str(encoded), MARKER_IMAGE_TYPE)
                exact = re.compile(r"src=[\"']" + re.escape(filename) + r"[\"']", re.IGNORECASE)
                out = exact.sub(lambda _m: f'src="{url}"', out)
                basename = filename.rsplit("/", 1)[-1]
                loose = re.compile(r"src=[\"'][^\"']*" + re.escape(basename) + r"[\"']", re.IGNORECASE)
                out = loose.sub(lambda _m: f'src="{url}"', out)
            except Exception:
                self.unresolved += 1
                logger.exception("[assets] marker html image %s could not be inlined", filename)

        def strip_local(match: "re.Match[str]") -> str:
            src = match.group(1)
            if is_external(src):
                return match.group(0)
            self.unresolved += 1
            logger.warning("[assets] marker html image %s unresolved, removed", src)
            return "<!-- Image removed -->"

        return _HTML_IMG_RE.sub(strip_local, out)


def _table_html(table: Mapping[str, Any]) -> Optional[str]:
    html = table.get("html") or table.get("content")
    return str(html) if html else None
