"""Vision LLM adapter: one OpenRouter chat completion per image, returning markdown.

This is the degenerate adapter: no polling, no blocks, only raw text plus
token usage for per-token cost accounting.
"""
from __future__ import annotations

import base64
import logging

from ...documents import Document
from ...exceptions import UnsupportedDocumentError, UpstreamError
from .base import ProviderAdapter
from .raw import VisionLLMRaw

logger = logging.getLogger(__name__)


PARSING_PROMPT = (
    """You are a document parsing assistant. Extract ALL text content from this document/image accurately and completely.

Instructions:
- Preserve the original structure (headings, paragraphs, lists, tables)
- For tables, use markdown table format
- Include all visible text, numbers, and data
- Maintain the reading order (left-to-right, top-to-bottom)
- If there are multiple columns, process them in logical order
- Do not add any commentary or explanations
- Do not summarize - extract the complete text

Output the extracted text in clean markdown format."""
)


class VisionLLMAdapter(ProviderAdapter):
    label = "Vision LLM"
    accepts_url = True

    def _image_reference(self, document: Document) -> str:
        if document.is_pdf:
            raise UnsupportedDocumentError("Vision LLMs only support images (PNG, JPG, WebP, GIF)")
        if document.has_bytes:
            return f"data:{document.media_type};base64,{base64.b64encode(document.data).decode('ascii')}"
        if document.source_url:
            return document.source_url
        raise UpstreamError(f"{self.config.name}: Missing image data")

    async def _execute(self, document: Document) -> VisionLLMRaw:
        key = self._require_key(self.settings.OPENROUTER_API_KEY)
        headers = {
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.config.model_id,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": PARSING_PROMPT},
                        {"type": "image_url", "image_url": {"url": self._image_reference(document)}},
                    ],
                }
            ],
            "temperature": 0,
            "max_tokens": self.settings.LLM_MAX_OUTPUT_TOKENS,
        }
        async with self._client() as client:
            resp = await self._request(
                client,
                "POST",
                self.settings.OPENROUTER_URL,
                failure="API request failed",
                headers=headers,
                json=payload,
            )
        data = self._json(resp, "API returned non-JSON")
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            logger.exception("OpenRouter unexpected response: %s", data)
            raise UpstreamError(f"{self.label}: API parse error: {e}")
        usage = data.get("usage") or {}
        return VisionLLMRaw(
            text=content or "",
            input_tokens=int(usage.get("prompt_tokens") or 0),
            output_tokens=int(usage.get("completion_tokens") or 0),
        )
