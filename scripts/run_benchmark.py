#!/usr/bin/env python3
"""
Run a parse benchmark from the command line and export a CSV summary.

What it does
- Loads a local file (PNG, JPEG, WEBP, GIF, PDF) or takes an https URL
- Runs the selected providers concurrently through the same pipeline as the API
- Writes one CSV row per provider: status, elapsed, cost, tokens, pages, blocks, error
- Optionally saves each provider's markdown next to the CSV

Requirements
- Backend credentials in the environment or a .env file
  (LLAMA_PARSE_API_KEY, DATALAB_API_KEY, MISTRAL_API_KEY, OPENROUTER_API_KEY)

Usage examples
python scripts/run_benchmark.py invoice.pdf --providers llamaparse,mistral-ocr,datalab-marker
python scripts/run_benchmark.py https://example.com/scan.png --providers gpt-4o,mistral-ocr --save-markdown
"""
from __future__ import annotations

import argparse
import asyncio
import csv
import logging
import mimetypes
from datetime import datetime
from pathlib import Path
from typing import List

from parsebench.config import get_settings
from parsebench.documents import Document, accept_upload
from parsebench.models import ParseResult
from parsebench.providers import PROVIDERS
from parsebench.services.orchestration.benchmark_service import BenchmarkService
from parsebench.utils.network import remote_document


def load_document(source: str) -> Document:
    if source.startswith(("http://", "https://")):
        return remote_document(source)
    path = Path(source)
    content_type = mimetypes.guess_type(path.name)[0] or ""
    return accept_upload(path.name, content_type, path.read_bytes(), max_bytes=get_settings().max_size_bytes)


def write_csv(path: Path, results: List[ParseResult]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        w.writerow(["provider", "status", "elapsedSeconds", "cost", "tokens", "pages", "blocks", "error"])
        for r in results:
            stats = r.stats
            blocks = r.outputs.blocks if r.outputs and r.outputs.blocks else []
            w.writerow([
                r.providerId,
                r.status,
                f"{stats.elapsedSeconds:.2f}" if stats else "",
                f"{stats.cost:.6f}" if stats else "",
                stats.tokens if stats else "",
                stats.pages if stats and stats.pages is not None else "",
                len(blocks),
                r.error or r.skipReason or "",
            ])


def main() -> None:
    parser = argparse.ArgumentParser(description="Benchmark document parsers on one document")
    parser.add_argument("source", type=str, help="Local file path or https URL")
    parser.add_argument(
        "--providers",
        type=str,
        default=",".join(p.id for p in PROVIDERS if p.is_parser),
        help="Comma-separated provider ids (default: all document parsers)",
    )
    parser.add_argument("--output-dir", type=str, default="analysis")
    parser.add_argument("--save-markdown", action="store_true", help="Also write <provider>.md files")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    provider_ids = [p.strip() for p in args.providers.split(",") if p.strip()]
    document = load_document(args.source)
    run = asyncio.run(BenchmarkService().run(document, provider_ids))
    results = run.ordered_results()

    ts = datetime.now().strftime("%Y%m%d-%H%M%S")
    outdir = Path(args.output_dir)
    write_csv(outdir / f"benchmark-{ts}.csv", results)
    if args.save_markdown:
        for r in results:
            if r.status == "complete" and r.content is not None:
                (outdir / f"{ts}-{r.providerId}.md").write_text(r.content, encoding="utf-8")

    # Print human-friendly summary
    print(f"Document: {run.document.filename} ({run.document.media_type})")
    for r in results:
        if r.status == "complete" and r.stats:
            print(f"  {r.providerId}: {r.stats.elapsedSeconds:.2f}s, ${r.stats.cost:.4f}")
        else:
            print(f"  {r.providerId}: {r.status} ({r.error or r.skipReason})")


if __name__ == "__main__":
    main()
