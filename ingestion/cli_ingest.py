from __future__ import annotations

import argparse
from pathlib import Path
from typing import List

from tqdm import tqdm

from app.service import DocsiftService
from common.logger import get_logger
from ingestion.ingest_pipeline import describe

log = get_logger(__name__)


def _read_urls_file(path: Path) -> List[str]:
    """One URL per line; blank lines and # comments skipped."""
    urls = []
    with Path(path).open() as f:
        for line in f:
            url = line.strip()
            if url and not url.startswith("#"):
                urls.append(url)
    return urls


def main():
    parser = argparse.ArgumentParser(
        description="Ingest rendered web pages and PDF files into the document store."
    )
    parser.add_argument("--url", action="append", default=[], help="Page URL (repeatable)")
    parser.add_argument(
        "--urls_file", type=str, default="", help="Optional file with URLs (one per line)"
    )
    parser.add_argument("--pdf", action="append", default=[], help="PDF path (repeatable)")
    args = parser.parse_args()

    urls = list(args.url)
    if args.urls_file:
        urls.extend(_read_urls_file(Path(args.urls_file)))
    pdfs = [Path(p) for p in args.pdf]

    missing = [p for p in pdfs if not p.is_file()]
    if missing:
        log.error("PDF not found: %s", ", ".join(map(str, missing)))
        raise SystemExit(1)
    if not urls and not pdfs:
        parser.error("nothing to ingest: pass --url, --urls_file or --pdf")

    failures = 0
    with DocsiftService() as service:
        for url in tqdm(urls, desc="Ingesting URLs", disable=not urls):
            result = service.ingest(url=url)
            failures += not result.ok
            print(describe(result))
        for pdf in tqdm(pdfs, desc="Ingesting PDFs", disable=not pdfs):
            result = service.ingestion.ingest_file_path(pdf)
            failures += not result.ok
            print(describe(result))

    log.info("Ingest complete: %d ok, %d failed", len(urls) + len(pdfs) - failures, failures)
    raise SystemExit(1 if failures else 0)


if __name__ == "__main__":
    main()
