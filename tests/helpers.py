"""Fakes and builders shared by the test modules."""
from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterator, List, Optional

from ingestion.document_models import DocumentDraft, SourceKind


class FakeFetcher:
    """Serves canned HTML; a list value is consumed one outcome per call."""

    def __init__(self, pages: Dict[str, object]):
        self.pages = pages
        self.calls: List[str] = []

    def fetch(self, url: str) -> str:
        self.calls.append(url)
        outcome = self.pages[url]
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeLLM:
    """Streams one canned outcome per call; an exception outcome is raised."""

    def __init__(self, outcomes: list, prompts: list):
        self.outcomes = outcomes
        self.prompts = prompts

    def stream(self, prompt: str) -> Iterator[str]:
        self.prompts.append(prompt)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        yield outcome


class SlowStreamLLM:
    """Yields ``chunks`` with ``delay`` seconds between them, like a busy backend."""

    def __init__(self, chunks: List[str], delay: float):
        self.chunks = chunks
        self.delay = delay
        self.sent = 0
        self.closed = False

    def stream(self, prompt: str) -> Iterator[str]:
        try:
            for chunk in self.chunks:
                time.sleep(self.delay)
                self.sent += 1
                yield chunk
        finally:
            self.closed = True


class FakeBackend:
    """Factory handed to ModelClient; remembers prompts and options."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes) or ["ok"]
        self.prompts: List[str] = []
        self.options: list = []

    def __call__(self, opts, base_url):
        self.options.append(opts)
        return FakeLLM(self.outcomes, self.prompts)


def make_draft(
    body: str,
    source_uri: str = "https://example.com/article",
    kind: SourceKind = SourceKind.WEB_PAGE,
    title: Optional[str] = None,
    minutes_ago: int = 0,
) -> DocumentDraft:
    return DocumentDraft(
        source_uri=source_uri,
        source_kind=kind,
        title=title,
        body=body,
        extracted_at=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
    )


def _pdf_escape(s: str) -> str:
    return s.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def make_pdf(pages: List[str], title: Optional[str] = None) -> bytes:
    """Build a small valid PDF with one Helvetica text block per page."""
    n = len(pages)
    page_ids = [4 + 2 * i for i in range(n)]
    objects: List[bytes] = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        (
            "<< /Type /Pages /Kids ["
            + " ".join(f"{pid} 0 R" for pid in page_ids)
            + f"] /Count {n} >>"
        ).encode(),
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    for pid, text in zip(page_ids, pages):
        ops = ["BT", "/F1 12 Tf", "14 TL", "72 720 Td"]
        ops += [f"({_pdf_escape(line)}) Tj T*" for line in text.split("\n")]
        ops.append("ET")
        stream = "\n".join(ops).encode("latin-1")
        objects.append(
            (
                "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
                f"/Resources << /Font << /F1 3 0 R >> >> /Contents {pid + 1} 0 R >>"
            ).encode()
        )
        objects.append(
            b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream"
        )
    info = ""
    if title is not None:
        objects.append(f"<< /Title ({_pdf_escape(title)}) >>".encode("latin-1"))
        info = f" /Info {len(objects)} 0 R"

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for i, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += f"{i} 0 obj\n".encode() + body + b"\nendobj\n"
    xref = len(out)
    out += f"xref\n0 {len(objects) + 1}\n".encode()
    out += b"0000000000 65535 f \n"
    for off in offsets:
        out += f"{off:010d} 00000 n \n".encode()
    out += (
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R{info} >>\n"
        f"startxref\n{xref}\n%%EOF\n"
    ).encode()
    return bytes(out)
