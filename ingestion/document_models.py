from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class SourceKind(str, Enum):
    WEB_PAGE = "WebPage"
    PDF = "Pdf"


@dataclass(frozen=True)
class DocumentDraft:
    """Extractor output; gets its fingerprint when the store accepts it."""

    source_uri: str  # URL or file path/name
    source_kind: SourceKind
    title: Optional[str]
    body: str  # normalized plain text
    extracted_at: datetime


@dataclass(frozen=True)
class Document:
    fingerprint: str
    source_uri: str
    source_kind: SourceKind
    title: Optional[str]
    body: str
    extracted_at: datetime
    size_bytes: int  # utf-8 size of body

    def summary(self) -> "DocumentSummary":
        return DocumentSummary(
            fingerprint=self.fingerprint,
            source_uri=self.source_uri,
            source_kind=self.source_kind,
            title=self.title,
            extracted_at=self.extracted_at,
            size_bytes=self.size_bytes,
        )


@dataclass(frozen=True)
class DocumentSummary:
    fingerprint: str
    source_uri: str
    source_kind: SourceKind
    title: Optional[str]
    extracted_at: datetime
    size_bytes: int

    def to_dict(self) -> dict:
        return {
            "fingerprint": self.fingerprint,
            "source_uri": self.source_uri,
            "source_kind": self.source_kind.value,
            "title": self.title,
            "extracted_at": self.extracted_at.isoformat(),
            "size_bytes": self.size_bytes,
        }
