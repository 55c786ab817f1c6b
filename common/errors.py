"""Failure taxonomy shared by collaborators and pipelines.

Collaborators raise ``DocsiftError`` subclasses; pipelines catch them and hand
callers plain result values instead.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ingestion.document_models import Document


class FailureReason(str, Enum):
    FETCH_TIMEOUT = "FetchTimeout"
    FETCH_BLOCKED = "FetchBlocked"
    PARSE_ERROR = "ParseError"
    EMPTY_CONTENT = "EmptyContent"
    MODEL_UNAVAILABLE = "ModelUnavailable"
    MODEL_TIMEOUT = "ModelTimeout"
    STORAGE_CONFLICT = "StorageConflict"

    @property
    def retryable(self) -> bool:
        return self in (FailureReason.FETCH_TIMEOUT, FailureReason.MODEL_UNAVAILABLE)


class DocsiftError(Exception):
    reason: FailureReason

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.reason.value)
        self.detail = detail


class FetchTimeoutError(DocsiftError):
    reason = FailureReason.FETCH_TIMEOUT


class FetchBlockedError(DocsiftError):
    reason = FailureReason.FETCH_BLOCKED


class ParseError(DocsiftError):
    reason = FailureReason.PARSE_ERROR


class EmptyContentError(DocsiftError):
    reason = FailureReason.EMPTY_CONTENT


class ModelUnavailableError(DocsiftError):
    reason = FailureReason.MODEL_UNAVAILABLE


class ModelTimeoutError(DocsiftError):
    reason = FailureReason.MODEL_TIMEOUT


class StorageConflictError(DocsiftError):
    reason = FailureReason.STORAGE_CONFLICT


@dataclass(frozen=True)
class IngestionResult:
    document: Optional["Document"] = None
    reason: Optional[FailureReason] = None
    detail: str = ""
    stage: str = "Done"

    @property
    def ok(self) -> bool:
        return self.reason is None

    @classmethod
    def success(cls, document: "Document") -> "IngestionResult":
        return cls(document=document)

    @classmethod
    def failed(cls, err: DocsiftError, stage: str) -> "IngestionResult":
        return cls(reason=err.reason, detail=err.detail, stage=stage)


@dataclass(frozen=True)
class QueryResult:
    text: Optional[str] = None
    reason: Optional[FailureReason] = None
    detail: str = ""
    missing: tuple = ()  # fingerprints that could not be resolved

    @property
    def ok(self) -> bool:
        return self.reason is None

    @classmethod
    def success(cls, text: str, missing: tuple = ()) -> "QueryResult":
        return cls(text=text, missing=missing)

    @classmethod
    def failed(cls, err: DocsiftError, missing: tuple = ()) -> "QueryResult":
        return cls(reason=err.reason, detail=err.detail, missing=missing)
