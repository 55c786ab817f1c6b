from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from common.config import StoreConfig, yaml_config
from common.errors import EmptyContentError, StorageConflictError
from common.logger import get_logger
from ingestion.cleaners import normalize_text
from ingestion.document_models import Document, DocumentDraft, SourceKind
from ingestion.hash_utils import fingerprint

log = get_logger(__name__)

Base = declarative_base()


class DocumentRow(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    fingerprint = Column(String(64), nullable=False, unique=True)
    source_uri = Column(Text, nullable=False)
    source_kind = Column(Enum(SourceKind), nullable=False)
    title = Column(Text, nullable=True)
    body = Column(Text, nullable=False)
    extracted_at = Column(DateTime(timezone=True), nullable=False)
    size_bytes = Column(Integer, nullable=False)

    __table_args__ = (Index("ix_documents_extracted_at", "extracted_at"),)

    def to_document(self) -> Document:
        return Document(
            fingerprint=self.fingerprint,
            source_uri=self.source_uri,
            source_kind=self.source_kind,
            title=self.title,
            body=self.body,
            extracted_at=_as_utc(self.extracted_at),
            size_bytes=self.size_bytes,
        )


def _as_utc(ts: datetime) -> datetime:
    # SQLite drops tzinfo; everything is written as UTC
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.close()


class DocumentStore:
    def __init__(
        self,
        db_path: Path | str | None = None,
        config: StoreConfig | None = None,
    ):
        """
        SQLite-backed document table. One row per fingerprint; the unique
        index is what keeps concurrent ingestion idempotent.
        """
        self.db_path = Path(db_path or yaml_config.app.db_path)
        self.config = config or yaml_config.store
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._engine = create_engine(
            f"sqlite:///{self.db_path}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        event.listen(self._engine, "connect", _sqlite_pragmas)
        Base.metadata.create_all(bind=self._engine)
        self._session = sessionmaker(bind=self._engine, expire_on_commit=False)
        log.info("Document store ready at %s", self.db_path)

    def close(self) -> None:
        self._engine.dispose()
        log.info("Document store closed: %s", self.db_path)

    def __enter__(self) -> "DocumentStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def fingerprint_for(self, draft: DocumentDraft) -> str:
        if self.config.fingerprint_scope == "source":
            return fingerprint(draft.body, source_uri=draft.source_uri)
        return fingerprint(draft.body)

    def put(self, draft: DocumentDraft) -> Document:
        """
        Store ``draft`` unless a document with the same fingerprint exists, in
        which case the existing document is returned unchanged.
        """
        body = normalize_text(draft.body)
        if not body:
            raise EmptyContentError(f"{draft.source_uri}: refusing to store empty body")
        fp = self.fingerprint_for(draft)

        existing = self.get(fp)
        if existing is not None:
            log.info("Fingerprint %s already stored; returning existing", fp[:12])
            return existing

        row = DocumentRow(
            fingerprint=fp,
            source_uri=draft.source_uri,
            source_kind=draft.source_kind,
            title=draft.title,
            body=body,
            extracted_at=_as_utc(draft.extracted_at),
            size_bytes=len(body.encode("utf-8")),
        )
        try:
            with self._session.begin() as session:
                session.add(row)
        except IntegrityError as e:
            # Lost a race against an identical put: the winner's row is the answer.
            winner = self.get(fp)
            if winner is not None:
                log.info("Concurrent put for %s resolved to existing row", fp[:12])
                return winner
            raise StorageConflictError(f"integrity violation for {fp[:12]}: {e.orig}") from e
        except SQLAlchemyError as e:
            raise StorageConflictError(f"could not store {fp[:12]}: {e}") from e

        log.info("Stored %s (%s, %d bytes)", fp[:12], draft.source_kind.value, row.size_bytes)
        return row.to_document()

    def get(self, fp: str) -> Optional[Document]:
        try:
            with self._session() as session:
                row = session.execute(
                    select(DocumentRow).where(DocumentRow.fingerprint == fp)
                ).scalar_one_or_none()
                return row.to_document() if row else None
        except SQLAlchemyError as e:
            raise StorageConflictError(f"could not read {fp[:12]}: {e}") from e

    def list(
        self,
        source_kind: SourceKind | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Document]:
        """Newest first; ``offset`` makes the listing restartable."""
        if limit < 0 or offset < 0:
            raise ValueError("limit and offset must be non-negative")
        stmt = select(DocumentRow)
        if source_kind is not None:
            stmt = stmt.where(DocumentRow.source_kind == source_kind)
        stmt = (
            stmt.order_by(DocumentRow.extracted_at.desc(), DocumentRow.id.desc())
            .limit(limit)
            .offset(offset)
        )
        with self._session() as session:
            return [r.to_document() for r in session.execute(stmt).scalars()]

    def count(self, source_kind: SourceKind | None = None) -> int:
        stmt = select(func.count(DocumentRow.id))
        if source_kind is not None:
            stmt = stmt.where(DocumentRow.source_kind == source_kind)
        with self._session() as session:
            return session.execute(stmt).scalar_one()
