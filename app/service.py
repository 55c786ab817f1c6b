"""Entry point for callers (web layer, CLIs): ingest, query and list."""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional

from chains.query_pipeline import QueryPipeline
from common.config import GlobalYAMLConfig, yaml_config
from common.errors import IngestionResult, QueryResult
from common.logger import get_logger
from docstore.document_store import DocumentStore
from ingestion.document_models import DocumentSummary, SourceKind
from ingestion.fetcher import BrowserPool, Fetcher
from ingestion.ingest_pipeline import FileSource, IngestionPipeline, Source, UrlSource
from models.llm import GenerationOptions, ModelClient

log = get_logger(__name__)


class DocsiftService:
    def __init__(
        self,
        config: GlobalYAMLConfig | None = None,
        *,
        fetcher: Fetcher | None = None,
        store: DocumentStore | None = None,
        model: ModelClient | None = None,
    ):
        """
        Owns the process-scoped resources: browser pool, store connection
        and PDF worker pool. Anything passed in is used as-is and left open
        on ``close``; anything built here is torn down there.
        """
        self.config = config or yaml_config
        self._owned: list = []

        if fetcher is None:
            fetcher = BrowserPool(self.config.browser)  # launches on first fetch
            self._owned.append(fetcher)
        if store is None:
            store = DocumentStore(self.config.app.db_path, self.config.store)
            self._owned.append(store)
        self.store = store
        self.model = model or ModelClient(self.config.llm)

        self._pdf_executor = ThreadPoolExecutor(
            max_workers=self.config.app.pdf_workers, thread_name_prefix="pdf"
        )
        self.ingestion = IngestionPipeline(
            fetcher, store, pdf_executor=self._pdf_executor, config=self.config.extraction
        )
        self.queries = QueryPipeline(store, self.model, config=self.config.query)

    def __enter__(self) -> "DocsiftService":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._pdf_executor.shutdown(wait=True)
        for resource in reversed(self._owned):
            resource.close()
        self._owned.clear()
        log.info("Service resources released")

    def ingest(
        self,
        url: Optional[str] = None,
        file_bytes: Optional[bytes] = None,
        filename: Optional[str] = None,
    ) -> IngestionResult:
        """Exactly one of ``url`` or ``file_bytes``/``filename``."""
        source: Source
        if url is not None and file_bytes is None:
            source = UrlSource(url=url)
        elif url is None and file_bytes is not None:
            source = FileSource(file_bytes=file_bytes, filename=filename or "upload.pdf")
        else:
            raise ValueError("pass either url or file_bytes")
        return self.ingestion.ingest(source)

    def query(
        self,
        fingerprints: Iterable[str],
        question: str,
        options: GenerationOptions | None = None,
    ) -> QueryResult:
        return self.queries.query(fingerprints, question, options)

    def list_documents(
        self,
        source_kind: SourceKind | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[DocumentSummary]:
        return [d.summary() for d in self.store.list(source_kind, limit, offset)]
