from __future__ import annotations

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Union

from tenacity import before_sleep_log, retry, retry_if_exception_type, stop_after_attempt

from common.config import ExtractionConfig, yaml_config
from common.errors import DocsiftError, FetchTimeoutError, IngestionResult
from common.logger import get_logger
from docstore.document_store import DocumentStore
from ingestion.document_models import Document, DocumentDraft
from ingestion.extractors import extract_from_html, extract_from_pdf
from ingestion.fetcher import Fetcher

log = get_logger(__name__)


class Stage(str, Enum):
    FETCHING = "Fetching"
    EXTRACTING = "Extracting"
    STORING = "Storing"
    DONE = "Done"


@dataclass(frozen=True)
class UrlSource:
    url: str


@dataclass(frozen=True)
class FileSource:
    file_bytes: bytes
    filename: str


Source = Union[UrlSource, FileSource]


@retry(
    retry=retry_if_exception_type(FetchTimeoutError),
    stop=stop_after_attempt(2),
    before_sleep=before_sleep_log(log, logging.WARNING),
    reraise=True,
)
def _fetch_with_retry(fetcher: Fetcher, url: str) -> str:
    """
    One more attempt after a timeout, straight away: the first attempt
    already waited out the full deadline.
    """
    return fetcher.fetch(url)


class IngestionPipeline:
    def __init__(
        self,
        fetcher: Fetcher,
        store: DocumentStore,
        pdf_executor: Executor | None = None,
        config: ExtractionConfig | None = None,
    ):
        """
        Fetching -> Extracting -> Storing -> Done for a single source.

        PDF decoding is CPU bound and runs on ``pdf_executor``; a private
        pool is created when none is passed in and shut down by ``close``.
        """
        self.fetcher = fetcher
        self.store = store
        self.config = config or yaml_config.extraction
        self._owns_executor = pdf_executor is None
        self._pdf_executor = pdf_executor or ThreadPoolExecutor(
            max_workers=yaml_config.app.pdf_workers, thread_name_prefix="pdf"
        )

    def close(self) -> None:
        if self._owns_executor:
            self._pdf_executor.shutdown(wait=True)

    def ingest(self, source: Source) -> IngestionResult:
        stage = Stage.FETCHING
        try:
            if isinstance(source, UrlSource):
                log.info("[%s] %s", stage.value, source.url)
                html = _fetch_with_retry(self.fetcher, source.url)

                stage = Stage.EXTRACTING
                log.info("[%s] %s", stage.value, source.url)
                draft = extract_from_html(html, source.url)
            elif isinstance(source, FileSource):
                # bytes are already in hand, nothing to fetch
                stage = Stage.EXTRACTING
                log.info("[%s] %s", stage.value, source.filename)
                draft = self._extract_pdf(source)
            else:
                raise TypeError(f"Unsupported source: {source!r}")

            stage = Stage.STORING
            log.info("[%s] %s", stage.value, draft.source_uri)
            document = self.store.put(draft)
        except DocsiftError as e:
            log.warning("Ingestion failed at %s: %s (%s)", stage.value, e.reason.value, e.detail)
            return IngestionResult.failed(e, stage=stage.value)

        log.info("[%s] %s -> %s", Stage.DONE.value, document.source_uri, document.fingerprint[:12])
        return IngestionResult.success(document)

    def _extract_pdf(self, source: FileSource) -> DocumentDraft:
        future = self._pdf_executor.submit(
            extract_from_pdf, source.file_bytes, source.filename, self.config
        )
        return future.result()

    def ingest_url(self, url: str) -> IngestionResult:
        return self.ingest(UrlSource(url=url))

    def ingest_file(self, file_bytes: bytes, filename: str) -> IngestionResult:
        return self.ingest(FileSource(file_bytes=file_bytes, filename=filename))

    def ingest_file_path(self, path: Path | str) -> IngestionResult:
        path = Path(path)
        return self.ingest(FileSource(file_bytes=path.read_bytes(), filename=str(path)))


def describe(result: IngestionResult) -> str:
    if result.ok:
        doc: Document = result.document
        return f"OK {doc.fingerprint[:12]} {doc.source_kind.value} {doc.source_uri}"
    return f"FAILED {result.reason.value} at {result.stage}: {result.detail}"
