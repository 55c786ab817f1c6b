from concurrent.futures import ThreadPoolExecutor

import pytest

from common.config import ExtractionConfig
from common.errors import FailureReason, FetchBlockedError, FetchTimeoutError
from helpers import FakeFetcher, make_pdf
from ingestion.document_models import SourceKind
from ingestion.hash_utils import fingerprint
from ingestion.ingest_pipeline import FileSource, IngestionPipeline, UrlSource, describe

URL = "https://example.com/article"
PAGE = "<nav>Home | About</nav><article>Hello world</article>"


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=1)
    yield pool
    pool.shutdown(wait=True)


def _pipeline(fetcher, store, executor):
    return IngestionPipeline(fetcher, store, pdf_executor=executor, config=ExtractionConfig())


def test_ingest_url_stores_document(store, executor):
    fetcher = FakeFetcher({URL: PAGE})
    result = _pipeline(fetcher, store, executor).ingest(UrlSource(URL))

    assert result.ok
    assert result.document.body == "Hello world"
    assert result.document.source_kind == SourceKind.WEB_PAGE
    assert result.document.fingerprint == fingerprint("Hello world")
    assert store.count() == 1


def test_reingesting_same_content_is_idempotent(store, executor):
    pipeline = _pipeline(FakeFetcher({URL: PAGE}), store, executor)
    first = pipeline.ingest_url(URL)
    second = pipeline.ingest_url(URL)

    assert second.ok
    assert second.document == first.document
    assert store.count() == 1


def test_timeout_is_retried_once_then_terminal(store, executor):
    fetcher = FakeFetcher({URL: FetchTimeoutError("slow")})
    result = _pipeline(fetcher, store, executor).ingest_url(URL)

    assert not result.ok
    assert result.reason == FailureReason.FETCH_TIMEOUT
    assert result.stage == "Fetching"
    assert fetcher.calls == [URL, URL]


def test_timeout_then_success(store, executor):
    fetcher = FakeFetcher({URL: [FetchTimeoutError("slow"), PAGE]})
    result = _pipeline(fetcher, store, executor).ingest_url(URL)

    assert result.ok
    assert len(fetcher.calls) == 2


def test_blocked_is_not_retried(store, executor):
    fetcher = FakeFetcher({URL: FetchBlockedError("HTTP 403")})
    result = _pipeline(fetcher, store, executor).ingest_url(URL)

    assert result.reason == FailureReason.FETCH_BLOCKED
    assert fetcher.calls == [URL]


def test_boilerplate_page_is_empty_content(store, executor):
    fetcher = FakeFetcher({URL: "<nav>Menu</nav><script>x()</script>"})
    result = _pipeline(fetcher, store, executor).ingest_url(URL)

    assert result.reason == FailureReason.EMPTY_CONTENT
    assert result.stage == "Extracting"
    assert fetcher.calls == [URL]
    assert store.count() == 0


def test_pdf_file_source(store, executor):
    data = make_pdf(["Quarterly numbers went up."])
    result = _pipeline(FakeFetcher({}), store, executor).ingest(
        FileSource(file_bytes=data, filename="report.pdf")
    )

    assert result.ok
    assert result.document.source_kind == SourceKind.PDF
    assert result.document.source_uri == "report.pdf"
    assert "Quarterly numbers went up." in result.document.body


def test_corrupt_pdf_is_parse_error(store, executor):
    result = _pipeline(FakeFetcher({}), store, executor).ingest_file(b"garbage", "bad.pdf")
    assert result.reason == FailureReason.PARSE_ERROR
    assert "FAILED ParseError at Extracting" in describe(result)


def test_pdf_from_path(store, executor, tmp_path):
    path = tmp_path / "notes.pdf"
    path.write_bytes(make_pdf(["Meeting notes"]))
    result = _pipeline(FakeFetcher({}), store, executor).ingest_file_path(path)
    assert result.ok
    assert describe(result).startswith("OK ")


def test_private_executor_is_closed(store):
    pipeline = IngestionPipeline(FakeFetcher({}), store, config=ExtractionConfig())
    pipeline.close()
    with pytest.raises(RuntimeError):
        pipeline.ingest_file(b"%PDF", "late.pdf")
