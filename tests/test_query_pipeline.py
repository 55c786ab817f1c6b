import httpx
from sqlalchemy.exc import OperationalError

from chains.prompts import assemble_prompt, fit_to_budget
from chains.query_pipeline import QueryPipeline, QueryRequest
from common.config import LLMConfig, QueryConfig
from common.errors import FailureReason
from helpers import FakeBackend, make_draft
from models.llm import ModelClient


def test_prompt_is_body_then_question(store, model, backend):
    doc = store.put(make_draft("Hello world"))
    pipeline = QueryPipeline(store, model, QueryConfig(max_context_chars=1000))

    result = pipeline.query({doc.fingerprint}, "What does it say?")

    assert result.ok
    assert result.text == "generated answer"
    assert backend.prompts == ["Hello world\n\nWhat does it say?"]


def test_no_documents_still_queries(store, model, backend):
    result = QueryPipeline(store, model).query(set(), "Anything new?")

    assert result.ok
    assert result.text == "generated answer"
    assert backend.prompts == ["Anything new?"]


def test_unknown_fingerprints_are_dropped(store, model, backend, docsift_logs):
    doc = store.put(make_draft("Known body"))
    result = QueryPipeline(store, model).query([doc.fingerprint, "deadbeef"], "Q?")

    assert result.ok
    assert result.missing == ("deadbeef",)
    assert backend.prompts == ["Known body\n\nQ?"]
    assert any(
        r.levelname == "WARNING" and "deadbeef" in r.getMessage() for r in docsift_logs.records
    )


def test_documents_ordered_oldest_first(store, model, backend):
    new = store.put(make_draft("newer text", minutes_ago=1))
    old = store.put(make_draft("older text", minutes_ago=60))
    QueryPipeline(store, model).query([new.fingerprint, old.fingerprint], "Q")
    assert backend.prompts == ["older text\n\nnewer text\n\nQ"]


def test_model_failure_is_reported(store):
    backend = FakeBackend(httpx.ReadTimeout("timed out"))
    model = ModelClient(LLMConfig(retry_backoff_s=0), llm_factory=backend)
    result = QueryPipeline(store, model).query([], "Q")

    assert not result.ok
    assert result.reason == FailureReason.MODEL_TIMEOUT
    assert result.text is None


def test_request_deduplicates_fingerprints():
    req = QueryRequest.build("Q", ["a", "b", "a", " "])
    assert req.fingerprints == ("a", "b")


def test_budget_trims_earliest_document_first():
    bodies = ["a" * 50, "b" * 50]
    kept = fit_to_budget(bodies, 80)
    assert kept[-1] == "b" * 50
    assert len("\n\n".join(kept)) <= 80
    assert kept[0].startswith("a")


def test_budget_drops_documents_that_no_longer_fit():
    kept = fit_to_budget(["a" * 50, "b" * 50, "c" * 10], 12)
    assert kept == ["c" * 10]


def test_under_budget_is_untouched():
    assert assemble_prompt(["Hello world"], "What does it say?", 1000) == (
        "Hello world\n\nWhat does it say?"
    )


def test_storage_failure_during_lookup_is_reported(store, model, backend, monkeypatch):
    def broken_session():
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(store, "_session", broken_session)
    result = QueryPipeline(store, model).query(["abc123"], "Q")

    assert not result.ok
    assert result.reason == FailureReason.STORAGE_CONFLICT
    assert backend.prompts == []
