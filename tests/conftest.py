from __future__ import annotations

import logging

import pytest

from common.config import LLMConfig, StoreConfig
from docstore.document_store import DocumentStore
from helpers import FakeBackend
from models.llm import ModelClient


@pytest.fixture
def store(tmp_path):
    s = DocumentStore(tmp_path / "docs.db", StoreConfig())
    yield s
    s.close()


@pytest.fixture
def backend():
    return FakeBackend("generated answer")


@pytest.fixture
def model(backend):
    return ModelClient(LLMConfig(retry_backoff_s=0), llm_factory=backend)


@pytest.fixture
def docsift_logs(caplog):
    # the docsift root logger does not propagate, so hook caplog in directly
    root = logging.getLogger("docsift")
    root.addHandler(caplog.handler)
    caplog.set_level(logging.INFO, logger="docsift")
    yield caplog
    root.removeHandler(caplog.handler)
