from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Tuple

from chains.prompts import assemble_prompt
from common.config import QueryConfig, yaml_config
from common.errors import DocsiftError, QueryResult
from common.logger import get_logger
from docstore.document_store import DocumentStore
from ingestion.document_models import Document
from models.llm import GenerationOptions, ModelClient

log = get_logger(__name__)


@dataclass(frozen=True)
class QueryRequest:
    question: str
    fingerprints: Tuple[str, ...] = ()
    options: GenerationOptions = field(default_factory=GenerationOptions)

    @classmethod
    def build(
        cls,
        question: str,
        fingerprints: Iterable[str] = (),
        options: GenerationOptions | None = None,
    ) -> "QueryRequest":
        # keep first occurrence order, drop repeats
        unique = tuple(dict.fromkeys(fp.strip() for fp in fingerprints if fp.strip()))
        return cls(question=question, fingerprints=unique, options=options or GenerationOptions())


class QueryPipeline:
    def __init__(
        self,
        store: DocumentStore,
        model: ModelClient,
        config: QueryConfig | None = None,
    ):
        self.store = store
        self.model = model
        self.config = config or yaml_config.query

    def resolve(self, fingerprints: Iterable[str]) -> Tuple[List[Document], Tuple[str, ...]]:
        """Look up documents; unknown fingerprints are reported, not fatal."""
        found: List[Document] = []
        missing: List[str] = []
        for fp in fingerprints:
            doc = self.store.get(fp)
            if doc is None:
                log.warning("Dropping unknown fingerprint %s from query", fp)
                missing.append(fp)
            else:
                found.append(doc)
        # oldest first, so the oldest material is trimmed first when over budget
        found.sort(key=lambda d: d.extracted_at)
        return found, tuple(missing)

    def build_prompt(self, request: QueryRequest) -> Tuple[str, Tuple[str, ...]]:
        docs, missing = self.resolve(request.fingerprints)
        prompt = assemble_prompt(
            [d.body for d in docs], request.question, self.config.max_context_chars
        )
        log.info(
            "Assembled prompt from %d document(s): %d chars", len(docs), len(prompt)
        )
        return prompt, missing

    def run(self, request: QueryRequest) -> QueryResult:
        missing: Tuple[str, ...] = ()
        try:
            prompt, missing = self.build_prompt(request)
            text = self.model.generate(prompt, request.options)
        except DocsiftError as e:
            log.warning("Query failed with %s: %s", e.reason.value, e.detail)
            return QueryResult.failed(e, missing=missing)
        return QueryResult.success(text, missing=missing)

    def query(
        self,
        fingerprints: Iterable[str],
        question: str,
        options: GenerationOptions | None = None,
    ) -> QueryResult:
        return self.run(QueryRequest.build(question, fingerprints, options))
