from __future__ import annotations

from typing import List, Sequence

from langchain_core.prompts import PromptTemplate

from ingestion.cleaners import truncate_text

DOC_SEPARATOR = "\n\n"

QUESTION_TEMPLATE = PromptTemplate(
    input_variables=["context", "question"],
    template="{context}" + DOC_SEPARATOR + "{question}",
)


def fit_to_budget(bodies: Sequence[str], budget: int) -> List[str]:
    """
    Trim document bodies so that, joined with DOC_SEPARATOR, they fit in
    ``budget`` characters. The earliest documents give up text first; a
    document trimmed to nothing is dropped.
    """
    out = [b for b in bodies if b]

    def total() -> int:
        return sum(len(b) for b in out) + len(DOC_SEPARATOR) * max(len(out) - 1, 0)

    while out and total() > budget:
        excess = total() - budget
        head = out[0]
        # dropping a document also drops its separator
        if len(head) <= excess or (
            len(out) > 1 and len(head) <= excess + len(DOC_SEPARATOR)
        ):
            out.pop(0)
            continue
        out[0] = truncate_text(head, len(head) - excess)
    return out


def assemble_prompt(bodies: Sequence[str], question: str, max_context_chars: int) -> str:
    """Document bodies, oldest first, then the question. No documents: just the question."""
    kept = fit_to_budget(bodies, max_context_chars)
    if not kept:
        return question
    return QUESTION_TEMPLATE.format(context=DOC_SEPARATOR.join(kept), question=question)
