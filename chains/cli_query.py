from __future__ import annotations

import argparse

from app.service import DocsiftService
from common.logger import get_logger
from models.llm import GenerationOptions

log = get_logger(__name__)


def main():
    parser = argparse.ArgumentParser(
        description="Ask the local model a question about stored documents."
    )
    parser.add_argument(
        "--doc",
        action="append",
        default=[],
        help="Document fingerprint to include (repeatable)",
    )
    parser.add_argument("--model", type=str, default=None)  # Ollama model
    parser.add_argument("--temperature", type=float, default=None)
    parser.add_argument("--max_tokens", type=int, default=None)
    parser.add_argument("--timeout_ms", type=int, default=None)
    parser.add_argument("question", type=str, help="Your question")
    args = parser.parse_args()

    options = GenerationOptions(
        model=args.model,
        max_tokens=args.max_tokens,
        temperature=args.temperature,
        timeout_ms=args.timeout_ms,
    )

    with DocsiftService() as service:
        if not service.model.is_available():
            log.warning("Ollama does not answer at %s", service.model.config.base_url)
        result = service.query(args.doc, args.question, options)

    if result.missing:
        print("\n=== SKIPPED (unknown fingerprints) ===\n")
        for fp in result.missing:
            print(f"- {fp}")

    if not result.ok:
        print(f"\nFAILED: {result.reason.value}: {result.detail}")
        raise SystemExit(1)

    print("\n=== ANSWER ===\n")
    print(result.text.strip())


if __name__ == "__main__":
    main()
