from __future__ import annotations

import argparse
import sys

import orjson

from common.config import yaml_config
from docstore.document_store import DocumentStore
from ingestion.document_models import SourceKind


def main():
    parser = argparse.ArgumentParser(description="List stored documents, newest first.")
    parser.add_argument(
        "--kind", type=str, default=None, choices=[k.value for k in SourceKind]
    )
    parser.add_argument("--limit", type=int, default=20)
    parser.add_argument("--offset", type=int, default=0)
    args = parser.parse_args()

    kind = SourceKind(args.kind) if args.kind else None
    with DocumentStore(yaml_config.app.db_path, yaml_config.store) as store:
        rows = [d.summary().to_dict() for d in store.list(kind, args.limit, args.offset)]
        total = store.count(kind)

    out = {"total": total, "offset": args.offset, "documents": rows}
    sys.stdout.buffer.write(orjson.dumps(out, option=orjson.OPT_INDENT_2) + b"\n")


if __name__ == "__main__":
    main()
