from __future__ import annotations

import math
import re
import unicodedata
from collections import Counter
from typing import List, Sequence

_DIGITS = re.compile(r"\d+")
_PAGE_NUMBER = re.compile(r"^(page\s*)?\d+(\s*(of|/)\s*\d+)?$", re.IGNORECASE)


def normalize_text(s: str) -> str:
    s = unicodedata.normalize("NFKC", s)
    s = s.replace("\u00a0", " ")
    s = re.sub(r"[ \t\r\f\v]+", " ", s)
    s = re.sub(r" *\n *", "\n", s)
    s = re.sub(r"\n{3,}", "\n\n", s)
    return s.strip()


def _edge_key(line: str) -> str:
    key = line.strip().lower()
    # "Page 3 of 10" and "Page 4 of 10" share a key; other lines must repeat exactly
    if _PAGE_NUMBER.match(key):
        return _DIGITS.sub("#", key)
    return key


def _edge_lines(lines: List[str]) -> List[int]:
    idx = [i for i, ln in enumerate(lines) if ln.strip()]
    # a lone line is the page's content, not a header
    if len(idx) < 2:
        return []
    return sorted({idx[0], idx[-1]})


def strip_header_footer(
    pages: Sequence[str], min_pages: int = 3, ratio: float = 0.6
) -> List[str]:
    """
    Drop first/last lines that repeat across most pages (running headers,
    footers, page numbers). Needs at least ``min_pages`` pages to judge.
    If nothing but edge lines would remain, the pages come back unstripped.
    """
    pages = [normalize_text(p) for p in pages]
    if len(pages) < max(min_pages, 2):
        return pages

    split = [p.split("\n") for p in pages]
    counts: Counter = Counter()
    for lines in split:
        counts.update({_edge_key(lines[i]) for i in _edge_lines(lines)})

    threshold = max(2, math.ceil(ratio * len(pages)))
    repeated = {k for k, n in counts.items() if k and n >= threshold}
    if not repeated:
        return pages

    out: List[str] = []
    for lines in split:
        edges = set(_edge_lines(lines))
        kept = [
            ln
            for i, ln in enumerate(lines)
            if not (i in edges and _edge_key(ln) in repeated)
        ]
        out.append(normalize_text("\n".join(kept)))
    if not any(out):
        return pages
    return out


def truncate_text(text: str, max_len: int) -> str:
    """Cut to ``max_len`` chars, on a word boundary when one is close to the end."""
    if max_len <= 0:
        return ""
    if len(text) <= max_len:
        return text
    if max_len <= 3:
        return text[:max_len]

    cut = text[: max_len - 3]
    last_space = cut.rfind(" ")
    if last_space > (max_len - 3) * 0.8:
        cut = cut[:last_space]
    return cut.rstrip() + "..."
