from __future__ import annotations

import re
from datetime import datetime, timezone
from io import BytesIO
from typing import List, Optional

from bs4 import BeautifulSoup, Tag
from bs4.builder import ParserRejectedMarkup
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from common.config import ExtractionConfig, yaml_config
from common.errors import EmptyContentError, ParseError
from common.logger import get_logger
from ingestion.cleaners import normalize_text, strip_header_footer
from ingestion.document_models import DocumentDraft, SourceKind

log = get_logger(__name__)

# Removed outright, whatever their attributes.
DENY_TAGS = (
    "head",
    "script",
    "style",
    "noscript",
    "template",
    "iframe",
    "svg",
    "canvas",
    "nav",
    "header",
    "footer",
    "aside",
    "form",
    "button",
)

# Never removed by the class/id heuristic.
KEEP_TAGS = {"html", "body", "main", "article"}

# Matched against single class/id tokens: "ad", "ads-top", "cookie_banner", ...
DENY_TOKEN = re.compile(
    r"^(ads?|advert\w*|banner|breadcrumbs?|comments?|cookie\w*|consent|menu|"
    r"navbar|newsletter|popup|promo\w*|related|share|sharing|sidebar|social|"
    r"sponsor\w*|subscribe|toolbar)([-_].*)?$",
    re.IGNORECASE,
)

DENY_ROLES = {"navigation", "banner", "contentinfo", "complementary", "search"}

# Candidate containers for the main content, in order of preference.
MAIN_SELECTORS = (
    "article",
    "main",
    "[role=main]",
    "#content",
    ".content",
    ".post",
    ".entry-content",
    ".article-body",
)

BLOCK_SEPARATOR = "\n"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _is_boilerplate(tag: Tag) -> bool:
    if tag.name in KEEP_TAGS:
        return False
    if (tag.get("role") or "").lower() in DENY_ROLES:
        return True
    if tag.get("aria-hidden") == "true" or tag.has_attr("hidden"):
        return True
    tokens = list(tag.get("class") or [])
    if tag.get("id"):
        tokens.append(tag["id"])
    return any(DENY_TOKEN.match(t) for t in tokens)


def _strip_boilerplate(soup: BeautifulSoup) -> None:
    for tag in soup(list(DENY_TAGS)):
        tag.decompose()
    for tag in soup.find_all(True):
        if tag.decomposed:
            continue
        if _is_boilerplate(tag):
            tag.decompose()


def _extract_title(soup: BeautifulSoup) -> Optional[str]:
    og = soup.find("meta", attrs={"property": "og:title"})
    if og and og.get("content", "").strip():
        return normalize_text(og["content"])
    if soup.title and soup.title.string and soup.title.string.strip():
        return normalize_text(soup.title.string)
    h1 = soup.find("h1")
    if h1:
        text = normalize_text(h1.get_text(" "))
        return text or None
    return None


def _tag_text(tag: Tag) -> str:
    lines = (t.strip() for t in tag.get_text(BLOCK_SEPARATOR).splitlines())
    return normalize_text(BLOCK_SEPARATOR.join(t for t in lines if t))


def _main_text(soup: BeautifulSoup) -> str:
    best = ""
    for selector in MAIN_SELECTORS:
        for candidate in soup.select(selector):
            text = _tag_text(candidate)
            if len(text) > len(best):
                best = text
        if best:
            return best
    root = soup.body or soup
    return _tag_text(root)


def extract_from_html(raw_html: str | bytes, source_uri: str) -> DocumentDraft:
    """
    Turn rendered HTML into a draft document.
    Raises ParseError for markup that cannot be read as HTML and
    EmptyContentError when only boilerplate is left.
    """
    if isinstance(raw_html, bytes):
        try:
            raw_html = raw_html.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(f"{source_uri}: undecodable markup ({e})") from e
    if raw_html is None or "\x00" in raw_html:
        raise ParseError(f"{source_uri}: binary content is not HTML")

    try:
        soup = BeautifulSoup(raw_html, "html.parser")
    except (ParserRejectedMarkup, AssertionError) as e:
        raise ParseError(f"{source_uri}: {e}") from e
    if soup.find(True) is None:
        raise ParseError(f"{source_uri}: no HTML elements found")

    title = _extract_title(soup)
    _strip_boilerplate(soup)
    body = _main_text(soup)
    if not body:
        raise EmptyContentError(f"{source_uri}: no content text after boilerplate removal")

    return DocumentDraft(
        source_uri=source_uri,
        source_kind=SourceKind.WEB_PAGE,
        title=title,
        body=body,
        extracted_at=_now(),
    )


def _pdf_title(reader: PdfReader) -> Optional[str]:
    try:
        meta = reader.metadata
        title = meta.title if meta else None
    except (PyPdfError, ValueError, KeyError) as e:
        log.debug("Unreadable PDF metadata: %s", e)
        return None
    if title and str(title).strip():
        return normalize_text(str(title))
    return None


def extract_from_pdf(
    data: bytes, source_uri: str, config: ExtractionConfig | None = None
) -> DocumentDraft:
    """
    Extract text page by page. Pages that fail to decode are skipped; only a
    document where every page fails is a ParseError.
    """
    cfg = config or yaml_config.extraction
    try:
        reader = PdfReader(BytesIO(data))
        pages = list(reader.pages)
    except Exception as e:
        # pypdf raises a wide range of errors on corrupt input
        raise ParseError(f"{source_uri}: unreadable PDF ({e})") from e

    if cfg.max_pdf_pages:
        pages = pages[: cfg.max_pdf_pages]
    if not pages:
        raise ParseError(f"{source_uri}: PDF has no pages")

    texts: List[str] = []
    failed = 0
    for i, page in enumerate(pages):
        try:
            texts.append(page.extract_text() or "")
        except Exception as e:
            failed += 1
            log.warning("Dropping page %d of %s: %s", i + 1, source_uri, e)

    if failed == len(pages):
        raise ParseError(f"{source_uri}: none of {len(pages)} pages could be decoded")

    cleaned = strip_header_footer(
        texts, min_pages=cfg.header_footer_min_pages, ratio=cfg.header_footer_ratio
    )
    body = normalize_text("\n\n".join(t for t in cleaned if t))
    if not body:
        raise EmptyContentError(f"{source_uri}: PDF contains no extractable text")

    log.info(
        "Extracted %d chars from %d/%d pages of %s",
        len(body),
        len(pages) - failed,
        len(pages),
        source_uri,
    )
    return DocumentDraft(
        source_uri=source_uri,
        source_kind=SourceKind.PDF,
        title=_pdf_title(reader),
        body=body,
        extracted_at=_now(),
    )
