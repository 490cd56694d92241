"""Abstract base class for content extraction strategies."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, TypeVar
from urllib.parse import urlparse

from bs4 import BeautifulSoup, Tag

from page_relay.extraction.models import ExtractedContent, PageSnapshot
from page_relay.extraction.text import normalize_text

logger = logging.getLogger(__name__)

T = TypeVar("T")


def detect_content_type(url: str) -> str:
    """Classify a page URL as ``pdf``, ``youtube``, ``reddit`` or ``general``."""
    url = url or ""
    lowered = url.lower()
    path = lowered.split("?", 1)[0].split("#", 1)[0]
    if path.endswith(".pdf") or "/pdf/" in lowered or "pdfviewer" in lowered:
        return "pdf"

    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    if host.startswith("m."):
        host = host[2:]

    if host == "youtube.com" and parsed.path == "/watch":
        return "youtube"
    if (host == "reddit.com" or host.endswith(".reddit.com")) and "/comments/" in parsed.path:
        return "reddit"
    return "general"


def is_injectable_page(url: str | None) -> bool:
    """Pages an agent may extract from: http(s), and file:// only for PDFs."""
    if not url:
        return False
    parsed = urlparse(url)
    if parsed.scheme in ("http", "https"):
        return bool(parsed.netloc)
    if parsed.scheme == "file":
        return parsed.path.lower().endswith(".pdf")
    return False


def is_side_panel_allowed_page(url: str | None) -> bool:
    if not url:
        return False
    if url == "chrome://newtab/":
        return True
    return urlparse(url).scheme in ("http", "https", "file")


class BaseExtractor(ABC):
    """One extraction strategy.

    Subclasses implement ``_extract``; ``extract`` wraps it so that callers
    always receive a content record. Any failure becomes a record with
    ``error=True`` and whatever partial fields could be recovered.
    """

    content_type: str = "general"

    def __init__(self, max_comments: int | None = None):
        self.max_comments = max_comments

    def extract(self, snapshot: PageSnapshot) -> ExtractedContent:
        try:
            content = self._extract(snapshot)
        except Exception as e:
            logger.error(f"{self.content_type} extraction failed for {snapshot.url}: {e}")
            return self.error_record(snapshot, e)
        content.content_type = self.content_type
        return content

    @abstractmethod
    def _extract(self, snapshot: PageSnapshot) -> ExtractedContent:
        """Build the content record; may raise."""
        ...

    def error_record(self, snapshot: PageSnapshot, error: Exception) -> ExtractedContent:
        message = str(error) or type(error).__name__
        title = self._safe(lambda: self._fallback_title(snapshot), "") or snapshot.url or "Unknown Title"
        return ExtractedContent(
            content_type=self.content_type,
            title=title,
            url=snapshot.url,
            body=f"Error extracting content: {message}",
            error=True,
            message=message,
        )

    def _fallback_title(self, snapshot: PageSnapshot) -> str:
        if not snapshot.html:
            return ""
        soup = BeautifulSoup(snapshot.html, "html.parser")
        return normalize_text(soup.title.get_text()) if soup.title else ""

    def _safe(self, fn: Callable[[], T], default: T, field_name: str = "") -> T:
        """Run one field extractor in isolation."""
        try:
            return fn()
        except Exception as e:
            logger.warning(f"{self.content_type}: could not extract {field_name or 'field'}: {e}")
            return default


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def first_text(root: Any, selectors: Iterable[str]) -> str | None:
    """Text of the first selector match with non-empty text; first match wins."""
    for selector in selectors:
        element = root.select_one(selector)
        if element is None:
            continue
        text = normalize_text(element.get_text(" "))
        if text:
            return text
    return None


def first_attr(root: Any, selectors: Iterable[str], attr: str) -> str | None:
    for selector in selectors:
        element = root.select_one(selector)
        if isinstance(element, Tag):
            value = element.get(attr)
            if isinstance(value, list):
                value = " ".join(value)
            if value and str(value).strip():
                return str(value).strip()
    return None


def first_family(root: Any, selectors: Iterable[str]) -> tuple[str | None, list[Tag]]:
    """Elements from the first selector that matches at least once (no merging)."""
    for selector in selectors:
        elements = root.select(selector)
        if elements:
            return selector, elements
    return None, []


def paragraphs_text(element: Tag) -> str:
    """Join ``<p>`` children with blank lines, else the element's own text."""
    paragraphs = element.find_all("p")
    if paragraphs:
        parts = [normalize_text(p.get_text(" ")) for p in paragraphs]
        return "\n\n".join(p for p in parts if p)
    return normalize_text(element.get_text(" "))
