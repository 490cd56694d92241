"""Generic web page extraction."""

from __future__ import annotations

import logging
import re

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import CData, Comment, Declaration, Doctype, ProcessingInstruction

from page_relay.extraction.base import BaseExtractor, first_attr, parse_html
from page_relay.extraction.models import ExtractedContent, PageSnapshot
from page_relay.extraction.text import clean_text, normalize_text

logger = logging.getLogger(__name__)

MIN_MAIN_CONTENT_CHARS = 200

MAIN_CONTENT_SELECTORS = (
    "main",
    "article",
    "[role='main']",
    "#main-content",
    "#content",
    ".post-content",
    ".entry-content",
    ".article-body",
)

EXCLUDED_TAGS = frozenset({
    "script", "style", "noscript", "template", "head", "link", "meta",
    "nav", "svg", "canvas", "img", "picture", "video", "audio", "iframe",
    "object", "embed", "pre", "code", "button", "input", "select", "textarea",
})

PARAGRAPH_TAGS = frozenset({
    "p", "h1", "h2", "h3", "h4", "h5", "h6", "blockquote", "ul", "ol", "dl",
    "table", "section", "article", "figure", "hr",
})

BLOCK_TAGS = frozenset({
    "div", "main", "header", "footer", "aside", "li", "tr", "dt", "dd",
    "form", "fieldset", "figcaption", "address", "details", "summary",
    "caption", "thead", "tbody", "tfoot",
})

CELL_TAGS = frozenset({"td", "th"})

_SKIPPED_STRINGS = (Comment, CData, Declaration, Doctype, ProcessingInstruction)
_HIDDEN_STYLE = re.compile(r"(display\s*:\s*none|visibility\s*:\s*hidden)", re.IGNORECASE)

AUTHOR_META_SELECTORS = (
    'meta[name="author"]',
    'meta[property="author"]',
    'meta[property="article:author"]',
)

AUTHOR_BYLINE_SELECTORS = (
    ".author",
    ".byline",
    ".post-author",
    ".entry-author",
    '[rel="author"]',
    'a[href*="/author/"]',
    ".author-name",
    '[data-testid="author-name"]',
)


def is_hidden(tag: Tag) -> bool:
    if tag.has_attr("hidden"):
        return True
    if str(tag.get("aria-hidden", "")).lower() == "true":
        return True
    style = tag.get("style")
    return bool(style and _HIDDEN_STYLE.search(str(style)))


def render_text(root: Tag | BeautifulSoup) -> str:
    """Visible text of ``root`` with block structure turned into line breaks.

    Walks the tree iteratively so deeply nested markup cannot hit the
    recursion limit.
    """
    parts: list[str] = []
    stack: list[object] = list(reversed(list(root.children)))
    while stack:
        node = stack.pop()
        if isinstance(node, str) and not isinstance(node, NavigableString):
            parts.append(node)
            continue
        if isinstance(node, NavigableString):
            if isinstance(node, _SKIPPED_STRINGS):
                continue
            text = " ".join(str(node).split())
            if text:
                # keep a separating space where the source had one
                if str(node)[:1].isspace():
                    text = " " + text
                if str(node)[-1:].isspace():
                    text = text + " "
                parts.append(text)
            continue
        if not isinstance(node, Tag):
            continue

        name = (node.name or "").lower()
        if name in EXCLUDED_TAGS or is_hidden(node):
            continue
        if name == "br":
            parts.append("\n")
            continue

        if name in PARAGRAPH_TAGS:
            prefix, suffix = "\n\n", "\n\n"
        elif name == "li":
            prefix, suffix = "\n- ", ""
        elif name in BLOCK_TAGS:
            prefix, suffix = "\n", "\n"
        elif name in CELL_TAGS:
            prefix, suffix = "", " | "
        else:
            prefix, suffix = "", ""

        if prefix:
            parts.append(prefix)
        stack.append(suffix)
        stack.extend(reversed(list(node.children)))
    return clean_text("".join(parts))


class GeneralExtractor(BaseExtractor):
    """Readable text from any page, preferring a main-content container."""

    content_type = "general"

    def _extract(self, snapshot: PageSnapshot) -> ExtractedContent:
        soup = parse_html(snapshot.html)
        title = self._safe(lambda: self._title(soup), "Unknown Title", "title")
        description = self._safe(lambda: self._description(soup), None, "description")
        author = self._safe(lambda: self._author(soup), None, "author")

        selection = clean_text(snapshot.selection)
        if selection:
            logger.info(f"Using {len(selection)} characters of selected text for {snapshot.url}")
            return ExtractedContent(
                content_type=self.content_type,
                title=title,
                url=snapshot.url,
                body=selection,
                author=author,
                description=description,
                is_selection=True,
            )

        body = self._main_text(soup)
        logger.info(f"Extracted {len(body)} characters from {snapshot.url}")
        return ExtractedContent(
            content_type=self.content_type,
            title=title,
            url=snapshot.url,
            body=body,
            author=author,
            description=description,
        )

    def _main_text(self, soup: BeautifulSoup) -> str:
        for selector in MAIN_CONTENT_SELECTORS:
            element = soup.select_one(selector)
            if element is None or is_hidden(element):
                continue
            text = render_text(element)
            if len(text) >= MIN_MAIN_CONTENT_CHARS:
                logger.debug(f"Main content matched {selector!r} ({len(text)} chars)")
                return text
        root = soup.body or soup
        return render_text(root)

    @staticmethod
    def _title(soup: BeautifulSoup) -> str:
        if soup.title and normalize_text(soup.title.get_text()):
            return normalize_text(soup.title.get_text())
        og_title = first_attr(soup, ['meta[property="og:title"]'], "content")
        if og_title:
            return normalize_text(og_title)
        h1 = soup.find("h1")
        if h1 and normalize_text(h1.get_text(" ")):
            return normalize_text(h1.get_text(" "))
        return "Unknown Title"

    @staticmethod
    def _description(soup: BeautifulSoup) -> str | None:
        return first_attr(
            soup,
            ['meta[name="description"]', 'meta[property="og:description"]'],
            "content",
        )

    @staticmethod
    def _author(soup: BeautifulSoup) -> str | None:
        meta_author = first_attr(soup, AUTHOR_META_SELECTORS, "content")
        if meta_author:
            return normalize_text(meta_author)
        for selector in AUTHOR_BYLINE_SELECTORS:
            element = soup.select_one(selector)
            if element is None or is_hidden(element):
                continue
            name_node = element.select_one(".author-name, [data-testid='author-name']") or element
            name = re.sub(r"^by\s+", "", normalize_text(name_node.get_text(" ")), flags=re.IGNORECASE)
            if name:
                return name
        return None
