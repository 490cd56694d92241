"""Content extraction strategies, selected by URL."""

from __future__ import annotations

from page_relay.extraction.base import (
    BaseExtractor,
    detect_content_type,
    is_injectable_page,
    is_side_panel_allowed_page,
)
from page_relay.extraction.general import GeneralExtractor
from page_relay.extraction.models import Comment, ExtractedContent, PageSnapshot
from page_relay.extraction.pdf import PdfExtractor
from page_relay.extraction.reddit import RedditExtractor
from page_relay.extraction.youtube import YouTubeExtractor

_EXTRACTORS: dict[str, type[BaseExtractor]] = {
    "general": GeneralExtractor,
    "reddit": RedditExtractor,
    "youtube": YouTubeExtractor,
    "pdf": PdfExtractor,
}


def create_extractor(url: str, max_comments: int | None = None) -> BaseExtractor:
    """Pick the strategy for ``url``."""
    return _EXTRACTORS[detect_content_type(url)](max_comments=max_comments)


__all__ = [
    "BaseExtractor",
    "Comment",
    "ExtractedContent",
    "GeneralExtractor",
    "PageSnapshot",
    "PdfExtractor",
    "RedditExtractor",
    "YouTubeExtractor",
    "create_extractor",
    "detect_content_type",
    "is_injectable_page",
    "is_side_panel_allowed_page",
]
