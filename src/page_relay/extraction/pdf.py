"""PDF document extraction."""

from __future__ import annotations

import io
import logging
from pathlib import PurePosixPath
from urllib.parse import unquote, urlparse

from page_relay.exceptions import ExtractionError
from page_relay.extraction.base import BaseExtractor
from page_relay.extraction.models import ExtractedContent, PageSnapshot
from page_relay.extraction.text import clean_text, normalize_text

logger = logging.getLogger(__name__)

# Below this many characters per page the PDF is probably scanned images.
OCR_CHARS_PER_PAGE = 50


def _title_from_url(url: str) -> str:
    name = PurePosixPath(unquote(urlparse(url).path)).name
    return name or "Untitled PDF"


class PdfExtractor(BaseExtractor):
    content_type = "pdf"

    def _extract(self, snapshot: PageSnapshot) -> ExtractedContent:
        if not snapshot.pdf_bytes:
            raise ExtractionError("PDF data was not available for this page")
        try:
            from pypdf import PdfReader
        except ImportError:
            raise ImportError(
                "pypdf is required for PdfExtractor. "
                "Install with: pip install page-relay[pdf]"
            )

        try:
            reader = PdfReader(io.BytesIO(snapshot.pdf_bytes))
        except Exception as e:
            raise ExtractionError(f"Could not open PDF: {e}") from e

        metadata = self._safe(lambda: reader.metadata, None, "metadata")
        title = normalize_text(getattr(metadata, "title", None) or "") or _title_from_url(snapshot.url)
        author = normalize_text(getattr(metadata, "author", None) or "") or None

        pages: list[str] = []
        text_chars = 0
        for index, page in enumerate(reader.pages, start=1):
            text = self._safe(lambda: clean_text(page.extract_text()), "", f"page {index}")
            text_chars += len(text)
            pages.append(f"--- Page {index} ---\n\n{text}")
        page_count = len(pages)
        body = "\n\n".join(pages)

        created = getattr(metadata, "creation_date", None) if metadata is not None else None
        logger.info(f"PDF extraction: {page_count} pages, {text_chars} characters from {snapshot.url}")
        return ExtractedContent(
            content_type=self.content_type,
            title=title,
            url=snapshot.url,
            body=body,
            author=author,
            metadata={
                "pageCount": page_count,
                "creationDate": created.isoformat() if hasattr(created, "isoformat") else None,
                "ocrRequired": page_count > 0 and text_chars < OCR_CHARS_PER_PAGE * page_count,
            },
        )
