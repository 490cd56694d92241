"""Render a content record plus a prompt into the text sent to a provider."""

from __future__ import annotations

import logging
import re

from page_relay.extraction.models import ExtractedContent

logger = logging.getLogger(__name__)

_PAGE_MARKER = re.compile(r"--- Page (\d+) ---\n*")
_MULTI_NEWLINE = re.compile(r"\n{3,}")


def _format_general(content: ExtractedContent) -> str:
    lines = [
        "## PAGE METADATA",
        f"- Title: {content.title or 'No title available'}",
        f"- URL: {content.url or 'Unknown URL'}",
    ]
    if content.author:
        lines.append(f"- Author: {content.author}")
    if content.description:
        lines.append(f"- Description: {content.description}")
    if content.is_selection:
        lines.append("- Note: This is a user-selected portion of the page content.")
    lines.append("## PAGE CONTENT")
    lines.append(content.body or "No content available")
    return "\n".join(lines)


def _format_reddit(content: ExtractedContent) -> str:
    lines = [
        "## POST METADATA",
        f"- Title: {content.title or 'No title available'}",
        f"- Author: {content.author or 'Unknown author'}",
        f"- Subreddit: {content.metadata.get('subreddit') or 'Unknown subreddit'}",
        f"- URL: {content.url}",
        "## POST CONTENT",
        content.body or "No content available",
    ]
    if content.comments:
        lines.append("## COMMENTS")
        for index, comment in enumerate(content.comments, start=1):
            link = comment.permalink or content.url
            lines.append(
                f"{index}. u/{comment.author or 'Anonymous'} ({comment.popularity or '0'} points) [(link)]({link})"
            )
            lines.append(f'   "{comment.text}"')
    return "\n".join(lines)


def _format_youtube(content: ExtractedContent) -> str:
    lines = [
        "## VIDEO METADATA",
        f"- Title: {content.title or 'No title available'}",
        f"- Channel: {content.author or 'Unknown channel'}",
        f"- URL: {content.url}",
        "## DESCRIPTION",
        content.description or "No description available",
        "## TRANSCRIPT",
        content.transcript or "No transcript available",
    ]
    if content.comments:
        lines.append("## COMMENTS")
        for index, comment in enumerate(content.comments, start=1):
            lines.append(f"{index}. User: {comment.author or 'Anonymous'} ({comment.popularity or '0'} likes)")
            lines.append(f'   "{comment.text}"')
    return "\n".join(lines)


def _format_pdf(content: ExtractedContent) -> str:
    lines = [
        "## PDF METADATA",
        f"- Title: {content.title or 'Untitled PDF'}",
        f"- Pages: {content.metadata.get('pageCount') or 'Unknown'}",
        f"- URL: {content.url or 'Unknown URL'}",
    ]
    if content.author:
        lines.append(f"- Author: {content.author}")
    if content.metadata.get("creationDate"):
        lines.append(f"- Created: {content.metadata['creationDate']}")
    if content.metadata.get("ocrRequired"):
        lines.append("- Note: This PDF may require OCR as text extraction was limited.")
    body = _PAGE_MARKER.sub(lambda m: f"\n\n## PAGE {m.group(1)}\n", content.body or "No content available")
    body = _MULTI_NEWLINE.sub("\n\n", body).strip()
    return "\n".join(lines) + "\n\n## PDF CONTENT\n" + body


_FORMATTERS = {
    "general": _format_general,
    "reddit": _format_reddit,
    "youtube": _format_youtube,
    "pdf": _format_pdf,
}


def format_content(content: ExtractedContent | dict | None) -> str:
    """Flatten a content record using its content type's template.

    Never raises: malformed input comes back as one descriptive line.
    """
    if content is None:
        return "No content data available"
    try:
        if isinstance(content, dict):
            content = ExtractedContent.from_dict(content)
        formatter = _FORMATTERS.get(content.content_type)
        if formatter is None:
            return f"Unsupported content type: {content.content_type}"
        return formatter(content)
    except Exception as e:
        logger.error(f"Could not format content record: {e}")
        return f"Content could not be formatted: {e}"


def build_prompt(content: ExtractedContent | dict | None, prompt_text: str) -> str:
    """Combine the instruction and the formatted content."""
    return f"# INSTRUCTION\n{prompt_text}\n# CONTENT\n{format_content(content)}"
