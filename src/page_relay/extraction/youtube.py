"""YouTube video extraction: metadata, transcript and comments."""

from __future__ import annotations

import logging
from urllib.parse import parse_qs, urlparse

from bs4 import Tag

from page_relay.extraction.base import BaseExtractor, first_attr, first_text, parse_html
from page_relay.extraction.models import Comment, ExtractedContent, PageSnapshot
from page_relay.extraction.text import (
    clean_text,
    format_timestamp,
    normalize_score,
    normalize_text,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_COMMENTS = 50
TRANSCRIPT_STAMP_INTERVAL = 15

TITLE_SELECTORS = (
    "h1.ytd-watch-metadata yt-formatted-string",
    "h1.ytd-watch-metadata",
    "#title h1",
    "h1.title",
)

CHANNEL_SELECTORS = (
    "ytd-channel-name#channel-name a",
    "#owner #channel-name a",
    "#upload-info #channel-name a",
    "ytd-channel-name a",
)

DESCRIPTION_SELECTORS = (
    "#description-inline-expander yt-attributed-string",
    "#description-inline-expander",
    "ytd-text-inline-expander #snippet",
    "#description",
)

TRANSCRIPT_SEGMENT_SELECTORS = (
    "ytd-transcript-segment-renderer",
    "transcript-segment-view-model",
)

COMMENT_SELECTOR = "ytd-comment-thread-renderer"


class YouTubeExtractor(BaseExtractor):
    content_type = "youtube"

    def __init__(self, max_comments: int | None = None):
        super().__init__(max_comments=max_comments or DEFAULT_MAX_COMMENTS)

    def _extract(self, snapshot: PageSnapshot) -> ExtractedContent:
        soup = parse_html(snapshot.html)
        video_id = self._safe(lambda: self._video_id(snapshot.url), None, "video id")
        title = self._safe(lambda: self._title(soup), "No title available", "title")
        channel = self._safe(
            lambda: first_text(soup, CHANNEL_SELECTORS)
            or first_attr(soup, ['span[itemprop="author"] link[itemprop="name"]', 'link[itemprop="name"]'], "content"),
            None,
            "channel",
        )
        description = self._safe(lambda: self._description(soup), None, "description")
        transcript = self._safe(lambda: self._transcript(soup), None, "transcript")
        comments, comment_state = self._safe(
            lambda: self._comments(soup), ([], "unknown"), "comments"
        )

        logger.info(
            f"YouTube extraction for {video_id}: transcript={'yes' if transcript else 'no'}, "
            f"{len(comments)} comments ({comment_state})"
        )
        return ExtractedContent(
            content_type=self.content_type,
            title=title,
            url=snapshot.url,
            author=channel or "Unknown channel",
            description=description,
            transcript=transcript or "Transcript not available for this video.",
            comments=comments,
            metadata={
                "videoId": video_id,
                "transcriptAvailable": bool(transcript),
                "commentStatus": comment_state,
            },
        )

    @staticmethod
    def _video_id(url: str) -> str | None:
        values = parse_qs(urlparse(url).query).get("v")
        return values[0] if values else None

    @staticmethod
    def _title(soup) -> str:
        title = first_text(soup, TITLE_SELECTORS) or first_attr(soup, ['meta[name="title"]'], "content")
        if title:
            return normalize_text(title)
        if soup.title:
            page_title = normalize_text(soup.title.get_text())
            if page_title.endswith(" - YouTube"):
                page_title = page_title[: -len(" - YouTube")]
            if page_title:
                return page_title
        return "No title available"

    @staticmethod
    def _description(soup) -> str | None:
        for selector in DESCRIPTION_SELECTORS:
            element = soup.select_one(selector)
            if element is not None:
                text = clean_text(element.get_text("\n"))
                if text:
                    return text
        return first_attr(soup, ['meta[name="description"]'], "content")

    @staticmethod
    def _transcript(soup) -> str | None:
        segments: list[Tag] = []
        for selector in TRANSCRIPT_SEGMENT_SELECTORS:
            segments = soup.select(selector)
            if segments:
                break
        if not segments:
            return None

        lines: list[str] = []
        current: list[str] = []
        last_stamp = -TRANSCRIPT_STAMP_INTERVAL
        for segment in segments:
            stamp_node = segment.select_one(".segment-timestamp")
            text_node = segment.select_one(".segment-text") or segment
            text = normalize_text(text_node.get_text(" "))
            if stamp_node is not None and text_node is segment:
                text = normalize_text(text.replace(stamp_node.get_text(" ").strip(), "", 1))
            if not text:
                continue
            seconds = parse_timestamp(stamp_node.get_text() if stamp_node else None)
            if seconds is not None and seconds >= last_stamp + TRANSCRIPT_STAMP_INTERVAL:
                if current:
                    lines.append(" ".join(current))
                current = [f"[{format_timestamp(seconds)}] {text}"]
                last_stamp = seconds
            else:
                current.append(text)
        if current:
            lines.append(" ".join(current))
        return "\n".join(lines) or None

    def _comments(self, soup) -> tuple[list[Comment], str]:
        notice = soup.select_one("#comments ytd-message-renderer")
        if notice is not None:
            notice_text = notice.get_text(" ").lower()
            if "disabled" in notice_text or "turned off" in notice_text:
                return [], "disabled"

        elements = soup.select(COMMENT_SELECTOR)
        if not elements:
            return [], "empty"

        comments: list[Comment] = []
        for element in elements:
            if len(comments) >= self.max_comments:
                break
            try:
                author = first_text(element, ["#author-text"]) or "Unknown user"
                text = first_text(element, ["#content-text", "yt-formatted-string#content-text"])
                if not text:
                    continue
                likes = first_text(element, ["#vote-count-middle"])
                comments.append(
                    Comment(
                        author=author,
                        text=text,
                        popularity=normalize_score(likes),
                    )
                )
            except Exception as e:
                logger.warning(f"Skipping malformed YouTube comment: {e}")
        return comments, "loaded"
