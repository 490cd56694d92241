"""Reddit post and comment extraction."""

from __future__ import annotations

import logging
import re
from urllib.parse import urljoin, urlparse

from bs4 import Tag

from page_relay.extraction.base import (
    BaseExtractor,
    first_attr,
    first_family,
    first_text,
    paragraphs_text,
    parse_html,
)
from page_relay.extraction.models import Comment, ExtractedContent, PageSnapshot
from page_relay.extraction.text import normalize_score, normalize_text

logger = logging.getLogger(__name__)

DEFAULT_MAX_COMMENTS = 200

TITLE_SELECTORS = (
    "shreddit-post h1",
    "h1[slot='title']",
    "h1",
)

BODY_SELECTORS = (
    '.text-neutral-content[slot="text-body"] .md',
    'shreddit-post div[slot="text-body"]',
    ".RichTextJSON-root",
    'div[data-testid="post-content"] div[data-click-id="text"]',
)

AUTHOR_SELECTORS = (
    'span[slot="authorName"] a.author-name',
    'a[data-testid="post_author_link"]',
    'a[data-click-id="user"]',
    ".author-link",
)

SUBREDDIT_SELECTORS = (
    'a[data-testid="subreddit-name"]',
    'a[data-click-id="subreddit"]',
    ".subreddit-link",
)

# Each family matches one generation of Reddit's markup; never merged.
COMMENT_FAMILIES = (
    "shreddit-comment",
    'div[data-testid="comment"]',
    ".Comment",
)

COMMENT_AUTHOR_SELECTORS = (
    'a[data-testid="comment_author_link"]',
    'a[data-click-id="user"]',
    "a.author",
)

COMMENT_TEXT_SELECTORS = (
    ".md",
    '[data-testid="comment-content"]',
    'div[data-click-id="text"]',
)

COMMENT_SCORE_SELECTORS = (
    '[data-testid="vote-score"]',
    "div[class*='score']",
    ".vote-count",
    ".score",
    'span[aria-label*="votes"]',
)

_SUBREDDIT_IN_PATH = re.compile(r"/r/([^/]+)")


class RedditExtractor(BaseExtractor):
    """Post fields plus up to ``max_comments`` comments."""

    content_type = "reddit"

    def __init__(self, max_comments: int | None = None):
        super().__init__(max_comments=max_comments or DEFAULT_MAX_COMMENTS)

    def _extract(self, snapshot: PageSnapshot) -> ExtractedContent:
        soup = parse_html(snapshot.html)
        post = soup.select_one("shreddit-post")

        title = self._safe(lambda: first_text(soup, TITLE_SELECTORS), None, "title")
        if not title and post is not None:
            title = post.get("post-title")
        body = self._safe(lambda: self._body(soup), None, "body")
        author = self._safe(lambda: first_text(soup, AUTHOR_SELECTORS), None, "author")
        if not author and post is not None and post.get("author"):
            author = str(post.get("author"))
        subreddit = self._safe(lambda: self._subreddit(soup, snapshot.url), "Unknown subreddit", "subreddit")
        comments = self._safe(lambda: self._comments(soup, snapshot.url), [], "comments")

        logger.info(f"Reddit extraction: {len(comments)} comments from {snapshot.url}")
        return ExtractedContent(
            content_type=self.content_type,
            title=title or "Title not found",
            url=snapshot.url,
            body=body or "Post content not found",
            author=author or "Unknown author",
            comments=comments,
            metadata={"subreddit": subreddit},
        )

    @staticmethod
    def _body(soup) -> str | None:
        for selector in BODY_SELECTORS:
            element = soup.select_one(selector)
            if element is not None:
                text = paragraphs_text(element)
                if text:
                    return text
        return None

    @staticmethod
    def _subreddit(soup, url: str) -> str:
        name = first_text(soup, SUBREDDIT_SELECTORS)
        if name:
            return name
        match = _SUBREDDIT_IN_PATH.search(urlparse(url).path)
        if match:
            return f"r/{match.group(1)}"
        return "Unknown subreddit"

    def _comments(self, soup, url: str) -> list[Comment]:
        selector, elements = first_family(soup, COMMENT_FAMILIES)
        if not elements:
            logger.info("No Reddit comments found")
            return []
        logger.info(f"Found {len(elements)} comments using selector {selector!r}")

        comments: list[Comment] = []
        for element in elements:
            if len(comments) >= self.max_comments:
                break
            try:
                comment = self._comment(element, url)
            except Exception as e:
                logger.warning(f"Skipping malformed Reddit comment: {e}")
                continue
            if comment is not None:
                comments.append(comment)
        return comments

    @staticmethod
    def _own_text_root(element: Tag) -> Tag:
        """Restrict lookups to this comment, not the replies nested inside it."""
        content = element.find(attrs={"slot": "comment"}, recursive=False)
        return content or element

    def _comment(self, element: Tag, url: str) -> Comment | None:
        root = self._own_text_root(element)
        author = (
            (first_text(root, COMMENT_AUTHOR_SELECTORS) if root is not element else None)
            or element.get("author")
            or first_text(element, COMMENT_AUTHOR_SELECTORS)
            or "Unknown user"
        )

        text = ""
        for selector in COMMENT_TEXT_SELECTORS:
            node = root.select_one(selector)
            if node is not None:
                text = paragraphs_text(node)
                break
        if not text:
            return None

        raw_score = element.get("score")
        if raw_score is None:
            action_row = element.select_one("shreddit-comment-action-row[score]")
            raw_score = action_row.get("score") if action_row is not None else None
        if raw_score is None:
            raw_score = first_text(element, COMMENT_SCORE_SELECTORS)

        permalink = element.get("permalink") or first_attr(element, ['a[href*="/comment/"]'], "href")
        if permalink and permalink.startswith("/"):
            permalink = urljoin("https://www.reddit.com", permalink)

        return Comment(
            author=normalize_text(str(author)),
            text=text,
            popularity=normalize_score(str(raw_score) if raw_score is not None else None),
            permalink=permalink or url,
        )
