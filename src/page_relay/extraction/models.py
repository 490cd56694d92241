"""Data models for extracted page content."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

CONTENT_TYPES = ("general", "reddit", "youtube", "pdf")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PageSnapshot:
    """What a tab agent hands to an extractor: the page as it stands now."""

    url: str
    html: str = ""
    selection: str = ""
    pdf_bytes: bytes | None = None


@dataclass
class Comment:
    author: str
    text: str
    popularity: str = "0"
    permalink: str | None = None

    def to_dict(self) -> dict:
        data = {"author": self.author, "text": self.text, "popularity": self.popularity}
        if self.permalink:
            data["permalink"] = self.permalink
        return data


@dataclass
class ExtractedContent:
    """The canonical content record produced by one extraction."""

    content_type: str
    title: str
    url: str
    body: str = ""
    author: str | None = None
    description: str | None = None
    comments: list[Comment] = field(default_factory=list)
    transcript: str | None = None
    is_selection: bool = False
    extracted_at: str = field(default_factory=utc_now_iso)
    error: bool = False
    message: str | None = None
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Serialize with the wire/storage (camelCase) field names."""
        return {
            "contentType": self.content_type,
            "title": self.title,
            "url": self.url,
            "body": self.body,
            "author": self.author,
            "description": self.description,
            "comments": [c.to_dict() for c in self.comments],
            "transcript": self.transcript,
            "isSelection": self.is_selection,
            "extractedAt": self.extracted_at,
            "error": self.error,
            "message": self.message,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ExtractedContent":
        comments = [
            Comment(
                author=str(c.get("author") or "Unknown user"),
                text=str(c.get("text") or ""),
                popularity=str(c.get("popularity") or "0"),
                permalink=c.get("permalink"),
            )
            for c in data.get("comments") or []
            if isinstance(c, dict)
        ]
        return cls(
            content_type=data.get("contentType") or "general",
            title=data.get("title") or "",
            url=data.get("url") or "",
            body=data.get("body") or "",
            author=data.get("author"),
            description=data.get("description"),
            comments=comments,
            transcript=data.get("transcript"),
            is_selection=bool(data.get("isSelection")),
            extracted_at=data.get("extractedAt") or utc_now_iso(),
            error=bool(data.get("error")),
            message=data.get("message"),
            metadata=dict(data.get("metadata") or {}),
        )
