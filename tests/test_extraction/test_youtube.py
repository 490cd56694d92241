"""Tests for YouTube extraction."""

from page_relay.extraction.models import PageSnapshot
from page_relay.extraction.youtube import DEFAULT_MAX_COMMENTS, YouTubeExtractor

URL = "https://www.youtube.com/watch?v=abc123"


def _comment(i: int) -> str:
    return (
        "<ytd-comment-thread-renderer>"
        f'<a id="author-text"><span>@viewer{i}</span></a>'
        f'<yt-formatted-string id="content-text">Great video {i}</yt-formatted-string>'
        '<span id="vote-count-middle">2.5K</span>'
        "</ytd-comment-thread-renderer>"
    )


def _segment(stamp: str, text: str) -> str:
    return (
        "<ytd-transcript-segment-renderer>"
        f'<div class="segment-timestamp">{stamp}</div>'
        f'<yt-formatted-string class="segment-text">{text}</yt-formatted-string>'
        "</ytd-transcript-segment-renderer>"
    )


def _video(extra: str = "") -> str:
    return (
        "<html><head><title>My Video - YouTube</title></head><body>"
        '<h1 class="ytd-watch-metadata"><yt-formatted-string>Learning Python</yt-formatted-string></h1>'
        '<ytd-channel-name id="channel-name"><a href="/@chan">Code Channel</a></ytd-channel-name>'
        '<div id="description-inline-expander"><yt-attributed-string>All about Python.</yt-attributed-string></div>'
        f"{extra}"
        "</body></html>"
    )


def test_video_fields():
    content = YouTubeExtractor().extract(PageSnapshot(url=URL, html=_video()))
    assert content.content_type == "youtube"
    assert content.title == "Learning Python"
    assert content.author == "Code Channel"
    assert content.description == "All about Python."
    assert content.metadata["videoId"] == "abc123"


def test_transcript_grouped_by_interval():
    segments = (
        _segment("0:00", "hello")
        + _segment("0:05", "there")
        + _segment("0:16", "next part")
        + _segment("0:31", "final part")
    )
    content = YouTubeExtractor().extract(PageSnapshot(url=URL, html=_video(segments)))
    assert content.transcript == "[00:00] hello there\n[00:16] next part\n[00:31] final part"
    assert content.metadata["transcriptAvailable"] is True


def test_missing_transcript_placeholder():
    content = YouTubeExtractor().extract(PageSnapshot(url=URL, html=_video()))
    assert content.transcript == "Transcript not available for this video."
    assert content.metadata["transcriptAvailable"] is False


def test_comment_cap_default():
    comments = "".join(_comment(i) for i in range(DEFAULT_MAX_COMMENTS + 10))
    content = YouTubeExtractor().extract(PageSnapshot(url=URL, html=_video(comments)))
    assert DEFAULT_MAX_COMMENTS == 50
    assert len(content.comments) == 50
    assert content.comments[0].author == "@viewer0"
    assert content.comments[0].popularity == "2500"
    assert content.metadata["commentStatus"] == "loaded"


def test_comments_disabled():
    notice = '<div id="comments"><ytd-message-renderer>Comments are turned off.</ytd-message-renderer></div>'
    content = YouTubeExtractor().extract(PageSnapshot(url=URL, html=_video(notice)))
    assert content.comments == []
    assert content.metadata["commentStatus"] == "disabled"


def test_title_from_page_title():
    html = "<html><head><title>Fallback Title - YouTube</title></head><body></body></html>"
    content = YouTubeExtractor().extract(PageSnapshot(url=URL, html=html))
    assert content.title == "Fallback Title"
    assert content.author == "Unknown channel"
