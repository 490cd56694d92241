"""Text helpers shared by the extraction strategies."""

from __future__ import annotations

import html as html_module
import re

_INLINE_WS = re.compile(r"[\t\v\f\r ]+")
_MULTI_NEWLINE = re.compile(r"\n{3,}")
_SPACE_BEFORE_NEWLINE = re.compile(r" +\n")
_SPACE_AFTER_NEWLINE = re.compile(r"\n +")


def clean_text(text: str | None) -> str:
    """Collapse runs of spaces, keep paragraph breaks (at most one blank line)."""
    if not text:
        return ""
    cleaned = text.replace("\r\n", "\n").replace("\xa0", " ")
    cleaned = _INLINE_WS.sub(" ", cleaned)
    cleaned = _SPACE_BEFORE_NEWLINE.sub("\n", cleaned)
    cleaned = _SPACE_AFTER_NEWLINE.sub("\n", cleaned)
    cleaned = _MULTI_NEWLINE.sub("\n\n", cleaned)
    return cleaned.strip()


def normalize_text(text: str | None) -> str:
    """Single-line normalization for titles, names and comment bodies."""
    if not text:
        return ""
    return " ".join(html_module.unescape(text).split())


def normalize_score(raw: str | None) -> str:
    """Turn vote labels such as ``1.2k`` or ``34 points`` into a digit string."""
    if not raw:
        return "0"
    value = raw.strip().lower().replace(",", "")
    match = re.search(r"(-?\d+(?:\.\d+)?)\s*([km])?", value)
    if not match:
        return "0"
    number = float(match.group(1))
    suffix = match.group(2)
    if suffix == "k":
        number *= 1_000
    elif suffix == "m":
        number *= 1_000_000
    return str(int(round(number)))


def format_timestamp(seconds: float) -> str:
    total = max(0, int(seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def parse_timestamp(label: str | None) -> float | None:
    """Parse ``M:SS`` / ``H:MM:SS`` into seconds."""
    if not label:
        return None
    parts = label.strip().split(":")
    try:
        values = [int(p) for p in parts]
    except ValueError:
        return None
    seconds = 0
    for value in values:
        seconds = seconds * 60 + value
    return float(seconds)
