"""Prompt and content formatting."""

from page_relay.formatting.formatter import build_prompt, format_content

__all__ = ["build_prompt", "format_content"]
