"""API adapter factory keyed on platform id."""

from __future__ import annotations

from page_relay.api.base import ApiAdapter
from page_relay.api.claude import ClaudeAdapter
from page_relay.api.gemini import GeminiAdapter
from page_relay.api.openai_compat import OpenAICompatibleAdapter
from page_relay.config.loader import get_platform

ADAPTERS: dict[str, type[ApiAdapter]] = {
    "chatgpt": OpenAICompatibleAdapter,
    "claude": ClaudeAdapter,
    "gemini": GeminiAdapter,
    "deepseek": OpenAICompatibleAdapter,
    "grok": OpenAICompatibleAdapter,
    "mistral": OpenAICompatibleAdapter,
}


def create_api_adapter(platform_id: str, **kwargs) -> ApiAdapter:
    descriptor = get_platform(platform_id)
    adapter_cls = ADAPTERS.get(platform_id, OpenAICompatibleAdapter)
    return adapter_cls(descriptor, **kwargs)
