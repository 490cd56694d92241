"""API mode: call a provider's HTTP API directly."""

from page_relay.api.base import ApiAdapter, ApiResponse, HttpApiAdapter, chat_messages
from page_relay.api.claude import ClaudeAdapter
from page_relay.api.coordinator import ApiCoordinator
from page_relay.api.gemini import GeminiAdapter
from page_relay.api.openai_compat import OpenAICompatibleAdapter
from page_relay.api.providers import create_api_adapter

__all__ = [
    "ApiAdapter",
    "ApiCoordinator",
    "ApiResponse",
    "ClaudeAdapter",
    "GeminiAdapter",
    "HttpApiAdapter",
    "OpenAICompatibleAdapter",
    "chat_messages",
    "create_api_adapter",
]
