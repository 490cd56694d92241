"""Chat sessions and per-tab UI state."""

from page_relay.sessions.manager import StateManager, estimate_tokens
from page_relay.sessions.models import ChatMessage, ChatSession, TabUIState

__all__ = [
    "ChatMessage",
    "ChatSession",
    "StateManager",
    "TabUIState",
    "estimate_tokens",
]
