"""Data models for chat sessions and per-tab UI state."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from page_relay.extraction.models import utc_now_iso


def new_session_id() -> str:
    return f"chat_{uuid.uuid4().hex}"


@dataclass
class ChatMessage:
    role: str  # "user" | "assistant"
    content: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str | None = None
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict:
        return {
            "role": self.role,
            "content": self.content,
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "model": self.model,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ChatMessage":
        return cls(
            role=data["role"],
            content=data.get("content", ""),
            input_tokens=data.get("inputTokens") or 0,
            output_tokens=data.get("outputTokens") or 0,
            model=data.get("model"),
            timestamp=data.get("timestamp") or utc_now_iso(),
        )


@dataclass
class ChatSession:
    """A conversation bound to one tab.

    Provisional until its first real exchange fixes the platform and model.
    """

    tab_id: int
    platform_id: str | None = None
    model_id: str | None = None
    id: str = field(default_factory=new_session_id)
    messages: list[ChatMessage] = field(default_factory=list)
    is_provisional: bool = True
    created_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tabId": self.tab_id,
            "platformId": self.platform_id,
            "modelId": self.model_id,
            "messages": [m.to_dict() for m in self.messages],
            "isProvisional": self.is_provisional,
            "createdAt": self.created_at,
        }

    def history(self) -> list[dict]:
        """Prior turns as ``{role, content}`` for a follow-up request."""
        return [{"role": m.role, "content": m.content} for m in self.messages if m.content]

    @classmethod
    def from_dict(cls, data: dict) -> "ChatSession":
        return cls(
            id=data["id"],
            tab_id=data["tabId"],
            platform_id=data.get("platformId"),
            model_id=data.get("modelId"),
            messages=[ChatMessage.from_dict(m) for m in data.get("messages") or []],
            is_provisional=bool(data.get("isProvisional", True)),
            created_at=data.get("createdAt") or utc_now_iso(),
        )


@dataclass
class TabUIState:
    tab_id: int
    active_chat_session_id: str | None = None
    side_panel_visible: bool = False
    current_view: str = "chat"

    def to_dict(self) -> dict:
        return {
            "tabId": self.tab_id,
            "activeChatSessionId": self.active_chat_session_id,
            "sidePanelVisible": self.side_panel_visible,
            "currentView": self.current_view,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TabUIState":
        return cls(
            tab_id=data["tabId"],
            active_chat_session_id=data.get("activeChatSessionId"),
            side_panel_visible=bool(data.get("sidePanelVisible", False)),
            current_view=data.get("currentView") or "chat",
        )
