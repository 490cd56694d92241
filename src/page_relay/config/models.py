"""Data models for provider configuration."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class AutomationSelectors:
    """How to find and drive a provider's web chat controls."""

    editor: str  # "textarea" | "contenteditable"
    input: tuple[str, ...]
    submit: tuple[str, ...]
    login_markers: tuple[str, ...] = ("log in", "sign in")
    settle_delay_ms: int = 1000


@dataclass(frozen=True)
class PlatformDescriptor:
    """One AI chat provider, read-only for the process lifetime."""

    id: str
    display_name: str
    url: str
    endpoint: str
    auth_type: str  # "bearer" | "header" | "query"
    models: tuple[str, ...]
    default_model: str
    automation_selectors: AutomationSelectors
    auth_header: str | None = None
    extra: dict = field(default_factory=dict, compare=False, hash=False)
