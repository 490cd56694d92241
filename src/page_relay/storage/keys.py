"""Storage key names, partitioned by area."""

from __future__ import annotations

# sync area: user-facing settings that follow the user across devices
API_CREDENTIALS = "api_credentials"
CUSTOM_PROMPTS = "custom_prompts"
API_MODE_PREFERENCE = "api_mode_preference"

# local area: high-churn, per-tab state
TAB_UI_STATES = "tab_ui_states"
CHAT_SESSIONS = "chat_sessions"
TOKEN_STATS = "token_stats"
TAB_EXTRACTION_PREFERENCES = "tab_extraction_preferences"

_EXTRACTED_CONTENT_PREFIX = "extracted_content"
_CONTENT_READY_PREFIX = "content_ready"


def extracted_content_key(tab_id: int) -> str:
    return f"{_EXTRACTED_CONTENT_PREFIX}:{tab_id}"


def content_ready_key(tab_id: int) -> str:
    return f"{_CONTENT_READY_PREFIX}:{tab_id}"
