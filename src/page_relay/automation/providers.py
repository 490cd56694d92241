"""Per-provider automation adapters."""

from __future__ import annotations

from page_relay.automation.base import AutomationAdapter
from page_relay.automation.driver import PageDriver
from page_relay.config.loader import get_platform


class ChatGptAutomation(AutomationAdapter):
    """chatgpt.com, ProseMirror editor at #prompt-textarea."""


class ClaudeAutomation(AutomationAdapter):
    """claude.ai, ProseMirror editor."""


class GeminiAutomation(AutomationAdapter):
    """gemini.google.com, Quill editor inside rich-textarea."""


class DeepSeekAutomation(AutomationAdapter):
    pass


class GrokAutomation(AutomationAdapter):
    pass


class MistralAutomation(AutomationAdapter):
    pass


ADAPTERS: dict[str, type[AutomationAdapter]] = {
    "chatgpt": ChatGptAutomation,
    "claude": ClaudeAutomation,
    "gemini": GeminiAutomation,
    "deepseek": DeepSeekAutomation,
    "grok": GrokAutomation,
    "mistral": MistralAutomation,
}


def create_automation_adapter(platform_id: str, driver: PageDriver, **kwargs) -> AutomationAdapter:
    """Build the adapter for ``platform_id`` over an open provider tab.

    The editor kind always comes from the provider's descriptor, so catalog
    entries without a dedicated class work the same way.
    """
    adapter_cls = ADAPTERS.get(platform_id, AutomationAdapter)
    return adapter_cls(get_platform(platform_id), driver, **kwargs)
