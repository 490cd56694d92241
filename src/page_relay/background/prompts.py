"""Resolve the instruction text for a summarize request."""

from __future__ import annotations

import logging

from page_relay.config.loader import load_default_prompts
from page_relay.exceptions import ConfigError
from page_relay.storage import keys
from page_relay.storage.base import BaseStore

logger = logging.getLogger(__name__)


class PromptResolver:
    """``testPrompt`` verbatim, else a custom prompt, else the default.

    Custom prompts live in the sync area under ``custom_prompts``::

        {contentType: {"prompts": {id: {"name", "content"}},
                       "preferredPromptId": id, "settings": {...}}}
    """

    def __init__(self, storage: BaseStore):
        self.storage = storage

    async def resolve(
        self,
        content_type: str,
        prompt_id: str | None = None,
        test_prompt: str | None = None,
    ) -> str:
        if test_prompt and test_prompt.strip():
            return test_prompt

        custom = await self.storage.get_value(keys.CUSTOM_PROMPTS, {}) or {}
        entry = custom.get(content_type) or {}
        prompts = entry.get("prompts") or {}

        wanted = prompt_id or entry.get("preferredPromptId")
        if wanted and wanted != content_type:
            prompt = prompts.get(wanted)
            if prompt and prompt.get("content"):
                return prompt["content"]
            logger.warning(f"Prompt {wanted!r} not found for {content_type}; using default")

        return self.default_prompt(content_type)

    @staticmethod
    def default_prompt(content_type: str) -> str:
        defaults = load_default_prompts()
        entry = defaults.get(content_type) or defaults.get("general")
        if not entry:
            raise ConfigError(f"No default prompt for {content_type}")
        return entry["content"]
