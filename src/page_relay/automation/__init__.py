"""Automation mode: drive a provider's web chat page."""

from page_relay.automation.base import (
    AutomationAdapter,
    AutomationOutcome,
    AutomationState,
    ContentEditableAdapter,
    TextareaAdapter,
)
from page_relay.automation.conditions import ConditionResult, await_condition
from page_relay.automation.driver import PageDriver, PlaywrightPageDriver
from page_relay.automation.providers import ADAPTERS, create_automation_adapter

__all__ = [
    "ADAPTERS",
    "AutomationAdapter",
    "AutomationOutcome",
    "AutomationState",
    "ConditionResult",
    "ContentEditableAdapter",
    "PageDriver",
    "PlaywrightPageDriver",
    "TextareaAdapter",
    "await_condition",
    "create_automation_adapter",
]
