"""Background coordinator: message routing and tab messaging."""

from page_relay.background.prompts import PromptResolver
from page_relay.background.requests import ACTIONS, parse_request
from page_relay.background.router import MessageRouter
from page_relay.background.tabs import PlaywrightTabHost, TabChannel, TabHost

__all__ = [
    "ACTIONS",
    "MessageRouter",
    "PlaywrightTabHost",
    "PromptResolver",
    "TabChannel",
    "TabHost",
    "parse_request",
]
