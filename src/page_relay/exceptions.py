"""Unified exception hierarchy for page-relay."""

from __future__ import annotations


class PageRelayError(Exception):
    """Base exception for all page-relay errors."""


# Extraction
class ExtractionError(PageRelayError):
    """Partial or total failure extracting page content."""


# Automation
class AutomationError(PageRelayError):
    """Base exception for driving a provider's web chat interface."""

    reason = "automation-failed"

    def __init__(self, message: str, platform_id: str | None = None):
        super().__init__(message)
        self.platform_id = platform_id


class NotLoggedInError(AutomationError):
    """The provider's chat page asks the user to log in."""

    reason = "not-logged-in"


class InterfaceNotFoundError(AutomationError):
    """The provider's input control never appeared."""

    reason = "interface-not-found"


class SubmitFailedError(AutomationError):
    """No usable send control was found after inserting the prompt."""

    reason = "submit-failed"


# API
class ApiError(PageRelayError):
    """Failure calling a provider's HTTP API.

    Args:
        kind: One of ``network``, ``server``, ``auth``, ``rate_limit``, ``request``.
        status_code: HTTP status when the provider answered.
    """

    RETRYABLE_KINDS = frozenset({"network", "server"})

    def __init__(
        self,
        message: str,
        kind: str = "request",
        platform_id: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.platform_id = platform_id
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.kind in self.RETRYABLE_KINDS


# Input
class ValidationError(PageRelayError):
    """Bad or missing input, caught before any network call."""


class ConfigError(PageRelayError):
    """Provider catalog or prompt configuration is missing or malformed."""


# Infrastructure
class StorageError(PageRelayError):
    """Failed to read or write persistent storage."""


class MessageTimeoutError(PageRelayError):
    """A cross-domain request got no response within its budget."""
