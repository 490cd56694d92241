"""Automation-mode adapter: drive a provider's own web chat page."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from enum import Enum

from page_relay.automation.conditions import await_condition
from page_relay.automation.driver import PageDriver
from page_relay.config.models import PlatformDescriptor
from page_relay.exceptions import (
    AutomationError,
    InterfaceNotFoundError,
    NotLoggedInError,
    SubmitFailedError,
)

logger = logging.getLogger(__name__)

INTERFACE_MAX_ATTEMPTS = int(os.environ.get("PAGE_RELAY_INTERFACE_MAX_ATTEMPTS", "20"))
INTERFACE_POLL_INTERVAL = 0.5


class AutomationState(str, Enum):
    INIT = "init"
    WAITING_FOR_INTERFACE = "waiting_for_interface"
    READY = "ready"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    FAILED = "failed"


_TRANSITIONS = {
    AutomationState.INIT: {AutomationState.WAITING_FOR_INTERFACE, AutomationState.FAILED},
    AutomationState.WAITING_FOR_INTERFACE: {AutomationState.READY, AutomationState.FAILED},
    AutomationState.READY: {AutomationState.SUBMITTING, AutomationState.FAILED},
    AutomationState.SUBMITTING: {AutomationState.SUCCESS, AutomationState.FAILED},
    AutomationState.SUCCESS: set(),
    AutomationState.FAILED: set(),
}


@dataclass
class AutomationOutcome:
    """Terminal (or READY) result of one adapter step."""

    platform_id: str
    state: AutomationState
    reason: str | None = None
    message: str | None = None
    attempts: int = 0

    @property
    def succeeded(self) -> bool:
        return self.state in (AutomationState.SUCCESS, AutomationState.READY)

    def to_error(self) -> dict:
        return {"reason": self.reason, "providerId": self.platform_id}


class AutomationAdapter:
    """Readiness detection, insertion and submission for one provider.

    Selectors, timing and the editor kind come from the provider's
    ``PlatformDescriptor``; subclasses may pin ``editor`` instead. Each
    instance drives one delivery and walks INIT -> WAITING_FOR_INTERFACE ->
    READY -> SUBMITTING -> SUCCESS | FAILED exactly once.

    Args:
        max_attempts: Upper bound on interface-ready checks.
        settle_delay: Seconds between insertion and submission. Defaults to
            the provider's ``settleDelayMs``.
    """

    editor: str | None = None

    def __init__(
        self,
        descriptor: PlatformDescriptor,
        driver: PageDriver,
        max_attempts: int = INTERFACE_MAX_ATTEMPTS,
        poll_interval: float = INTERFACE_POLL_INTERVAL,
        settle_delay: float | None = None,
    ):
        self.descriptor = descriptor
        self.driver = driver
        self.selectors = descriptor.automation_selectors
        self.editor = type(self).editor or self.selectors.editor
        self.max_attempts = max_attempts
        self.poll_interval = poll_interval
        if settle_delay is None:
            settle_delay = self.selectors.settle_delay_ms / 1000
        self.settle_delay = settle_delay
        self.state = AutomationState.INIT
        self.history: list[AutomationState] = [AutomationState.INIT]
        self._input_selector: str | None = None

    @property
    def platform_id(self) -> str:
        return self.descriptor.id

    def _transition(self, new_state: AutomationState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise AutomationError(
                f"Invalid transition {self.state.value} -> {new_state.value}",
                platform_id=self.platform_id,
            )
        logger.debug(f"{self.platform_id}: {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    def _fail(self, error: AutomationError, attempts: int = 0) -> AutomationOutcome:
        self._transition(AutomationState.FAILED)
        logger.error(f"{self.platform_id} automation failed ({error.reason}): {error}")
        return AutomationOutcome(
            platform_id=self.platform_id,
            state=AutomationState.FAILED,
            reason=error.reason,
            message=str(error),
            attempts=attempts,
        )

    async def is_logged_in(self) -> bool:
        """Best-effort login check.

        A visible input control means logged in; login wording on a page
        without one means not. Anything else is assumed logged in.
        """
        if await self.driver.find_first(self.selectors.input):
            return True
        try:
            text = (await self.driver.visible_text()).lower()
        except Exception as e:
            logger.warning(f"{self.platform_id}: could not read page text for login check: {e}")
            return True
        return not any(marker.lower() in text for marker in self.selectors.login_markers)

    async def await_interface_ready(self) -> AutomationOutcome:
        self._transition(AutomationState.WAITING_FOR_INTERFACE)
        attempts = 0

        async def input_present():
            nonlocal attempts
            attempts += 1
            return await self.driver.find_first(self.selectors.input)

        try:
            result = await await_condition(
                input_present,
                max_attempts=self.max_attempts,
                interval=self.poll_interval,
                wait=self.driver.wait_for_mutation,
            )
        except Exception as e:
            return self._fail(
                InterfaceNotFoundError(
                    f"{self.descriptor.display_name} page could not be inspected: {e}",
                    platform_id=self.platform_id,
                ),
                attempts=attempts,
            )
        if not result.satisfied:
            return self._fail(
                InterfaceNotFoundError(
                    f"{self.descriptor.display_name} chat input not found after "
                    f"{result.attempts} attempts; the provider UI may have changed",
                    platform_id=self.platform_id,
                ),
                attempts=result.attempts,
            )

        self._input_selector = result.value
        self._transition(AutomationState.READY)
        logger.info(f"{self.platform_id} interface ready after {result.attempts} attempt(s)")
        return AutomationOutcome(
            platform_id=self.platform_id,
            state=AutomationState.READY,
            attempts=result.attempts,
        )

    async def insert_and_submit(self, text: str) -> AutomationOutcome:
        """Insert ``text`` and press send once. Requires READY."""
        if self.state is not AutomationState.READY or not self._input_selector:
            raise AutomationError(
                "insert_and_submit called before the interface was ready",
                platform_id=self.platform_id,
            )
        self._transition(AutomationState.SUBMITTING)

        try:
            await self.driver.set_input(self._input_selector, text, self.editor)
        except Exception as e:
            return self._fail(
                SubmitFailedError(f"Could not insert text: {e}", platform_id=self.platform_id)
            )

        await asyncio.sleep(self.settle_delay)

        try:
            submit_selector = await self.driver.find_first(self.selectors.submit)
        except Exception as e:
            return self._fail(
                SubmitFailedError(f"Could not look up the send button: {e}", platform_id=self.platform_id)
            )
        if submit_selector is None:
            return self._fail(
                SubmitFailedError(
                    f"{self.descriptor.display_name} send button not found; "
                    "the provider UI may have changed",
                    platform_id=self.platform_id,
                )
            )
        try:
            await self.driver.click(submit_selector)
        except Exception as e:
            return self._fail(
                SubmitFailedError(f"Send button click failed: {e}", platform_id=self.platform_id)
            )

        self._transition(AutomationState.SUCCESS)
        logger.info(f"{self.platform_id}: prompt submitted ({len(text)} chars)")
        return AutomationOutcome(platform_id=self.platform_id, state=AutomationState.SUCCESS)

    async def deliver(self, text: str) -> AutomationOutcome:
        """Full run: login check, wait for the input, insert and submit.

        Driver failures never escape: before READY they end in
        ``interface-not-found``, after it in ``submit-failed``.
        """
        try:
            logged_in = await self.is_logged_in()
        except Exception as e:
            return self._fail(
                InterfaceNotFoundError(
                    f"{self.descriptor.display_name} page could not be inspected: {e}",
                    platform_id=self.platform_id,
                )
            )
        if not logged_in:
            return self._fail(
                NotLoggedInError(
                    f"Please log in to {self.descriptor.display_name} and try again",
                    platform_id=self.platform_id,
                )
            )
        ready = await self.await_interface_ready()
        if ready.state is AutomationState.FAILED:
            return ready
        outcome = await self.insert_and_submit(text)
        outcome.attempts = ready.attempts
        return outcome


class TextareaAdapter(AutomationAdapter):
    """Providers whose input is a plain ``<textarea>``."""

    editor = "textarea"


class ContentEditableAdapter(AutomationAdapter):
    """Providers with a rich-text (ProseMirror / Quill) editor."""

    editor = "contenteditable"
