"""Background coordinator: one dispatch point for every request."""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from typing import Any, Callable

from page_relay.api.base import ApiResponse
from page_relay.api.coordinator import ApiCoordinator
from page_relay.automation.conditions import await_condition
from page_relay.automation.providers import create_automation_adapter
from page_relay.background.prompts import PromptResolver
from page_relay.background.requests import (
    CancelStream,
    CheckApiModeAvailable,
    ClearTabData,
    CredentialOperation,
    DeleteChatSession,
    ExtractContent,
    GetApiModels,
    GetContentType,
    GetExtractionPreference,
    NotifyError,
    Ping,
    ResolveSidePanelState,
    SendChatMessage,
    SetExtractionPreference,
    SetTabView,
    SidePanelDisconnected,
    SummarizeContent,
    SwitchChatSession,
    TabRemoved,
    parse_request,
)
from page_relay.background.tabs import TabChannel, TabHost
from page_relay.config.loader import get_platform
from page_relay.credentials.manager import CredentialManager
from page_relay.exceptions import (
    ApiError,
    AutomationError,
    ExtractionError,
    PageRelayError,
    ValidationError,
)
from page_relay.extraction.base import detect_content_type, is_injectable_page
from page_relay.formatting.formatter import build_prompt
from page_relay.sessions.manager import StateManager
from page_relay.storage import StorageAreas, keys

logger = logging.getLogger(__name__)

EXTRACTION_POLL_ATTEMPTS = 30
EXTRACTION_POLL_INTERVAL = 0.5

Listener = Callable[[dict], Any]


class MessageRouter:
    """Routes ``{action, ...}`` envelopes from UI surfaces and tab agents.

    Every envelope gets exactly one response dict. Failures, including
    unexpected exceptions, come back as ``{"success": False, "error": ...}``.
    Per-request state (extracted content, ready flags) is keyed by tab id,
    so concurrent requests for different tabs do not interfere.

    Args:
        storage: Shared local/sync storage areas.
        channel: Messaging to tab agents.
        tab_host: Opens provider tabs for automation mode. Without one,
            automation-mode requests fail with a clear message.
        automation_options: Extra keyword arguments for automation adapters
            (``max_attempts``, ``poll_interval``, ``settle_delay``).
    """

    def __init__(
        self,
        storage: StorageAreas,
        channel: TabChannel,
        tab_host: TabHost | None = None,
        credentials: CredentialManager | None = None,
        api: ApiCoordinator | None = None,
        state: StateManager | None = None,
        prompts: PromptResolver | None = None,
        extraction_attempts: int = EXTRACTION_POLL_ATTEMPTS,
        extraction_interval: float = EXTRACTION_POLL_INTERVAL,
        automation_options: dict | None = None,
    ):
        self.storage = storage
        self.channel = channel
        self.tab_host = tab_host
        self.credentials = credentials or CredentialManager(storage.sync)
        self.api = api or ApiCoordinator(self.credentials)
        self.state = state or StateManager(storage.local)
        self.prompts = prompts or PromptResolver(storage.sync)
        self.extraction_attempts = extraction_attempts
        self.extraction_interval = extraction_interval
        self.automation_options = automation_options or {}
        self._listeners: list[Listener] = []
        self._streams: dict[str, asyncio.Task] = {}

    def add_listener(self, listener: Listener) -> None:
        """Subscribe a UI surface to failure notifications."""
        self._listeners.append(listener)

    async def notify(self, event: dict) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Notification listener failed: {e}")

    async def handle(self, envelope: Any, sender_tab_id: int | None = None) -> dict:
        action = envelope.get("action") if isinstance(envelope, dict) else None
        try:
            request = parse_request(envelope, sender_tab_id)
            return await self._dispatch(request)
        except PageRelayError as e:
            logger.warning(f"{action} failed: {e}")
            return {"success": False, "error": str(e)}
        except Exception as e:
            logger.exception(f"Unexpected error handling {action}")
            return {"success": False, "error": f"Internal error: {e}"}

    async def _dispatch(self, request) -> dict:
        match request:
            case Ping():
                return {"status": "pong", "ready": True}
            case ExtractContent(tab_id=tab_id):
                return await self.channel.send(tab_id, {"action": "extractContent"})
            case SummarizeContent():
                return await self.summarize(request)
            case CredentialOperation():
                return await self._credential_operation(request)
            case CheckApiModeAvailable(platform_id=platform_id):
                return {"success": True, "isAvailable": await self.api.check_availability(platform_id)}
            case GetApiModels(platform_id=platform_id):
                return {
                    "success": True,
                    "models": self.api.list_models(platform_id),
                    "defaultModel": get_platform(platform_id).default_model,
                }
            case ResolveSidePanelState(tab_id=tab_id, current_url=current_url):
                return await self.state.resolve_and_finalize(tab_id, current_url)
            case GetContentType(url=url):
                return {
                    "success": True,
                    "contentType": detect_content_type(url),
                    "isInjectable": is_injectable_page(url),
                }
            case NotifyError(error=error, tab_id=tab_id):
                await self.notify({"type": "error", "message": error, "tabId": tab_id})
                return {"success": True}
            case SidePanelDisconnected(tab_id=tab_id):
                await self.state.mark_disconnected(tab_id)
                return {"success": True}
            case SwitchChatSession(tab_id=tab_id, session_id=session_id):
                session = await self.state.switch_session(tab_id, session_id)
                return {"success": True, "session": session.to_dict()}
            case DeleteChatSession(session_id=session_id):
                return {"success": True, "deleted": await self.state.delete_session(session_id)}
            case ClearTabData(tab_id=tab_id):
                await self.state.clear_tab(tab_id)
                return {"success": True}
            case TabRemoved(tab_id=tab_id):
                self.channel.unregister(tab_id)
                await self.state.on_tab_removed(tab_id)
                return {"success": True}
            case SendChatMessage():
                return await self.send_chat_message(request)
            case CancelStream(stream_id=stream_id):
                return {"success": True, "cancelled": self.cancel_stream(stream_id)}
            case GetExtractionPreference(tab_id=tab_id):
                return {"success": True, "isEnabled": await self.state.get_extraction_preference(tab_id)}
            case SetExtractionPreference(tab_id=tab_id, is_enabled=is_enabled):
                await self.state.set_extraction_preference(tab_id, is_enabled)
                return {"success": True}
            case SetTabView(tab_id=tab_id, view=view):
                state = await self.state.set_view(tab_id, view)
                return {"success": True, "tabState": state.to_dict()}
            case _:
                raise ValidationError(f"Unhandled request: {type(request).__name__}")

    async def _credential_operation(self, request: CredentialOperation) -> dict:
        platform_id = request.platform_id
        match request.operation:
            case "get":
                return {"success": True, "credentials": await self.credentials.get_masked(platform_id)}
            case "store":
                await self.credentials.store(platform_id, request.credentials)
                return {"success": True}
            case "remove":
                await self.credentials.remove(platform_id)
                return {"success": True}
            case "validate":
                result = await self.credentials.validate(platform_id, request.credentials)
                return {"success": True, "validationResult": result}
            case _:
                raise ValidationError(f"Unknown credential operation: {request.operation}")

    # Summarize pipeline

    async def summarize(self, request: SummarizeContent) -> dict:
        try:
            return await self._summarize(request)
        except PageRelayError as e:
            await self.notify(
                {"type": "error", "message": str(e), "tabId": request.tab_id, "providerId": request.platform_id}
            )
            raise

    async def _summarize(self, request: SummarizeContent) -> dict:
        descriptor = get_platform(request.platform_id)
        if not is_injectable_page(request.url):
            raise ValidationError(f"Content cannot be extracted from {request.url}")
        content_type = detect_content_type(request.url)
        tab_id = request.tab_id

        await self.state.ensure_session(tab_id)
        content = await self._extract(tab_id)
        if content.get("error"):
            logger.warning(f"Tab {tab_id}: delivering partial content ({content.get('message')})")

        prompt_text = await self.prompts.resolve(content_type, request.prompt_id, request.test_prompt)
        text = build_prompt(content, prompt_text)

        if await self._use_api(request.platform_id, request.use_api):
            logger.info(f"Tab {tab_id}: delivering {content_type} content to {descriptor.id} via API")
            return await self._deliver_api(request, content_type, text)
        logger.info(f"Tab {tab_id}: delivering {content_type} content to {descriptor.id} via automation")
        return await self._deliver_automation(request, content_type, text)

    async def _extract(self, tab_id: int) -> dict:
        """Ask the tab's agent to extract, then wait for its ready flag."""
        content_key = keys.extracted_content_key(tab_id)
        ready_key = keys.content_ready_key(tab_id)
        await self.storage.local.remove([content_key, ready_key])
        await self.channel.send(tab_id, {"action": "extractContent"})

        async def content_ready():
            return await self.storage.local.get_value(ready_key, False)

        result = await await_condition(
            content_ready,
            max_attempts=self.extraction_attempts,
            interval=self.extraction_interval,
        )
        if not result.satisfied:
            raise ExtractionError(f"Content extraction for tab {tab_id} timed out")
        content = await self.storage.local.get_value(content_key)
        if not content:
            raise ExtractionError(f"No extracted content found for tab {tab_id}")
        return content

    async def _clear_content(self, tab_id: int) -> None:
        await self.storage.local.remove([keys.extracted_content_key(tab_id), keys.content_ready_key(tab_id)])

    async def _use_api(self, platform_id: str, use_api: bool | None) -> bool:
        has_credentials = await self.credentials.has(platform_id)
        if use_api is None:
            preferences = await self.storage.sync.get_value(keys.API_MODE_PREFERENCE, {}) or {}
            use_api = bool(preferences.get(platform_id, has_credentials))
        if use_api and not has_credentials:
            logger.warning(f"API mode requested for {platform_id} without credentials; using automation")
        return use_api and has_credentials

    async def _deliver_api(self, request: SummarizeContent, content_type: str, text: str) -> dict:
        credentials = await self.credentials.get(request.platform_id)
        model = request.model or credentials.get("model") or get_platform(request.platform_id).default_model
        session = await self.state.bind_platform(request.tab_id, request.platform_id, model)
        try:
            response = await self.api.process(request.platform_id, text, model=model, credentials=credentials)
        except ApiError as e:
            return await self._api_failure(request.tab_id, request.platform_id, e)

        await self.state.record_exchange(
            session.id,
            text,
            response.content,
            model=response.model,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
        )
        await self._clear_content(request.tab_id)
        return {
            "success": True,
            "mode": "api",
            "contentType": content_type,
            "sessionId": session.id,
            "response": response.to_dict(),
        }

    async def _deliver_automation(self, request: SummarizeContent, content_type: str, text: str) -> dict:
        descriptor = get_platform(request.platform_id)
        if self.tab_host is None:
            return await self._automation_failure(
                request,
                AutomationError(
                    f"No API key is configured for {descriptor.display_name} and browser automation "
                    "is unavailable. Add an API key in settings.",
                    platform_id=descriptor.id,
                ),
            )
        try:
            provider_tab_id, driver = await self.tab_host.open_tab(descriptor.url)
        except Exception as e:
            logger.error(f"Could not open {descriptor.url}: {e}")
            return await self._automation_failure(
                request,
                AutomationError(f"Could not open {descriptor.display_name}: {e}", platform_id=descriptor.id),
            )
        adapter = create_automation_adapter(descriptor.id, driver, **self.automation_options)
        outcome = await adapter.deliver(text)

        if not outcome.succeeded:
            message = outcome.message or f"{descriptor.display_name} automation failed"
            if outcome.reason == "interface-not-found" and not await self.credentials.has(descriptor.id):
                message = (
                    f"Could not find the {descriptor.display_name} chat input after "
                    f"{outcome.attempts} attempts and no API key is configured. "
                    f"Make sure you are logged in to {descriptor.display_name}, "
                    "or add an API key in settings to use API mode."
                )
            return await self._report_automation(request, message, outcome.to_error())

        session = await self.state.bind_platform(request.tab_id, descriptor.id, None)
        await self.state.record_exchange(session.id, text, None)
        await self._clear_content(request.tab_id)
        return {
            "success": True,
            "mode": "automation",
            "contentType": content_type,
            "sessionId": session.id,
            "providerTabId": provider_tab_id,
        }

    async def _automation_failure(self, request: SummarizeContent, error: AutomationError) -> dict:
        return await self._report_automation(
            request, str(error), {"reason": error.reason, "providerId": error.platform_id}
        )

    async def _report_automation(self, request: SummarizeContent, message: str, error: dict) -> dict:
        await self.notify({"type": "automationError", **error, "message": message, "tabId": request.tab_id})
        return {"success": False, "error": message, **error}

    async def _api_failure(self, tab_id: int, platform_id: str, error: ApiError) -> dict:
        await self.notify(
            {"type": "apiError", "message": str(error), "kind": error.kind, "providerId": platform_id, "tabId": tab_id}
        )
        return {"success": False, "error": str(error), "errorKind": error.kind, "providerId": platform_id}

    # Side-panel chat

    async def send_chat_message(self, request: SendChatMessage) -> dict:
        """One chat turn in the tab's session, sent by API with the prior turns.

        The first turn of an empty session carries the page content unless
        extraction is turned off for the tab. With ``stream`` set, chunks go
        out as ``streamChunk`` notifications and the full reply is returned
        when the stream ends or is cancelled.
        """
        tab_id = request.tab_id
        platform_id = request.platform_id
        if platform_id is None:
            active = await self.state.get_active_session(tab_id)
            platform_id = active.platform_id if active is not None else None
        if platform_id is None:
            raise ValidationError("Choose a provider before sending a message")
        descriptor = get_platform(platform_id)
        credentials = await self.credentials.get(platform_id)
        if not credentials:
            raise ValidationError(f"Chat needs an API key for {descriptor.display_name}; add one in settings")
        model = request.model or credentials.get("model") or descriptor.default_model

        session = await self.state.bind_platform(tab_id, platform_id, model)
        history = session.history()
        prompt = request.message
        if (
            not history
            and request.url
            and is_injectable_page(request.url)
            and await self.state.get_extraction_preference(tab_id)
        ):
            content = await self._extract(tab_id)
            prompt = build_prompt(content, request.message)
            await self._clear_content(tab_id)
        logger.info(f"Tab {tab_id}: chat turn to {platform_id}/{model} with {len(history)} prior message(s)")

        if request.stream:
            return await self._stream_chat(request, session.id, platform_id, model, credentials, prompt, history)
        try:
            response = await self.api.process(
                platform_id, prompt, model=model, credentials=credentials, history=history
            )
        except ApiError as e:
            return await self._api_failure(tab_id, platform_id, e)
        await self.state.record_exchange(
            session.id,
            prompt,
            response.content,
            model=response.model,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
        )
        return {"success": True, "sessionId": session.id, "response": response.to_dict()}

    async def _stream_chat(self, request, session_id, platform_id, model, credentials, prompt, history) -> dict:
        stream_id = request.stream_id or f"stream_{uuid.uuid4().hex}"
        chunks: list[str] = []

        async def consume():
            async for chunk in self.api.stream(
                platform_id, prompt, model=model, credentials=credentials, history=history
            ):
                chunks.append(chunk)
                await self.notify(
                    {"type": "streamChunk", "streamId": stream_id, "tabId": request.tab_id, "chunk": chunk,
                     "done": False}
                )

        task = asyncio.create_task(consume())
        self._streams[stream_id] = task
        try:
            await asyncio.wait([task])
        finally:
            self._streams.pop(stream_id, None)

        cancelled = task.cancelled()
        content = "".join(chunks)
        error = None if cancelled else task.exception()
        if error is not None and not isinstance(error, ApiError):
            raise error
        await self.notify(
            {"type": "streamChunk", "streamId": stream_id, "tabId": request.tab_id, "chunk": "", "done": True,
             "fullContent": content, "model": model, "cancelled": cancelled}
        )
        if content:
            await self.state.record_exchange(session_id, prompt, content, model=model)
        if error is not None:
            return await self._api_failure(request.tab_id, platform_id, error)
        if cancelled:
            logger.info(f"Stream {stream_id} cancelled after {len(content)} chars")
        return {
            "success": True,
            "streamId": stream_id,
            "sessionId": session_id,
            "cancelled": cancelled,
            "response": ApiResponse(content=content, model=model).to_dict(),
        }

    def cancel_stream(self, stream_id: str) -> bool:
        """Stop a running stream; the text received so far is kept."""
        task = self._streams.get(stream_id)
        if task is None or task.done():
            return False
        task.cancel()
        logger.info(f"Cancelling stream {stream_id}")
        return True
