"""Typed request envelopes accepted by the message router."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from page_relay.exceptions import ValidationError

CREDENTIAL_OPERATIONS = ("get", "store", "remove", "validate")


@dataclass(frozen=True)
class Ping:
    pass


@dataclass(frozen=True)
class ExtractContent:
    tab_id: int


@dataclass(frozen=True)
class SummarizeContent:
    platform_id: str
    tab_id: int
    url: str
    prompt_id: str | None = None
    test_prompt: str | None = None
    use_api: bool | None = None
    model: str | None = None


@dataclass(frozen=True)
class CredentialOperation:
    operation: str
    platform_id: str
    credentials: dict | None = None


@dataclass(frozen=True)
class CheckApiModeAvailable:
    platform_id: str


@dataclass(frozen=True)
class GetApiModels:
    platform_id: str


@dataclass(frozen=True)
class ResolveSidePanelState:
    tab_id: int
    current_url: str | None


@dataclass(frozen=True)
class GetContentType:
    url: str


@dataclass(frozen=True)
class NotifyError:
    error: str
    tab_id: int | None = None


@dataclass(frozen=True)
class SidePanelDisconnected:
    tab_id: int


@dataclass(frozen=True)
class SwitchChatSession:
    tab_id: int
    session_id: str


@dataclass(frozen=True)
class DeleteChatSession:
    session_id: str


@dataclass(frozen=True)
class ClearTabData:
    tab_id: int


@dataclass(frozen=True)
class TabRemoved:
    tab_id: int


@dataclass(frozen=True)
class SendChatMessage:
    """A chat turn typed into the side panel.

    ``platform_id`` falls back to the platform of the tab's active session.
    """

    tab_id: int
    message: str
    platform_id: str | None = None
    model: str | None = None
    url: str | None = None
    stream: bool = False
    stream_id: str | None = None


@dataclass(frozen=True)
class CancelStream:
    stream_id: str


@dataclass(frozen=True)
class GetExtractionPreference:
    tab_id: int


@dataclass(frozen=True)
class SetExtractionPreference:
    tab_id: int
    is_enabled: bool


@dataclass(frozen=True)
class SetTabView:
    tab_id: int
    view: str


Request = (
    Ping
    | ExtractContent
    | SummarizeContent
    | CredentialOperation
    | CheckApiModeAvailable
    | GetApiModels
    | ResolveSidePanelState
    | GetContentType
    | NotifyError
    | SidePanelDisconnected
    | SwitchChatSession
    | DeleteChatSession
    | ClearTabData
    | TabRemoved
    | SendChatMessage
    | CancelStream
    | GetExtractionPreference
    | SetExtractionPreference
    | SetTabView
)


def _str(envelope: dict, key: str, required: bool = True) -> str | None:
    value = envelope.get(key)
    if value is None or value == "":
        if required:
            raise ValidationError(f"{envelope.get('action')}: missing {key}")
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{envelope.get('action')}: {key} must be a string")
    return value


def _tab_id(envelope: dict, sender_tab_id: int | None, required: bool = True) -> int | None:
    value = envelope.get("tabId", sender_tab_id)
    if value is None:
        if required:
            raise ValidationError(f"{envelope.get('action')}: missing tabId")
        return None
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValidationError(f"{envelope.get('action')}: tabId must be an integer")
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"{envelope.get('action')}: tabId must be an integer")


def _bool(envelope: dict, key: str, required: bool = True) -> bool | None:
    value = envelope.get(key)
    if value is None:
        if required:
            raise ValidationError(f"{envelope.get('action')}: missing {key}")
        return None
    if not isinstance(value, bool):
        raise ValidationError(f"{envelope.get('action')}: {key} must be a boolean")
    return value


def _summarize(envelope: dict, sender: int | None) -> SummarizeContent:
    use_api = _bool(envelope, "useApi", required=False)
    return SummarizeContent(
        platform_id=_str(envelope, "platformId"),
        tab_id=_tab_id(envelope, sender),
        url=_str(envelope, "url"),
        prompt_id=_str(envelope, "promptId", required=False),
        test_prompt=_str(envelope, "testPrompt", required=False),
        use_api=use_api,
        model=_str(envelope, "model", required=False),
    )


def _credential_operation(envelope: dict, sender: int | None) -> CredentialOperation:
    operation = _str(envelope, "operation")
    if operation not in CREDENTIAL_OPERATIONS:
        raise ValidationError(f"credentialOperation: unknown operation {operation!r}")
    credentials = envelope.get("credentials")
    if credentials is not None and not isinstance(credentials, dict):
        raise ValidationError("credentialOperation: credentials must be an object")
    return CredentialOperation(
        operation=operation,
        platform_id=_str(envelope, "platformId"),
        credentials=credentials,
    )


def _chat_message(envelope: dict, sender: int | None) -> SendChatMessage:
    return SendChatMessage(
        tab_id=_tab_id(envelope, sender),
        message=_str(envelope, "message"),
        platform_id=_str(envelope, "platformId", required=False),
        model=_str(envelope, "model", required=False),
        url=_str(envelope, "url", required=False),
        stream=bool(_bool(envelope, "stream", required=False)),
        stream_id=_str(envelope, "streamId", required=False),
    )


_PARSERS: dict[str, Callable[[dict, int | None], Any]] = {
    "ping": lambda e, s: Ping(),
    "extractContent": lambda e, s: ExtractContent(tab_id=_tab_id(e, s)),
    "summarizeContent": _summarize,
    "credentialOperation": _credential_operation,
    "checkApiModeAvailable": lambda e, s: CheckApiModeAvailable(platform_id=_str(e, "platformId")),
    "getApiModels": lambda e, s: GetApiModels(platform_id=_str(e, "platformId")),
    "resolveSidePanelStateAndFinalize": lambda e, s: ResolveSidePanelState(
        tab_id=_tab_id(e, s), current_url=_str(e, "currentUrl", required=False)
    ),
    "getContentType": lambda e, s: GetContentType(url=_str(e, "url")),
    "notifyError": lambda e, s: NotifyError(
        error=str(e.get("error") or "Unknown error"), tab_id=_tab_id(e, s, required=False)
    ),
    "sidePanelDisconnected": lambda e, s: SidePanelDisconnected(tab_id=_tab_id(e, s)),
    "switchChatSession": lambda e, s: SwitchChatSession(tab_id=_tab_id(e, s), session_id=_str(e, "sessionId")),
    "deleteChatSession": lambda e, s: DeleteChatSession(session_id=_str(e, "sessionId")),
    "clearTabData": lambda e, s: ClearTabData(tab_id=_tab_id(e, s)),
    "tabRemoved": lambda e, s: TabRemoved(tab_id=_tab_id(e, s)),
    "sendChatMessage": _chat_message,
    "cancelStream": lambda e, s: CancelStream(stream_id=_str(e, "streamId")),
    "getExtractionPreference": lambda e, s: GetExtractionPreference(tab_id=_tab_id(e, s)),
    "setExtractionPreference": lambda e, s: SetExtractionPreference(
        tab_id=_tab_id(e, s), is_enabled=_bool(e, "isEnabled")
    ),
    "setTabView": lambda e, s: SetTabView(tab_id=_tab_id(e, s), view=_str(e, "view")),
}

ACTIONS = tuple(_PARSERS)


def parse_request(envelope: Any, sender_tab_id: int | None = None) -> Request:
    """Turn a raw ``{action, ...payload}`` envelope into its request type.

    ``tabId`` falls back to the sending tab when the envelope omits it.

    Raises:
        ValidationError: Not an object, unknown action, or bad payload.
    """
    if not isinstance(envelope, dict):
        raise ValidationError("Message must be an object with an action")
    action = envelope.get("action")
    parser = _PARSERS.get(action)
    if parser is None:
        raise ValidationError(f"Unknown action: {action}")
    return parser(envelope, sender_tab_id)
