"""Tests for the API coordinator retry policy."""

import asyncio

import httpx
import pytest

from fakes import FakeApiAdapter
from page_relay.api import ApiCoordinator, create_api_adapter
from page_relay.credentials import CredentialManager
from page_relay.exceptions import ApiError, ValidationError
from page_relay.storage import MemoryStore
from page_relay.storage import keys


def _credentials(**entries):
    return CredentialManager(MemoryStore({keys.API_CREDENTIALS: entries}))


def _coordinator(handler, max_retries=3, credentials=None):
    transport = httpx.MockTransport(handler)
    return ApiCoordinator(
        credentials or _credentials(chatgpt={"apiKey": "sk-123456789", "model": "gpt-4o"}),
        max_retries=max_retries,
        retry_delay=0,
        adapter_factory=lambda platform_id: create_api_adapter(platform_id, transport=transport),
    )


def _ok(request):
    return httpx.Response(200, json={"choices": [{"message": {"content": "done"}}]})


def test_server_errors_are_retried():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(500, json={"error": {"message": "overloaded"}})
        return _ok(request)

    response = asyncio.run(_coordinator(handler).process("chatgpt", "prompt"))

    assert response.content == "done"
    assert response.model == "gpt-4o"
    assert len(calls) == 3


def test_network_errors_exhaust_bound():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ReadTimeout("timed out")

    with pytest.raises(ApiError) as exc_info:
        asyncio.run(_coordinator(handler, max_retries=4).process("chatgpt", "prompt"))

    assert exc_info.value.kind == "network"
    assert len(calls) == 4


@pytest.mark.parametrize("status,kind", [(401, "auth"), (429, "rate_limit"), (400, "request")])
def test_terminal_errors_are_not_retried(status, kind):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(status, json={"error": {"message": "stop"}})

    with pytest.raises(ApiError) as exc_info:
        asyncio.run(_coordinator(handler).process("chatgpt", "prompt"))

    assert exc_info.value.kind == kind
    assert len(calls) == 1


def test_missing_credentials_fail_before_any_call():
    calls = []

    def handler(request):
        calls.append(request)
        return _ok(request)

    with pytest.raises(ValidationError, match="No API key"):
        asyncio.run(_coordinator(handler, credentials=_credentials()).process("chatgpt", "prompt"))
    assert calls == []


def test_explicit_model_and_credentials_win():
    adapter = FakeApiAdapter()
    coordinator = ApiCoordinator(_credentials(), retry_delay=0, adapter_factory=lambda pid: adapter)

    asyncio.run(coordinator.process("chatgpt", "p", model="o4-mini", credentials={"apiKey": "sk-direct"}))

    assert adapter.calls == [("sk-direct", "o4-mini", "p")]


def test_default_model_used_when_none_stored():
    adapter = FakeApiAdapter("mistral")
    coordinator = ApiCoordinator(
        _credentials(mistral={"apiKey": "m-key-123456"}), retry_delay=0, adapter_factory=lambda pid: adapter
    )
    asyncio.run(coordinator.process("mistral", "p"))
    assert adapter.calls[0][1] == "mistral-small-latest"


def test_check_availability_without_credentials_skips_validation():
    adapter = FakeApiAdapter()
    credentials = CredentialManager(MemoryStore(), adapter_factory=lambda pid: adapter)
    coordinator = ApiCoordinator(credentials, adapter_factory=lambda pid: adapter)

    assert asyncio.run(coordinator.check_availability("chatgpt")) is False
    assert adapter.validations == 0


def test_check_availability_validates_stored_key():
    adapter = FakeApiAdapter(valid=False)
    credentials = CredentialManager(
        MemoryStore({keys.API_CREDENTIALS: {"chatgpt": {"apiKey": "sk-abcdefghij"}}}),
        adapter_factory=lambda pid: adapter,
    )
    coordinator = ApiCoordinator(credentials, adapter_factory=lambda pid: adapter)

    assert asyncio.run(coordinator.check_availability("chatgpt")) is False
    assert adapter.validations == 1


def test_list_models_from_catalog():
    coordinator = ApiCoordinator(_credentials())
    assert coordinator.list_models("gemini") == ["gemini-2.5-flash", "gemini-2.5-pro", "gemini-2.0-flash"]


def test_history_reaches_adapter():
    adapter = FakeApiAdapter()
    coordinator = ApiCoordinator(
        _credentials(chatgpt={"apiKey": "sk-123456789"}), retry_delay=0, adapter_factory=lambda pid: adapter
    )
    history = [{"role": "user", "content": "first"}, {"role": "assistant", "content": "reply"}]

    asyncio.run(coordinator.process("chatgpt", "second", history=history))

    assert adapter.histories == [history]


async def _drain(chunks):
    return [chunk async for chunk in chunks]


def test_stream_retries_before_first_chunk():
    adapter = FakeApiAdapter(errors=[ApiError("overloaded", kind="server")])
    coordinator = ApiCoordinator(
        _credentials(chatgpt={"apiKey": "sk-123456789"}), retry_delay=0, adapter_factory=lambda pid: adapter
    )

    chunks = asyncio.run(_drain(coordinator.stream("chatgpt", "prompt")))

    assert chunks == ["reply ", "2"]
    assert len(adapter.calls) == 2


def test_stream_terminal_error_not_retried():
    adapter = FakeApiAdapter(errors=[ApiError("bad key", kind="auth")])
    coordinator = ApiCoordinator(
        _credentials(chatgpt={"apiKey": "sk-123456789"}), retry_delay=0, adapter_factory=lambda pid: adapter
    )

    with pytest.raises(ApiError) as exc_info:
        asyncio.run(_drain(coordinator.stream("chatgpt", "prompt")))
    assert exc_info.value.kind == "auth"
    assert len(adapter.calls) == 1


def test_stream_failure_after_output_is_not_retried():
    class BrokenStream(FakeApiAdapter):
        async def stream(self, api_key, model, prompt, history=None):
            self.calls.append((api_key, model, prompt))
            yield "partial"
            raise ApiError("connection reset", kind="network")

    adapter = BrokenStream()
    coordinator = ApiCoordinator(
        _credentials(chatgpt={"apiKey": "sk-123456789"}), retry_delay=0, adapter_factory=lambda pid: adapter
    )
    received = []

    async def consume():
        async for chunk in coordinator.stream("chatgpt", "prompt"):
            received.append(chunk)

    with pytest.raises(ApiError, match="connection reset"):
        asyncio.run(consume())
    assert received == ["partial"]
    assert len(adapter.calls) == 1
