"""Tests for the message router and the summarize pipeline."""

import asyncio

from fakes import FakeApiAdapter, FakePageDriver, FakeTabHost, ready_provider_page
from page_relay.agent import TabAgent
from page_relay.api import ApiCoordinator
from page_relay.background import MessageRouter, TabChannel
from page_relay.credentials import CredentialManager
from page_relay.exceptions import ApiError
from page_relay.storage import MemoryStore, StorageAreas
from page_relay.storage import keys

ARTICLE_URL = "https://example.com/article"


def _article(word):
    paragraphs = "".join(f"<p>{word} paragraph {i} with enough words to count as content.</p>" for i in range(8))
    return f"<html><head><title>{word} page</title></head><body><article>{paragraphs}</article></body></html>"


def _setup(pages=None, credentials=None, adapter=None, tab_host=None, **router_options):
    storage = StorageAreas(local=MemoryStore(), sync=MemoryStore({keys.API_CREDENTIALS: credentials or {}}))
    channel = TabChannel()
    for tab_id, driver in (pages or {}).items():
        channel.register(TabAgent(tab_id, driver, storage))
    adapter = adapter or FakeApiAdapter()
    manager = CredentialManager(storage.sync, adapter_factory=lambda platform_id: adapter)
    router = MessageRouter(
        storage,
        channel,
        tab_host=tab_host,
        credentials=manager,
        api=ApiCoordinator(manager, retry_delay=0, adapter_factory=lambda platform_id: adapter),
        extraction_interval=0.01,
        automation_options={"settle_delay": 0, "max_attempts": 3, "poll_interval": 0},
        **router_options,
    )
    return router, storage, adapter


def _summarize(tab_id, platform_id="chatgpt", url=ARTICLE_URL, **extra):
    return {"action": "summarizeContent", "platformId": platform_id, "tabId": tab_id, "url": url, **extra}


def test_ping_and_unknown_action():
    router, _, _ = _setup()
    assert asyncio.run(router.handle({"action": "ping"})) == {"status": "pong", "ready": True}
    response = asyncio.run(router.handle({"action": "doSomething"}))
    assert response == {"success": False, "error": "Unknown action: doSomething"}


def test_api_mode_unavailable_without_credentials():
    router, _, adapter = _setup()
    response = asyncio.run(router.handle({"action": "checkApiModeAvailable", "platformId": "claude"}))
    assert response == {"success": True, "isAvailable": False}
    assert adapter.validations == 0


def test_api_mode_available_with_valid_key():
    router, _, adapter = _setup(credentials={"chatgpt": {"apiKey": "sk-abcdefghijkl"}})
    response = asyncio.run(router.handle({"action": "checkApiModeAvailable", "platformId": "chatgpt"}))
    assert response == {"success": True, "isAvailable": True}
    assert adapter.validations == 1


def test_credential_operations_mask_keys():
    router, storage, _ = _setup()
    store = {
        "action": "credentialOperation",
        "operation": "store",
        "platformId": "chatgpt",
        "credentials": {"apiKey": "sk-abcdefghijkl", "model": "gpt-4o"},
    }
    assert asyncio.run(router.handle(store)) == {"success": True}

    response = asyncio.run(
        router.handle({"action": "credentialOperation", "operation": "get", "platformId": "chatgpt"})
    )
    assert response == {"success": True, "credentials": {"apiKey": "sk-a...ijkl", "model": "gpt-4o"}}

    response = asyncio.run(
        router.handle({"action": "credentialOperation", "operation": "validate", "platformId": "chatgpt"})
    )
    assert response["validationResult"]["isValid"] is True

    asyncio.run(router.handle({"action": "credentialOperation", "operation": "remove", "platformId": "chatgpt"}))
    assert asyncio.run(storage.sync.get_value(keys.API_CREDENTIALS)) == {}


def test_storing_empty_key_fails():
    router, _, _ = _setup()
    response = asyncio.run(
        router.handle(
            {"action": "credentialOperation", "operation": "store", "platformId": "chatgpt",
             "credentials": {"apiKey": "  "}}
        )
    )
    assert response["success"] is False
    assert "API key is required" in response["error"]


def test_get_api_models():
    router, _, _ = _setup()
    response = asyncio.run(router.handle({"action": "getApiModels", "platformId": "gemini"}))
    assert response["success"] is True
    assert response["defaultModel"] == "gemini-2.5-flash"
    assert "gemini-2.5-pro" in response["models"]


def test_get_content_type():
    router, _, _ = _setup()
    response = asyncio.run(
        router.handle({"action": "getContentType", "url": "https://www.youtube.com/watch?v=abc"})
    )
    assert response == {"success": True, "contentType": "youtube", "isInjectable": True}


def test_summarize_via_api():
    driver = FakePageDriver(url=ARTICLE_URL, html=_article("alpha"))
    router, storage, adapter = _setup(
        pages={1: driver}, credentials={"chatgpt": {"apiKey": "sk-abcdefghijkl", "model": "gpt-4o"}}
    )

    response = asyncio.run(router.handle(_summarize(1)))

    assert response["success"] is True
    assert response["mode"] == "api"
    assert response["contentType"] == "general"
    assert response["response"] == {
        "content": "reply 1",
        "model": "gpt-4o",
        "usage": {"inputTokens": 10, "outputTokens": 5},
    }
    api_key, model, prompt = adapter.calls[0]
    assert (api_key, model) == ("sk-abcdefghijkl", "gpt-4o")
    assert prompt.startswith("# INSTRUCTION\nSummarize the following web page.")
    assert "alpha paragraph 0" in prompt

    session = asyncio.run(router.state.get_session(response["sessionId"]))
    assert session.is_provisional is False
    assert session.platform_id == "chatgpt"
    assert asyncio.run(storage.local.get_value(keys.content_ready_key(1))) is None


def test_test_prompt_is_used_verbatim():
    driver = FakePageDriver(url=ARTICLE_URL, html=_article("alpha"))
    router, _, adapter = _setup(pages={1: driver}, credentials={"chatgpt": {"apiKey": "sk-abcdefghijkl"}})
    asyncio.run(router.handle(_summarize(1, testPrompt="Only list the headings.")))
    assert adapter.calls[0][2].startswith("# INSTRUCTION\nOnly list the headings.\n# CONTENT\n")


def test_concurrent_tabs_do_not_share_content():
    pages = {
        1: FakePageDriver(url=ARTICLE_URL, html=_article("alpha"), snapshot_delay=0.05),
        2: FakePageDriver(url="https://example.org/other", html=_article("bravo"), snapshot_delay=0.01),
    }
    router, _, adapter = _setup(pages=pages, credentials={"chatgpt": {"apiKey": "sk-abcdefghijkl"}})

    async def run():
        return await asyncio.gather(
            router.handle(_summarize(1)),
            router.handle(_summarize(2, url="https://example.org/other")),
        )

    first, second = asyncio.run(run())

    assert first["success"] is True and second["success"] is True
    assert first["sessionId"] != second["sessionId"]
    prompts = [call[2] for call in adapter.calls]
    alpha = [p for p in prompts if "alpha" in p]
    bravo = [p for p in prompts if "bravo" in p]
    assert len(alpha) == 1 and len(bravo) == 1
    assert "bravo" not in alpha[0]
    assert "alpha" not in bravo[0]
    assert asyncio.run(router.state.get_active_session(1)).id == first["sessionId"]
    assert asyncio.run(router.state.get_active_session(2)).id == second["sessionId"]


def test_api_error_is_reported_with_kind():
    driver = FakePageDriver(url=ARTICLE_URL, html=_article("alpha"))
    adapter = FakeApiAdapter(errors=[ApiError("Invalid API key", kind="auth")])
    router, _, _ = _setup(pages={1: driver}, credentials={"chatgpt": {"apiKey": "sk-abcdefghijkl"}}, adapter=adapter)
    events = []
    router.add_listener(events.append)

    response = asyncio.run(router.handle(_summarize(1)))

    assert response == {
        "success": False,
        "error": "Invalid API key",
        "errorKind": "auth",
        "providerId": "chatgpt",
    }
    assert len(adapter.calls) == 1
    assert events[0]["type"] == "apiError"


def test_summarize_via_automation():
    driver = FakePageDriver(url=ARTICLE_URL, html=_article("alpha"))
    host = FakeTabHost(lambda url: ready_provider_page("claude"))
    router, _, adapter = _setup(pages={1: driver}, tab_host=host)

    response = asyncio.run(router.handle(_summarize(1, platform_id="claude")))

    assert response["success"] is True
    assert response["mode"] == "automation"
    assert response["providerTabId"] == 1001
    assert adapter.calls == []
    _, url, provider_page = host.opened[0]
    assert url == "https://claude.ai/new"
    assert "alpha paragraph 0" in provider_page.inputs[0][1]
    assert len(provider_page.clicks) == 1


def test_explicit_api_request_without_key_uses_automation():
    driver = FakePageDriver(url=ARTICLE_URL, html=_article("alpha"))
    host = FakeTabHost(lambda url: ready_provider_page("chatgpt"))
    router, _, _ = _setup(pages={1: driver}, tab_host=host)
    response = asyncio.run(router.handle(_summarize(1, useApi=True)))
    assert response["mode"] == "automation"


def test_interface_not_found_without_key_gives_actionable_message():
    driver = FakePageDriver(url=ARTICLE_URL, html=_article("alpha"))
    host = FakeTabHost(lambda url: FakePageDriver(url=url))
    router, _, _ = _setup(pages={1: driver}, tab_host=host)
    events = []

    async def listener(event):
        events.append(event)

    router.add_listener(listener)

    response = asyncio.run(router.handle(_summarize(1, platform_id="deepseek")))

    assert response["success"] is False
    assert response["reason"] == "interface-not-found"
    assert response["providerId"] == "deepseek"
    assert "after 3 attempts and no API key is configured" in response["error"]
    assert "add an API key in settings" in response["error"]
    assert host.opened[0][2].mutation_waits == 2
    assert events[0]["type"] == "automationError"
    assert events[0]["reason"] == "interface-not-found"


def test_automation_without_tab_host_fails():
    driver = FakePageDriver(url=ARTICLE_URL, html=_article("alpha"))
    router, _, _ = _setup(pages={1: driver})
    events = []
    router.add_listener(events.append)

    response = asyncio.run(router.handle(_summarize(1)))

    assert response["success"] is False
    assert "browser automation is unavailable" in response["error"]
    assert events[0]["providerId"] == "chatgpt"


def test_restricted_page_is_rejected():
    router, _, _ = _setup()
    response = asyncio.run(router.handle(_summarize(1, url="chrome://extensions")))
    assert response["success"] is False
    assert "cannot be extracted" in response["error"]


def test_extraction_timeout():
    class SilentAgent:
        tab_id = 4

        async def handle_message(self, message):
            return {"status": "success"}

    router, _, _ = _setup(credentials={"chatgpt": {"apiKey": "sk-abcdefghijkl"}}, extraction_attempts=3)
    router.channel.register(SilentAgent())

    response = asyncio.run(router.handle(_summarize(4)))

    assert response == {"success": False, "error": "Content extraction for tab 4 timed out"}


def test_missing_tab_agent():
    router, _, _ = _setup(credentials={"chatgpt": {"apiKey": "sk-abcdefghijkl"}})
    response = asyncio.run(router.handle(_summarize(8)))
    assert response == {"success": False, "error": "No agent is listening in tab 8"}


def test_side_panel_lifecycle():
    router, _, _ = _setup()
    resolved = asyncio.run(
        router.handle({"action": "resolveSidePanelStateAndFinalize", "tabId": 6, "currentUrl": ARTICLE_URL})
    )
    assert resolved["status"] == "created"

    again = asyncio.run(
        router.handle({"action": "resolveSidePanelStateAndFinalize", "tabId": 6, "currentUrl": ARTICLE_URL})
    )
    assert again == {"status": "reused", "sessionId": resolved["sessionId"]}

    assert asyncio.run(router.handle({"action": "sidePanelDisconnected", "tabId": 6})) == {"success": True}
    assert asyncio.run(router.state.get_tab_state(6)).side_panel_visible is False

    deleted = asyncio.run(router.handle({"action": "deleteChatSession", "sessionId": resolved["sessionId"]}))
    assert deleted == {"success": True, "deleted": True}


def test_tab_removed_unregisters_agent():
    driver = FakePageDriver(url=ARTICLE_URL, html=_article("alpha"))
    router, _, _ = _setup(pages={1: driver})
    asyncio.run(router.handle({"action": "resolveSidePanelStateAndFinalize", "tabId": 1, "currentUrl": ARTICLE_URL}))

    assert asyncio.run(router.handle({"action": "tabRemoved", "tabId": 1})) == {"success": True}

    assert router.channel.get(1) is None
    assert asyncio.run(router.state.list_sessions(1)) == []


def test_failing_listener_does_not_break_notify():
    router, _, _ = _setup()
    seen = []

    def broken(event):
        raise RuntimeError("listener down")

    router.add_listener(broken)
    router.add_listener(seen.append)

    response = asyncio.run(router.handle({"action": "notifyError", "error": "boom", "tabId": 2}))

    assert response == {"success": True}
    assert seen == [{"type": "error", "message": "boom", "tabId": 2}]


def test_unexpected_errors_become_responses():
    router, _, _ = _setup()

    async def explode(request):
        raise RuntimeError("kaboom")

    router._dispatch = explode
    response = asyncio.run(router.handle({"action": "ping"}))
    assert response == {"success": False, "error": "Internal error: kaboom"}


def test_repeated_summaries_share_one_session():
    driver = FakePageDriver(url=ARTICLE_URL, html=_article("alpha"))
    adapter = FakeApiAdapter(model_suffix="-2024-07-18")
    router, _, _ = _setup(
        pages={1: driver}, credentials={"chatgpt": {"apiKey": "sk-abcdefghijkl", "model": "gpt-4o-mini"}},
        adapter=adapter,
    )

    first = asyncio.run(router.handle(_summarize(1)))
    second = asyncio.run(router.handle(_summarize(1)))

    assert first["response"]["model"] == "gpt-4o-mini-2024-07-18"
    assert first["sessionId"] == second["sessionId"]
    session = asyncio.run(router.state.get_session(first["sessionId"]))
    assert session.model_id == "gpt-4o-mini"
    assert len(session.messages) == 4
    assert asyncio.run(router.state.get_token_stats(session.id))["totalTokens"] == 30


class NavigatingPage(FakePageDriver):
    async def wait_for_mutation(self, timeout: float) -> bool:
        raise RuntimeError("Execution context was destroyed, most likely because of a navigation")


def test_page_error_during_automation_is_reported():
    driver = FakePageDriver(url=ARTICLE_URL, html=_article("alpha"))
    host = FakeTabHost(lambda url: NavigatingPage(url=url))
    router, _, _ = _setup(pages={1: driver}, tab_host=host)
    events = []
    router.add_listener(events.append)

    response = asyncio.run(router.handle(_summarize(1, platform_id="deepseek")))

    assert response["success"] is False
    assert response["reason"] == "interface-not-found"
    assert response["providerId"] == "deepseek"
    assert [(e["type"], e["reason"], e["providerId"]) for e in events] == [
        ("automationError", "interface-not-found", "deepseek")
    ]


def test_tab_host_failure_is_reported():
    class ClosedBrowser(FakeTabHost):
        async def open_tab(self, url):
            raise RuntimeError("Browser has been closed")

    driver = FakePageDriver(url=ARTICLE_URL, html=_article("alpha"))
    router, _, _ = _setup(pages={1: driver}, tab_host=ClosedBrowser(FakePageDriver))
    events = []
    router.add_listener(events.append)

    response = asyncio.run(router.handle(_summarize(1, platform_id="grok")))

    assert response == {
        "success": False,
        "error": "Could not open Grok: Browser has been closed",
        "reason": "automation-failed",
        "providerId": "grok",
    }
    assert events[0]["type"] == "automationError"
    assert events[0]["tabId"] == 1


def _chat(tab_id, message, **extra):
    return {"action": "sendChatMessage", "tabId": tab_id, "message": message, **extra}


def test_follow_up_sends_prior_turns():
    driver = FakePageDriver(url=ARTICLE_URL, html=_article("alpha"))
    router, _, adapter = _setup(
        pages={1: driver}, credentials={"chatgpt": {"apiKey": "sk-abcdefghijkl", "model": "gpt-4o"}}
    )
    summary = asyncio.run(router.handle(_summarize(1)))

    response = asyncio.run(router.handle(_chat(1, "And the conclusion?", url=ARTICLE_URL)))

    assert response["success"] is True
    assert response["sessionId"] == summary["sessionId"]
    assert response["response"]["content"] == "reply 2"
    assert adapter.calls[1] == ("sk-abcdefghijkl", "gpt-4o", "And the conclusion?")
    first_prompt = adapter.calls[0][2]
    assert adapter.histories[1] == [
        {"role": "user", "content": first_prompt},
        {"role": "assistant", "content": "reply 1"},
    ]
    session = asyncio.run(router.state.get_session(summary["sessionId"]))
    assert [m.content for m in session.messages][-2:] == ["And the conclusion?", "reply 2"]


def test_first_chat_turn_uses_extraction_preference():
    pages = {
        1: FakePageDriver(url=ARTICLE_URL, html=_article("alpha")),
        2: FakePageDriver(url=ARTICLE_URL, html=_article("bravo")),
    }
    router, _, adapter = _setup(pages=pages, credentials={"chatgpt": {"apiKey": "sk-abcdefghijkl"}})

    off = asyncio.run(router.handle({"action": "setExtractionPreference", "tabId": 2, "isEnabled": False}))
    assert off == {"success": True}
    assert asyncio.run(router.handle({"action": "getExtractionPreference", "tabId": 2})) == {
        "success": True,
        "isEnabled": False,
    }

    asyncio.run(router.handle(_chat(1, "What is this about?", platformId="chatgpt", url=ARTICLE_URL)))
    asyncio.run(router.handle(_chat(2, "What is this about?", platformId="chatgpt", url=ARTICLE_URL)))

    with_page, without_page = (call[2] for call in adapter.calls)
    assert with_page.startswith("# INSTRUCTION\nWhat is this about?\n# CONTENT\n")
    assert "alpha paragraph 0" in with_page
    assert without_page == "What is this about?"
    assert adapter.histories == [[], []]


def test_chat_needs_provider_and_key():
    router, _, adapter = _setup()

    no_provider = asyncio.run(router.handle(_chat(1, "hello")))
    assert no_provider == {"success": False, "error": "Choose a provider before sending a message"}

    no_key = asyncio.run(router.handle(_chat(1, "hello", platformId="mistral")))
    assert no_key["success"] is False
    assert "needs an API key for Mistral" in no_key["error"]
    assert adapter.calls == []


def test_streamed_chat_notifies_chunks():
    router, _, _ = _setup(credentials={"chatgpt": {"apiKey": "sk-abcdefghijkl", "model": "gpt-4o"}})
    events = []
    router.add_listener(events.append)

    response = asyncio.run(router.handle(_chat(3, "hi", platformId="chatgpt", stream=True, streamId="s-1")))

    assert response["success"] is True
    assert response["streamId"] == "s-1"
    assert response["cancelled"] is False
    assert response["response"]["content"] == "reply 1"
    chunks = [e for e in events if e["type"] == "streamChunk"]
    assert [(e["chunk"], e["done"]) for e in chunks] == [("reply ", False), ("1", False), ("", True)]
    assert chunks[-1]["fullContent"] == "reply 1"
    assert chunks[-1]["model"] == "gpt-4o"
    session = asyncio.run(router.state.get_session(response["sessionId"]))
    assert session.history() == [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "reply 1"}]


def test_cancelled_stream_keeps_partial_reply():
    router, _, _ = _setup(credentials={"chatgpt": {"apiKey": "sk-abcdefghijkl"}})
    cancels = []

    async def cancel_on_first_chunk(event):
        if event["type"] == "streamChunk" and not event["done"] and not cancels:
            cancels.append(await router.handle({"action": "cancelStream", "streamId": "s-2"}))

    router.add_listener(cancel_on_first_chunk)

    response = asyncio.run(router.handle(_chat(3, "hi", platformId="chatgpt", stream=True, streamId="s-2")))

    assert cancels == [{"success": True, "cancelled": True}]
    assert response["cancelled"] is True
    assert response["response"]["content"] == "reply "
    session = asyncio.run(router.state.get_session(response["sessionId"]))
    assert [m.content for m in session.messages] == ["hi", "reply "]
    assert asyncio.run(router.handle({"action": "cancelStream", "streamId": "s-2"})) == {
        "success": True,
        "cancelled": False,
    }


def test_stream_error_is_reported_with_kind():
    adapter = FakeApiAdapter(errors=[ApiError("Invalid API key", kind="auth")])
    router, _, _ = _setup(credentials={"chatgpt": {"apiKey": "sk-abcdefghijkl"}}, adapter=adapter)
    events = []
    router.add_listener(events.append)

    response = asyncio.run(router.handle(_chat(3, "hi", platformId="chatgpt", stream=True)))

    assert response == {"success": False, "error": "Invalid API key", "errorKind": "auth", "providerId": "chatgpt"}
    assert [e["type"] for e in events] == ["streamChunk", "apiError"]
    assert events[0]["done"] is True


def test_set_tab_view():
    router, _, _ = _setup()
    response = asyncio.run(router.handle({"action": "setTabView", "tabId": 6, "view": "history"}))
    assert response["success"] is True
    assert response["tabState"]["currentView"] == "history"

    bad = asyncio.run(router.handle({"action": "setTabView", "tabId": 6, "view": "settings"}))
    assert bad == {"success": False, "error": "Unknown view: settings"}
