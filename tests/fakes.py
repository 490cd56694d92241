"""In-memory stand-ins for browser pages, tab hosts and provider APIs."""

from __future__ import annotations

import asyncio

from page_relay.api.base import ApiAdapter, ApiResponse
from page_relay.automation.driver import PageDriver
from page_relay.background.tabs import TabHost
from page_relay.config.loader import get_platform


class FakePageDriver(PageDriver):
    """A page whose visible selectors are listed up front.

    ``reveal_after`` maps a selector to the number of DOM mutations after
    which it becomes visible.
    """

    def __init__(
        self,
        url: str = "https://example.com/article",
        html: str = "",
        selection: str = "",
        pdf: bytes | None = None,
        visible=(),
        text: str = "",
        reveal_after: dict | None = None,
        snapshot_delay: float = 0.0,
    ):
        self._url = url
        self.html = html
        self.selection = selection
        self.pdf = pdf
        self.visible = set(visible)
        self.text = text
        self.reveal_after = dict(reveal_after or {})
        self.snapshot_delay = snapshot_delay
        self.find_calls = 0
        self.mutation_waits = 0
        self.inputs: list[tuple[str, str, str]] = []
        self.clicks: list[str] = []

    @property
    def url(self) -> str:
        return self._url

    async def content(self) -> str:
        if self.snapshot_delay:
            await asyncio.sleep(self.snapshot_delay)
        return self.html

    async def selection_text(self) -> str:
        return self.selection

    async def pdf_bytes(self) -> bytes | None:
        return self.pdf

    async def find_first(self, selectors):
        self.find_calls += 1
        for selector in selectors:
            if selector in self.visible:
                return selector
        return None

    async def visible_text(self) -> str:
        return self.text

    async def set_input(self, selector: str, text: str, editor: str) -> None:
        self.inputs.append((selector, text, editor))

    async def click(self, selector: str) -> None:
        self.clicks.append(selector)

    async def wait_for_mutation(self, timeout: float) -> bool:
        self.mutation_waits += 1
        for selector, after in self.reveal_after.items():
            if self.mutation_waits >= after:
                self.visible.add(selector)
        return False


def ready_provider_page(platform_id: str, with_submit: bool = True) -> FakePageDriver:
    selectors = get_platform(platform_id).automation_selectors
    visible = [selectors.input[0]]
    if with_submit:
        visible.append(selectors.submit[0])
    return FakePageDriver(url=get_platform(platform_id).url, visible=visible)


class FakeTabHost(TabHost):
    def __init__(self, driver_factory):
        self.driver_factory = driver_factory
        self.opened: list[tuple[int, str, FakePageDriver]] = []
        self._next_id = 1000

    async def open_tab(self, url: str):
        self._next_id += 1
        driver = self.driver_factory(url)
        self.opened.append((self._next_id, url, driver))
        return self._next_id, driver

    async def close_tab(self, tab_id: int) -> None:
        self.opened = [entry for entry in self.opened if entry[0] != tab_id]


class FakeApiAdapter(ApiAdapter):
    """Records every prompt; fails with the queued errors first.

    Replies are ``reply N`` under ``model + model_suffix``, the way providers
    answer with a dated model name. Streaming yields the reply word by word.
    """

    def __init__(self, platform_id: str = "chatgpt", errors=(), valid: bool = True, model_suffix: str = ""):
        super().__init__(get_platform(platform_id))
        self.errors = list(errors)
        self.valid = valid
        self.model_suffix = model_suffix
        self.calls: list[tuple[str, str, str]] = []
        self.histories: list[list[dict] | None] = []
        self.validations = 0

    async def send(self, api_key: str, model: str, prompt: str, history=None) -> ApiResponse:
        self.calls.append((api_key, model, prompt))
        self.histories.append(history)
        if self.errors:
            raise self.errors.pop(0)
        return ApiResponse(
            content=f"reply {len(self.calls)}", model=model + self.model_suffix, input_tokens=10, output_tokens=5
        )

    async def stream(self, api_key: str, model: str, prompt: str, history=None):
        response = await self.send(api_key, model, prompt, history)
        words = response.content.split(" ")
        for i, word in enumerate(words):
            await asyncio.sleep(0)
            yield word if i == len(words) - 1 else f"{word} "

    async def validate(self, api_key: str) -> bool:
        self.validations += 1
        return self.valid
