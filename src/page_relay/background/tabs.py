"""Messaging to tab agents, and opening provider tabs."""

from __future__ import annotations

import asyncio
import itertools
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING

from page_relay.automation.driver import PageDriver, PlaywrightPageDriver
from page_relay.exceptions import MessageTimeoutError

if TYPE_CHECKING:
    from page_relay.agent.tab_agent import TabAgent

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE_TIMEOUT = 10.0


class TabChannel:
    """Request/response messaging between the background and tab agents.

    Messages to one tab are handled one at a time in arrival order; tabs
    never wait on each other.
    """

    def __init__(self, timeout: float = DEFAULT_MESSAGE_TIMEOUT):
        self.timeout = timeout
        self._agents: dict[int, "TabAgent"] = {}
        self._locks: dict[int, asyncio.Lock] = {}

    def register(self, agent: "TabAgent") -> None:
        self._agents[agent.tab_id] = agent
        self._locks.setdefault(agent.tab_id, asyncio.Lock())

    def unregister(self, tab_id: int) -> None:
        self._agents.pop(tab_id, None)
        self._locks.pop(tab_id, None)

    def get(self, tab_id: int) -> "TabAgent | None":
        return self._agents.get(tab_id)

    @property
    def tab_ids(self) -> list[int]:
        return list(self._agents)

    async def send(self, tab_id: int, message: dict, timeout: float | None = None) -> dict:
        agent = self._agents.get(tab_id)
        if agent is None:
            raise MessageTimeoutError(f"No agent is listening in tab {tab_id}")
        budget = timeout if timeout is not None else self.timeout
        try:
            async with self._locks[tab_id]:
                return await asyncio.wait_for(agent.handle_message(dict(message)), budget)
        except asyncio.TimeoutError:
            raise MessageTimeoutError(
                f"Tab {tab_id} did not answer {message.get('action')!r} within {budget}s"
            )


class TabHost(ABC):
    """Opens browser tabs on demand."""

    @abstractmethod
    async def open_tab(self, url: str) -> tuple[int, PageDriver]:
        """Open ``url`` in a new tab and return its id and driver."""
        ...

    @abstractmethod
    async def close_tab(self, tab_id: int) -> None:
        ...

    async def close(self) -> None:
        return None


class PlaywrightTabHost(TabHost):
    """Tabs in a persistent Chromium profile, so provider log-ins survive restarts.

    Args:
        user_data_dir: Browser profile directory.
        headless: Providers generally block headless browsers; default off.
        timeout_ms: Default Playwright action and navigation timeout.
    """

    def __init__(
        self,
        user_data_dir: str | Path,
        headless: bool = False,
        timeout_ms: int = 30000,
    ):
        self.user_data_dir = Path(user_data_dir).expanduser()
        self.headless = headless
        self.timeout_ms = timeout_ms
        self._playwright = None
        self._context = None
        self._drivers: dict[int, PlaywrightPageDriver] = {}
        self._ids = itertools.count(1)

    async def start(self) -> None:
        if self._context is not None:
            return
        try:
            from playwright.async_api import async_playwright
        except ImportError:
            raise ImportError(
                "playwright is required for PlaywrightTabHost. "
                "Install with: pip install page-relay[automation]"
            )
        self.user_data_dir.mkdir(parents=True, exist_ok=True)
        self._playwright = await async_playwright().start()
        self._context = await self._playwright.chromium.launch_persistent_context(
            str(self.user_data_dir),
            headless=self.headless,
            args=["--disable-dev-shm-usage"],
        )
        self._context.set_default_timeout(float(self.timeout_ms))
        self._context.set_default_navigation_timeout(float(self.timeout_ms))
        logger.info(f"Browser started with profile {self.user_data_dir}")

    async def adopt(self, page) -> tuple[int, PlaywrightPageDriver]:
        """Register an already-open page as a tab."""
        tab_id = next(self._ids)
        driver = PlaywrightPageDriver(page)
        self._drivers[tab_id] = driver
        return tab_id, driver

    async def open_tab(self, url: str) -> tuple[int, PageDriver]:
        await self.start()
        page = await self._context.new_page()
        await page.goto(url, wait_until="domcontentloaded")
        tab_id, driver = await self.adopt(page)
        logger.info(f"Opened tab {tab_id} at {url}")
        return tab_id, driver

    async def close_tab(self, tab_id: int) -> None:
        driver = self._drivers.pop(tab_id, None)
        if driver is not None:
            await driver.close()

    async def close(self) -> None:
        self._drivers.clear()
        if self._context is not None:
            await self._context.close()
            self._context = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
