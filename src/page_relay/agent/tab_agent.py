"""The per-tab agent: extracts content from its own page on request."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from page_relay.automation.driver import PageDriver
from page_relay.extraction import create_extractor, detect_content_type
from page_relay.extraction.models import ExtractedContent, PageSnapshot
from page_relay.storage import StorageAreas, keys

logger = logging.getLogger(__name__)


@dataclass
class AgentState:
    """Everything one agent knows about itself; nothing is shared between tabs."""

    tab_id: int
    ready: bool = False
    extracting: bool = False
    last_content_type: str | None = None
    extractions: int = 0


class TabAgent:
    """Answers router messages for one tab.

    Extraction results are not returned in the response: the record is
    written to ``extracted_content:<tabId>`` and ``content_ready:<tabId>``
    is set, which the router polls.
    """

    def __init__(self, tab_id: int, driver: PageDriver, storage: StorageAreas):
        self.driver = driver
        self.storage = storage
        self.state = AgentState(tab_id=tab_id)

    @property
    def tab_id(self) -> int:
        return self.state.tab_id

    async def initialize(self) -> None:
        self.state.ready = True
        logger.info(f"Tab agent {self.tab_id} ready on {self.driver.url}")

    async def handle_message(self, message: dict) -> dict:
        action = message.get("action")
        match action:
            case "ping":
                return {"status": "pong", "ready": self.state.ready}
            case "extractContent":
                content = await self.extract_content()
                return {"status": "error" if content.error else "success", "contentType": content.content_type}
            case "resetExtractor":
                self.state.last_content_type = None
                self.state.extracting = False
                return {"status": "reset"}
            case _:
                logger.warning(f"Tab agent {self.tab_id} got unknown action {action!r}")
                return {"status": "error", "error": f"Unknown action: {action}"}

    async def _max_comments(self, content_type: str) -> int | None:
        custom = await self.storage.sync.get_value(keys.CUSTOM_PROMPTS, {}) or {}
        settings = (custom.get(content_type) or {}).get("settings") or {}
        value = settings.get("maxComments")
        return int(value) if isinstance(value, (int, float)) and value > 0 else None

    async def extract_content(self) -> ExtractedContent:
        """Run the strategy for the current URL and publish the record."""
        url = self.driver.url
        content_type = detect_content_type(url)
        self.state.extracting = True
        self.state.last_content_type = content_type
        try:
            extractor = create_extractor(url, max_comments=await self._max_comments(content_type))
            try:
                snapshot = await self.driver.snapshot()
            except Exception as e:
                logger.error(f"Tab {self.tab_id}: could not read page {url}: {e}")
                content = extractor.error_record(PageSnapshot(url=url), e)
            else:
                content = extractor.extract(snapshot)
            await self.storage.local.set(
                {
                    keys.extracted_content_key(self.tab_id): content.to_dict(),
                    keys.content_ready_key(self.tab_id): True,
                }
            )
            self.state.extractions += 1
            logger.info(
                f"Tab {self.tab_id}: {content_type} extraction "
                f"{'failed' if content.error else 'stored'} ({len(content.body)} chars)"
            )
            return content
        finally:
            self.state.extracting = False
