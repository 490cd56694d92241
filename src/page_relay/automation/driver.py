"""Browser page abstraction used by tab agents and automation adapters."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Iterable
from urllib.parse import unquote, urlparse

from page_relay.extraction.base import detect_content_type
from page_relay.extraction.models import PageSnapshot

logger = logging.getLogger(__name__)

_SET_TEXTAREA_JS = """
([selector, text]) => {
  const el = document.querySelector(selector);
  if (!el) return false;
  el.focus();
  const proto = el.tagName === 'TEXTAREA'
    ? HTMLTextAreaElement.prototype
    : HTMLInputElement.prototype;
  const setter = Object.getOwnPropertyDescriptor(proto, 'value').set;
  setter.call(el, text);
  el.dispatchEvent(new Event('input', { bubbles: true }));
  el.dispatchEvent(new Event('change', { bubbles: true }));
  return true;
}
"""

_SET_CONTENTEDITABLE_JS = """
([selector, text]) => {
  const el = document.querySelector(selector);
  if (!el) return false;
  el.focus();
  el.innerHTML = '';
  for (const line of text.split('\\n')) {
    const p = document.createElement('p');
    p.textContent = line;
    el.appendChild(p);
  }
  el.classList.remove('is-empty', 'is-editor-empty', 'ql-blank');
  el.dispatchEvent(new InputEvent('input', { bubbles: true }));
  return true;
}
"""

_WAIT_FOR_MUTATION_JS = """
(timeoutMs) => new Promise((resolve) => {
  const root = document.documentElement || document;
  const observer = new MutationObserver(() => {
    observer.disconnect();
    clearTimeout(timer);
    resolve(true);
  });
  observer.observe(root, { childList: true, subtree: true, attributes: true });
  const timer = setTimeout(() => { observer.disconnect(); resolve(false); }, timeoutMs);
})
"""


class PageDriver(ABC):
    """One browser tab, as seen by the code running inside it."""

    @property
    @abstractmethod
    def url(self) -> str:
        ...

    @abstractmethod
    async def content(self) -> str:
        """Serialized HTML of the current document."""
        ...

    @abstractmethod
    async def selection_text(self) -> str:
        ...

    @abstractmethod
    async def pdf_bytes(self) -> bytes | None:
        """Raw bytes of the document when the tab shows a PDF."""
        ...

    @abstractmethod
    async def find_first(self, selectors: Iterable[str]) -> str | None:
        """The first selector with a visible match, in the given order."""
        ...

    @abstractmethod
    async def visible_text(self) -> str:
        ...

    @abstractmethod
    async def set_input(self, selector: str, text: str, editor: str) -> None:
        """Replace the control's value and fire the input event its UI listens to."""
        ...

    @abstractmethod
    async def click(self, selector: str) -> None:
        ...

    @abstractmethod
    async def wait_for_mutation(self, timeout: float) -> bool:
        """Suspend until the DOM changes or ``timeout`` seconds pass."""
        ...

    async def close(self) -> None:
        return None

    async def snapshot(self) -> PageSnapshot:
        url = self.url
        if detect_content_type(url) == "pdf":
            return PageSnapshot(url=url, pdf_bytes=await self.pdf_bytes())
        return PageSnapshot(
            url=url,
            html=await self.content(),
            selection=await self.selection_text(),
        )


class PlaywrightPageDriver(PageDriver):
    """PageDriver over a Playwright async ``Page``."""

    def __init__(self, page: Any):
        self.page = page

    @property
    def url(self) -> str:
        return self.page.url

    async def content(self) -> str:
        return await self.page.content()

    async def selection_text(self) -> str:
        text = await self.page.evaluate("() => (window.getSelection() || '').toString()")
        return str(text or "").strip()

    async def pdf_bytes(self) -> bytes | None:
        parsed = urlparse(self.page.url)
        if parsed.scheme == "file":
            path = Path(unquote(parsed.path))
            return await asyncio.to_thread(path.read_bytes)
        response = await self.page.context.request.get(self.page.url)
        if not response.ok:
            logger.warning(f"PDF fetch returned {response.status} for {self.page.url}")
            return None
        return await response.body()

    async def find_first(self, selectors: Iterable[str]) -> str | None:
        for selector in selectors:
            locator = self.page.locator(selector)
            if await locator.count() == 0:
                continue
            if await locator.first.is_visible():
                return selector
        return None

    async def visible_text(self) -> str:
        return await self.page.inner_text("body")

    async def set_input(self, selector: str, text: str, editor: str) -> None:
        script = _SET_CONTENTEDITABLE_JS if editor == "contenteditable" else _SET_TEXTAREA_JS
        found = await self.page.evaluate(script, [selector, text])
        if not found:
            raise LookupError(f"Input control {selector!r} disappeared before insertion")

    async def click(self, selector: str) -> None:
        await self.page.locator(selector).first.click()

    async def wait_for_mutation(self, timeout: float) -> bool:
        return bool(await self.page.evaluate(_WAIT_FOR_MUTATION_JS, int(timeout * 1000)))

    async def close(self) -> None:
        if not self.page.is_closed():
            await self.page.close()
