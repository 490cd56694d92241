"""In-process storage backend."""

from __future__ import annotations

import copy
from typing import Any, Iterable

from page_relay.storage.base import BaseStore, normalize_keys


class MemoryStore(BaseStore):
    """Dict-backed store. Values are deep-copied on the way in and out."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, Any] = copy.deepcopy(initial or {})

    async def get(self, keys: str | Iterable[str] | None = None) -> dict[str, Any]:
        wanted = normalize_keys(keys)
        if wanted is None:
            return copy.deepcopy(self._data)
        return {k: copy.deepcopy(self._data[k]) for k in wanted if k in self._data}

    async def set(self, items: dict[str, Any]) -> None:
        for key, value in items.items():
            self._data[key] = copy.deepcopy(value)

    async def remove(self, keys: str | Iterable[str]) -> None:
        for key in normalize_keys(keys) or []:
            self._data.pop(key, None)

    async def clear(self) -> None:
        self._data.clear()
