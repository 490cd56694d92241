"""Abstract base class for key-value storage areas."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterable


class BaseStore(ABC):
    """Abstract async key-value store.

    Values must be JSON-serializable. Writes are last-write-wins; there is
    no locking between concurrent writers of the same key.
    """

    @abstractmethod
    async def get(self, keys: str | Iterable[str] | None = None) -> dict[str, Any]:
        """Return a dict of the requested keys that exist (all keys if None)."""
        ...

    @abstractmethod
    async def set(self, items: dict[str, Any]) -> None:
        """Write every key in ``items``."""
        ...

    @abstractmethod
    async def remove(self, keys: str | Iterable[str]) -> None:
        """Delete keys; missing keys are ignored."""
        ...

    @abstractmethod
    async def clear(self) -> None:
        """Delete everything in this area."""
        ...

    async def get_value(self, key: str, default: Any = None) -> Any:
        result = await self.get(key)
        return result.get(key, default)


def normalize_keys(keys: str | Iterable[str] | None) -> list[str] | None:
    if keys is None:
        return None
    if isinstance(keys, str):
        return [keys]
    return list(keys)
