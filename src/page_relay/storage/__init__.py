"""Key-value storage partitioned into local and sync areas."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from page_relay.storage.base import BaseStore
from page_relay.storage.memory import MemoryStore
from page_relay.storage.sqlite import SqliteStore


@dataclass
class StorageAreas:
    """The two storage partitions every component shares."""

    local: BaseStore = field(default_factory=MemoryStore)
    sync: BaseStore = field(default_factory=MemoryStore)

    @classmethod
    def sqlite(cls, db_path: str | Path) -> "StorageAreas":
        return cls(
            local=SqliteStore(db_path, table="local_area"),
            sync=SqliteStore(db_path, table="sync_area"),
        )


__all__ = [
    "BaseStore",
    "MemoryStore",
    "SqliteStore",
    "StorageAreas",
]
