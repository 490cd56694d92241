"""SQLite-backed storage area."""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Iterable

from page_relay.exceptions import StorageError
from page_relay.storage.base import BaseStore, normalize_keys

logger = logging.getLogger(__name__)


class SqliteStore(BaseStore):
    """Persistent key-value area stored as JSON text in one SQLite table.

    Args:
        db_path: Database file; created on first use.
        table: Table name, so the local and sync areas can share one file.
    """

    def __init__(self, db_path: str | Path, table: str = "kv"):
        if not table.isidentifier():
            raise StorageError(f"Invalid table name: {table}")
        self.db_path = Path(db_path).expanduser()
        self.table = table
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute(
                f"CREATE TABLE IF NOT EXISTS {self.table} "
                "(key TEXT PRIMARY KEY, value TEXT NOT NULL)"
            )

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path))

    def _get_sync(self, keys: list[str] | None) -> dict[str, Any]:
        with self._connect() as conn:
            if keys is None:
                rows = conn.execute(f"SELECT key, value FROM {self.table}").fetchall()
            elif not keys:
                rows = []
            else:
                placeholders = ",".join("?" for _ in keys)
                rows = conn.execute(
                    f"SELECT key, value FROM {self.table} WHERE key IN ({placeholders})",
                    keys,
                ).fetchall()
        return {key: json.loads(value) for key, value in rows}

    def _set_sync(self, items: dict[str, Any]) -> None:
        with self._connect() as conn:
            conn.executemany(
                f"INSERT INTO {self.table} (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                [(key, json.dumps(value)) for key, value in items.items()],
            )

    def _remove_sync(self, keys: list[str]) -> None:
        with self._connect() as conn:
            conn.executemany(
                f"DELETE FROM {self.table} WHERE key = ?", [(k,) for k in keys]
            )

    def _clear_sync(self) -> None:
        with self._connect() as conn:
            conn.execute(f"DELETE FROM {self.table}")

    async def get(self, keys: str | Iterable[str] | None = None) -> dict[str, Any]:
        try:
            return await asyncio.to_thread(self._get_sync, normalize_keys(keys))
        except (sqlite3.Error, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read {self.db_path}: {e}") from e

    async def set(self, items: dict[str, Any]) -> None:
        try:
            await asyncio.to_thread(self._set_sync, items)
        except (sqlite3.Error, TypeError, ValueError) as e:
            raise StorageError(f"Failed to write {self.db_path}: {e}") from e

    async def remove(self, keys: str | Iterable[str]) -> None:
        try:
            await asyncio.to_thread(self._remove_sync, normalize_keys(keys) or [])
        except sqlite3.Error as e:
            raise StorageError(f"Failed to delete from {self.db_path}: {e}") from e

    async def clear(self) -> None:
        try:
            await asyncio.to_thread(self._clear_sync)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to clear {self.db_path}: {e}") from e
