"""
Key-value persistence for preferences and snapshot history.

The telemetry core works without storage. ``HistoryStore`` never raises: a
failing store is logged and answered with defaults, and a SQLite database
that cannot be opened is replaced by an in-memory store.
"""

import asyncio
import json
import logging
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Protocol

import aiosqlite

from devicescope.models import Snapshot, thaw

logger = logging.getLogger(__name__)

DEVICE_INFO_HISTORY = "device_info_history"
PERFORMANCE_DATA = "performance_data"
USER_PREFERENCES = "user_preferences"
OFFLINE_DATA = "offline_data"
THEME = "theme"

STORAGE_KEYS = (DEVICE_INFO_HISTORY, PERFORMANCE_DATA, USER_PREFERENCES, OFFLINE_DATA, THEME)

THEMES = ("light", "dark", "system")


class KeyValueStore(Protocol):
    """Async key-value store holding JSON-serializable values."""

    async def save(self, key: str, value: Any) -> None: ...

    async def load(self, key: str) -> Any | None: ...

    async def remove_all(self, keys: Iterable[str]) -> None: ...

    async def keys(self) -> list[str]: ...


class MemoryStore:
    """In-process store, lost on exit."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def save(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    async def load(self, key: str) -> Any | None:
        raw = self._data.get(key)
        return None if raw is None else json.loads(raw)

    async def remove_all(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    async def keys(self) -> list[str]:
        return list(self._data)


class SqliteStore:
    """Store backed by a single SQLite table of JSON values."""

    def __init__(self, db_path: str | Path) -> None:
        """
        Initialize the store.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = Path(db_path)
        self._conn: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the database and create the table."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self.db_path)
        await self._conn.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at REAL NOT NULL
            )
        """)
        await self._conn.commit()

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    def _connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("store is not initialized")
        return self._conn

    async def save(self, key: str, value: Any) -> None:
        conn = self._connection()
        await conn.execute(
            "INSERT OR REPLACE INTO kv (key, value, updated_at) VALUES (?, ?, ?)",
            (key, json.dumps(value), time.time()),
        )
        await conn.commit()

    async def load(self, key: str) -> Any | None:
        async with self._connection().execute("SELECT value FROM kv WHERE key = ?", (key,)) as cursor:
            row = await cursor.fetchone()
        return None if row is None else json.loads(row[0])

    async def remove_all(self, keys: Iterable[str]) -> None:
        conn = self._connection()
        await conn.executemany("DELETE FROM kv WHERE key = ?", [(k,) for k in keys])
        await conn.commit()

    async def keys(self) -> list[str]:
        async with self._connection().execute("SELECT key FROM kv ORDER BY key") as cursor:
            rows = await cursor.fetchall()
        return [row[0] for row in rows]


_STORE_ERRORS = (aiosqlite.Error, OSError, ValueError, TypeError, RuntimeError)


def snapshot_record(snapshot: Snapshot) -> dict[str, Any]:
    """JSON-ready form of a snapshot."""
    return thaw(snapshot.attributes)


class HistoryStore:
    """
    Application-level persistence on top of a key-value store.

    Keeps snapshot history (newest first), performance data, user
    preferences, the theme and offline data.
    """

    def __init__(
        self,
        store: KeyValueStore | None = None,
        history_limit: int = 50,
        offline_limit: int = 10,
    ) -> None:
        self.store: KeyValueStore = store or MemoryStore()
        self.history_limit = history_limit
        self.offline_limit = offline_limit
        self._lock = asyncio.Lock()

    @classmethod
    async def open(cls, db_path: str | Path, history_limit: int = 50) -> "HistoryStore":
        """Open a SQLite-backed store, falling back to memory if that fails."""
        sqlite = SqliteStore(db_path)
        try:
            await sqlite.initialize()
        except _STORE_ERRORS as e:
            logger.warning("Cannot open %s, keeping data in memory only: %s", db_path, e)
            await sqlite.close()
            return cls(MemoryStore(), history_limit=history_limit)
        return cls(sqlite, history_limit=history_limit)

    async def close(self) -> None:
        close = getattr(self.store, "close", None)
        if close is not None:
            try:
                await close()
            except _STORE_ERRORS as e:
                logger.error("Error closing store: %s", e)

    async def _save(self, key: str, value: Any) -> bool:
        try:
            await self.store.save(key, value)
        except _STORE_ERRORS as e:
            logger.error("Error saving %s: %s", key, e)
            return False
        return True

    async def _load(self, key: str, default: Any) -> Any:
        try:
            value = await self.store.load(key)
        except _STORE_ERRORS as e:
            logger.error("Error loading %s: %s", key, e)
            return default
        return default if value is None else value

    async def save_snapshot(self, snapshot: Snapshot) -> bool:
        entry = {"timestamp": snapshot.collected_at.timestamp(), "data": snapshot_record(snapshot)}
        async with self._lock:
            history = await self.snapshot_history()
            return await self._save(DEVICE_INFO_HISTORY, [entry, *history][: self.history_limit])

    async def snapshot_history(self) -> list[dict[str, Any]]:
        return await self._load(DEVICE_INFO_HISTORY, [])

    async def save_performance_data(self, data: dict[str, Any]) -> bool:
        return await self._save(PERFORMANCE_DATA, data)

    async def performance_data(self) -> dict[str, Any] | None:
        return await self._load(PERFORMANCE_DATA, None)

    async def save_preferences(self, preferences: dict[str, Any]) -> bool:
        return await self._save(USER_PREFERENCES, preferences)

    async def preferences(self) -> dict[str, Any]:
        return await self._load(USER_PREFERENCES, {})

    async def save_theme(self, theme: str) -> bool:
        if theme not in THEMES:
            raise ValueError(f"unknown theme: {theme!r}")
        return await self._save(THEME, theme)

    async def theme(self) -> str:
        theme = await self._load(THEME, "system")
        return theme if theme in THEMES else "system"

    async def save_offline_data(self, data: dict[str, Any]) -> bool:
        entry = {"timestamp": time.time(), **data}
        async with self._lock:
            entries = await self.offline_data()
            return await self._save(OFFLINE_DATA, [entry, *entries][: self.offline_limit])

    async def offline_data(self) -> list[dict[str, Any]]:
        return await self._load(OFFLINE_DATA, [])

    async def clear_all(self) -> bool:
        try:
            await self.store.remove_all(STORAGE_KEYS)
        except _STORE_ERRORS as e:
            logger.error("Error clearing all data: %s", e)
            return False
        return True

    async def storage_info(self) -> dict[str, Any]:
        """Stored keys and their approximate serialized size in bytes."""
        try:
            keys = [k for k in await self.store.keys() if k in STORAGE_KEYS]
            size = 0
            for key in keys:
                value = await self.store.load(key)
                if value is not None:
                    size += len(json.dumps(value).encode())
        except _STORE_ERRORS as e:
            logger.error("Error getting storage info: %s", e)
            return {"total_keys": 0, "keys": [], "estimated_size": 0}
        return {"total_keys": len(keys), "keys": keys, "estimated_size": size}

    async def export_all(self) -> dict[str, Any]:
        return {
            "export_timestamp": time.time(),
            "device_info_history": await self.snapshot_history(),
            "performance_data": await self.performance_data(),
            "user_preferences": await self.preferences(),
            "offline_data": await self.offline_data(),
            "storage_info": await self.storage_info(),
        }
