"""Tests for snapshot history and preference storage."""

from datetime import datetime

import pytest
import pytest_asyncio

from devicescope.models import Snapshot
from devicescope.storage import (
    DEVICE_INFO_HISTORY,
    THEME,
    HistoryStore,
    MemoryStore,
    SqliteStore,
)


class BrokenStore(MemoryStore):
    """Store whose every operation fails like a full disk."""

    async def save(self, key, value):
        raise OSError("disk full")

    async def load(self, key):
        raise OSError("disk full")

    async def remove_all(self, keys):
        raise OSError("disk full")

    async def keys(self):
        raise OSError("disk full")


def make_snapshot(n: int) -> Snapshot:
    return Snapshot(
        {"Sequence": str(n), "Network Interfaces": {"eth0": "up"}},
        collected_at=datetime(2024, 1, 1, 0, 0, n % 60),
    )


@pytest_asyncio.fixture
async def sqlite_history(tmp_path):
    history = await HistoryStore.open(tmp_path / "data" / "store.db")
    yield history
    await history.close()


class TestSqliteStore:
    """Tests for the SQLite-backed key-value store."""

    @pytest.mark.asyncio
    async def test_save_and_load(self, tmp_path):
        store = SqliteStore(tmp_path / "store.db")
        await store.initialize()

        await store.save("key", {"nested": [1, 2]})

        assert await store.load("key") == {"nested": [1, 2]}
        assert await store.load("missing") is None
        assert await store.keys() == ["key"]
        await store.close()

    @pytest.mark.asyncio
    async def test_values_survive_reopen(self, tmp_path):
        path = tmp_path / "store.db"
        store = SqliteStore(path)
        await store.initialize()
        await store.save(THEME, "dark")
        await store.close()

        reopened = SqliteStore(path)
        await reopened.initialize()
        assert await reopened.load(THEME) == "dark"
        await reopened.close()

    @pytest.mark.asyncio
    async def test_use_before_initialize(self, tmp_path):
        store = SqliteStore(tmp_path / "store.db")
        with pytest.raises(RuntimeError):
            await store.save("key", "value")


class TestHistoryStore:
    """Tests for HistoryStore."""

    @pytest.mark.asyncio
    async def test_snapshot_history_newest_first(self, sqlite_history):
        await sqlite_history.save_snapshot(make_snapshot(1))
        await sqlite_history.save_snapshot(make_snapshot(2))

        history = await sqlite_history.snapshot_history()

        assert [entry["data"]["Sequence"] for entry in history] == ["2", "1"]
        assert history[0]["data"]["Network Interfaces"] == {"eth0": "up"}

    @pytest.mark.asyncio
    async def test_nested_records_are_stored(self, sqlite_history):
        snapshot = Snapshot(
            {"Network Interfaces": {"eth0": {"addresses": ["10.0.0.2"]}}},
            collected_at=datetime(2024, 1, 1),
        )

        assert await sqlite_history.save_snapshot(snapshot)

        history = await sqlite_history.snapshot_history()
        assert history[0]["data"]["Network Interfaces"] == {"eth0": {"addresses": ["10.0.0.2"]}}

    @pytest.mark.asyncio
    async def test_snapshot_history_capped(self):
        history = HistoryStore(history_limit=50)
        for n in range(55):
            await history.save_snapshot(make_snapshot(n))

        entries = await history.snapshot_history()

        assert len(entries) == 50
        assert entries[0]["data"]["Sequence"] == "54"

    @pytest.mark.asyncio
    async def test_offline_data_capped(self):
        history = HistoryStore(offline_limit=10)
        for n in range(12):
            await history.save_offline_data({"n": n})

        entries = await history.offline_data()

        assert [e["n"] for e in entries] == list(range(11, 1, -1))
        assert "timestamp" in entries[0]

    @pytest.mark.asyncio
    async def test_theme(self, sqlite_history):
        assert await sqlite_history.theme() == "system"

        await sqlite_history.save_theme("dark")
        assert await sqlite_history.theme() == "dark"

        with pytest.raises(ValueError):
            await sqlite_history.save_theme("sepia")

    @pytest.mark.asyncio
    async def test_preferences_and_performance_data(self):
        history = HistoryStore()

        assert await history.preferences() == {}
        assert await history.performance_data() is None

        await history.save_preferences({"live_mode": True})
        await history.save_performance_data({"memory": [250.0], "fps": [60.0]})

        assert await history.preferences() == {"live_mode": True}
        assert await history.performance_data() == {"memory": [250.0], "fps": [60.0]}

    @pytest.mark.asyncio
    async def test_clear_all(self, sqlite_history):
        await sqlite_history.save_snapshot(make_snapshot(1))
        await sqlite_history.save_theme("light")

        assert await sqlite_history.clear_all()

        assert await sqlite_history.snapshot_history() == []
        assert await sqlite_history.theme() == "system"

    @pytest.mark.asyncio
    async def test_storage_info(self, sqlite_history):
        await sqlite_history.save_snapshot(make_snapshot(1))
        await sqlite_history.save_theme("light")

        info = await sqlite_history.storage_info()

        assert info["total_keys"] == 2
        assert set(info["keys"]) == {DEVICE_INFO_HISTORY, THEME}
        assert info["estimated_size"] > 0

    @pytest.mark.asyncio
    async def test_export_all(self):
        history = HistoryStore()
        await history.save_snapshot(make_snapshot(1))

        exported = await history.export_all()

        assert len(exported["device_info_history"]) == 1
        assert exported["user_preferences"] == {}
        assert exported["storage_info"]["total_keys"] == 1

    @pytest.mark.asyncio
    async def test_failing_store_degrades_to_defaults(self):
        """Test storage failures are logged and answered with defaults."""
        history = HistoryStore(BrokenStore())

        assert not await history.save_snapshot(make_snapshot(1))
        assert await history.snapshot_history() == []
        assert await history.theme() == "system"
        assert not await history.clear_all()
        assert (await history.storage_info())["total_keys"] == 0

    @pytest.mark.asyncio
    async def test_open_falls_back_to_memory(self, tmp_path):
        blocker = tmp_path / "not-a-directory"
        blocker.write_text("")

        history = await HistoryStore.open(blocker / "store.db")

        assert isinstance(history.store, MemoryStore)
        assert await history.save_theme("dark")
        assert await history.theme() == "dark"
        await history.close()
