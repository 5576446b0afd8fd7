"""Tests for devicescope application."""

import pytest
from fakes import StaticProvider

from devicescope.app import (
    AttributeTable,
    DeviceScopeApp,
    PerformanceStats,
    bar,
    main,
    parse_args,
)
from devicescope.config import DeviceScopeConfig
from devicescope.models import AverageMetrics
from devicescope.storage import HistoryStore
from devicescope.telemetry import DeviceTelemetry

CONFIG = DeviceScopeConfig(live_interval=60.0, sample_interval=60.0)


def make_app(**kwargs) -> DeviceScopeApp:
    telemetry = DeviceTelemetry(
        CONFIG,
        providers=[
            StaticProvider("network", {"Connection Type": "wifi"}),
            StaticProvider("battery", {"Battery Level": "82%"}),
        ],
    )
    return DeviceScopeApp(CONFIG, telemetry=telemetry, **kwargs)


def test_bar():
    """Test bar renders a clamped fixed-width gauge."""
    assert bar(30, 60, "green", width=10).count("█") == 5
    assert bar(120, 60, "green", width=10).count("░") == 0
    assert bar(-5, 60, "green", width=10).count("░") == 10


def test_parse_args():
    args = parse_args(["--log-level", "debug", "--no-store"])

    assert args.log_level == "debug"
    assert args.no_store
    assert args.config is None


def test_main_rejects_bad_config(tmp_path, monkeypatch):
    monkeypatch.setattr("devicescope.app.configure_logging", lambda level, log_file: None)

    with pytest.raises(SystemExit):
        main(["--config", str(tmp_path / "missing.toml")])


@pytest.mark.asyncio
async def test_app_creation():
    """Test DeviceScopeApp can be instantiated."""
    app = make_app()
    assert app.title == "devicescope"
    assert app.sub_title == "Device Attributes & Performance"
    assert app.telemetry.current_snapshot is None


@pytest.mark.asyncio
async def test_app_compose():
    """Test DeviceScopeApp composes correctly."""
    app = make_app()
    async with app.run_test() as pilot:
        assert pilot.app.query_one("#performance-stats") is not None
        assert pilot.app.query_one("#search") is not None
        assert pilot.app.query_one("#attribute-table") is not None
        assert pilot.app.query_one("#status") is not None


@pytest.mark.asyncio
async def test_first_snapshot_rendered():
    """Test the table shows category headers and attributes after mount."""
    app = make_app()
    async with app.run_test() as pilot:
        await pilot.pause()

        assert app.telemetry.current_snapshot is not None
        assert pilot.app.query_one(AttributeTable).row_count == 4
        assert app.telemetry.sampler.is_running


@pytest.mark.asyncio
async def test_search_narrows_table():
    """Test typing into the search box filters the table."""
    app = make_app()
    async with app.run_test() as pilot:
        await pilot.pause()

        await pilot.press("slash", "b", "a", "t", "t")
        await pilot.pause()

        assert app.current_query.text == "batt"
        assert pilot.app.query_one(AttributeTable).row_count == 2


@pytest.mark.asyncio
async def test_search_submit_records_history():
    app = make_app()
    async with app.run_test() as pilot:
        await pilot.press("slash", "w", "i", "enter")
        await pilot.pause()

        assert app._search_history.terms == ["wi"]
        assert app.focused.id == "attribute-table"


@pytest.mark.asyncio
async def test_clear_search_binding():
    app = make_app()
    async with app.run_test() as pilot:
        await pilot.press("slash", "z", "z")
        await pilot.pause()
        assert pilot.app.query_one(AttributeTable).row_count == 0

        app.action_clear_search()
        await pilot.pause()

        assert app.current_query.text == ""
        assert pilot.app.query_one(AttributeTable).row_count == 4


@pytest.mark.asyncio
async def test_filter_binding():
    """Test that 'f' cycles the category bucket."""
    app = make_app()
    async with app.run_test() as pilot:
        await pilot.pause()

        await pilot.press("f")
        assert app.current_query.category_filter == "hardware"
        assert pilot.app.query_one(AttributeTable).row_count == 0

        await pilot.press("f", "f")
        assert app.current_query.category_filter == "network"
        assert pilot.app.query_one(AttributeTable).row_count == 2


@pytest.mark.asyncio
async def test_refresh_binding():
    app = make_app()
    async with app.run_test() as pilot:
        await pilot.pause()
        before = app.telemetry.collector.collection_count

        await pilot.press("r")
        await pilot.pause()

        assert app.telemetry.collector.collection_count == before + 1


@pytest.mark.asyncio
async def test_live_binding():
    """Test that 'l' toggles live mode."""
    app = make_app()
    async with app.run_test() as pilot:
        await pilot.press("l")
        assert app.telemetry.live_mode

        await pilot.press("l")
        assert not app.telemetry.live_mode


@pytest.mark.asyncio
async def test_monitor_binding():
    """Test that 'p' pauses and resumes sampling."""
    app = make_app()
    async with app.run_test() as pilot:
        await pilot.pause()

        await pilot.press("p")
        assert not app.telemetry.sampler.is_running

        await pilot.press("p")
        assert app.telemetry.sampler.is_running


@pytest.mark.asyncio
async def test_blur_pauses_sampler():
    app = make_app()
    async with app.run_test() as pilot:
        await pilot.pause()

        app.on_app_blur()
        assert not app.telemetry.sampler.is_running

        app.on_app_focus()
        assert app.telemetry.sampler.is_running


@pytest.mark.asyncio
async def test_theme_binding(tmp_path):
    """Test that 't' cycles the theme and stores the choice."""
    app = make_app(store_path=tmp_path / "store.db")
    async with app.run_test() as pilot:
        await pilot.pause()

        await pilot.press("t")
        await pilot.pause()

        assert app.theme == "textual-light"
        assert await app.telemetry.history.theme() == "light"


@pytest.mark.asyncio
async def test_app_quit_binding():
    """Test that 'q' binding triggers quit."""
    app = make_app()
    async with app.run_test() as pilot:
        await pilot.press("q")
        assert pilot.app._exit
        assert not app.telemetry.sampler.is_running


@pytest.mark.asyncio
async def test_performance_stats_update():
    """Test that the performance header can be updated."""
    app = make_app()
    async with app.run_test() as pilot:
        stats = pilot.app.query_one("#performance-stats", PerformanceStats)
        metrics = AverageMetrics(avg_memory=250.0, avg_fps=58.5, current_memory=262.1, current_fps=60.0)

        stats.update_metrics(metrics, [240.0, 262.1])

        assert stats._metrics == metrics
        assert "58.5" in stats._get_fps_info()
        assert "262.1MB" in stats._get_mem_info()


@pytest.mark.asyncio
async def test_exit_without_quit_flushes_storage(tmp_path):
    """Test storage is flushed and closed when the app exits by other means."""
    store_path = tmp_path / "store.db"
    app = make_app(store_path=store_path)
    async with app.run_test() as pilot:
        await pilot.pause()
        app.telemetry.sampler.tick()

    assert not app.telemetry.sampler.is_running
    assert app.telemetry.history.store._conn is None

    history = await HistoryStore.open(store_path)
    performance = await history.performance_data()
    assert len(performance["memory"]) == 1
    assert len(await history.snapshot_history()) == 1
    await history.close()
