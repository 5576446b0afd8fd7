"""devicescope - Main Textual application."""

import argparse
import logging
from pathlib import Path

from rich.markup import escape
from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.logging import TextualHandler
from textual.widgets import DataTable, Footer, Input, Sparkline, Static

from devicescope.collector import LAST_UPDATED
from devicescope.config import DeviceScopeConfig, load_config
from devicescope.errors import ConfigError
from devicescope.events import LIVE_MODE, SAMPLE, SNAPSHOT
from devicescope.models import AppState, AverageMetrics, Query, Sample, Snapshot, stringify
from devicescope.providers import default_providers
from devicescope.search import FilterResult, SearchHistory
from devicescope.storage import THEMES, HistoryStore
from devicescope.telemetry import DeviceTelemetry

logger = logging.getLogger(__name__)

MEMORY_SCALE_MB = 350.0  # Memory value drawn as a full bar

# "system" has no terminal color-scheme query to follow, so it renders dark
TEXTUAL_THEMES = {"light": "textual-light", "dark": "textual-dark", "system": "textual-dark"}


def bar(value: float, full_scale: float, color: str, width: int = 20) -> str:
    """Render a value as a fixed-width markup bar."""
    length = int(value / full_scale * width) if full_scale > 0 else 0
    length = min(max(length, 0), width)
    return f"[{color}]█[/{color}]" * length + "[dim]░[/dim]" * (width - length)


class PerformanceStats(Static):
    """Header widget showing frame rate and memory estimates."""

    DEFAULT_CSS = """
    PerformanceStats {
        height: auto;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._metrics = AverageMetrics()
        self._monitoring = False

    def compose(self) -> ComposeResult:
        yield Horizontal(
            Static(self._get_fps_info(), id="fps-info"),
            Static(self._get_mem_info(), id="mem-info"),
        )
        yield Sparkline([0.0], summary_function=max, id="memory-spark")

    def update_metrics(self, metrics: AverageMetrics, memory_history: list[float]) -> None:
        self._metrics = metrics
        try:
            self.query_one("#fps-info", Static).update(self._get_fps_info())
            self.query_one("#mem-info", Static).update(self._get_mem_info())
            self.query_one("#memory-spark", Sparkline).data = memory_history
        except Exception:
            pass  # Widget not mounted yet

    def set_monitoring(self, monitoring: bool) -> None:
        self._monitoring = monitoring
        try:
            self.query_one("#fps-info", Static).update(self._get_fps_info())
        except Exception:
            pass

    def _get_fps_info(self) -> str:
        m = self._metrics
        state = "[green]monitoring[/green]" if self._monitoring else "[dim]paused[/dim]"
        return (
            f"FPS \\[{bar(m.current_fps, 60.0, 'green')}] {m.current_fps:5.1f}  {state}\n"
            f"Avg FPS: {m.avg_fps:.1f}"
        )

    def _get_mem_info(self) -> str:
        m = self._metrics
        return (
            f"Mem \\[{bar(m.current_memory, MEMORY_SCALE_MB, 'cyan')}] {m.current_memory:6.1f}MB\n"
            f"Avg memory: {m.avg_memory:.1f}MB"
        )


class AttributeTable(Container):
    """Container for the grouped attribute table."""

    DEFAULT_CSS = """
    AttributeTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def compose(self) -> ComposeResult:
        yield DataTable(id="attribute-table")

    def on_mount(self) -> None:
        table = self.query_one("#attribute-table", DataTable)
        table.cursor_type = "row"
        table.add_column("Attribute", key="attribute", width=30)
        table.add_column("Value", key="value")

    def update_results(self, result: FilterResult) -> None:
        """Replace the table contents with category headers and their attributes."""
        table = self.query_one("#attribute-table", DataTable)
        table.clear()
        for category, entries in result:
            table.add_row(
                Text(category.name, style=f"bold {category.color}"),
                Text(f"{len(entries)} items", style="dim"),
                key=f"category:{category.id}",
            )
            for key, value in entries:
                table.add_row(Text(f"  {key}"), Text(stringify(value)), key=f"attribute:{key}")

    @property
    def row_count(self) -> int:
        return self.query_one("#attribute-table", DataTable).row_count


class DeviceScopeApp(App):
    """Main devicescope application."""

    TITLE = "devicescope"
    SUB_TITLE = "Device Attributes & Performance"
    AUTO_FOCUS = "#attribute-table"

    CSS = """
    Screen {
        layout: vertical;
    }

    #performance-stats {
        dock: top;
        height: auto;
    }

    Horizontal {
        height: auto;
    }

    #fps-info {
        width: 1fr;
        padding-right: 2;
    }

    #mem-info {
        width: 1fr;
        padding-left: 2;
    }

    #memory-spark {
        height: 2;
    }

    #filter-bar, #suggestions, #status {
        height: auto;
        padding: 0 1;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "refresh", "Refresh"),
        ("l", "live", "Live"),
        ("f", "cycle_filter", "Filter"),
        ("c", "clear_search", "Clear"),
        ("p", "monitor", "Monitor"),
        ("t", "theme", "Theme"),
        ("slash", "search", "Search"),
    ]

    def __init__(
        self,
        config: DeviceScopeConfig | None = None,
        telemetry: DeviceTelemetry | None = None,
        store_path: Path | None = None,
    ) -> None:
        """
        Initialize the DeviceScopeApp.

        Args:
            config: Settings, defaults if omitted.
            telemetry: Telemetry core to display; built from the host
                providers if omitted.
            store_path: SQLite file for history and theme. No persistence if None.
        """
        super().__init__()
        self._settings = config or DeviceScopeConfig()
        self._app_state = AppState.ACTIVE
        self._telemetry = telemetry or DeviceTelemetry(
            self._settings,
            providers=default_providers(
                self._settings,
                size_source=lambda: (self.size.width, self.size.height),
                state_source=lambda: self._app_state,
            ),
        )
        self._store_path = store_path
        self._search_query = Query()
        self._search_history = SearchHistory()
        self._theme_preference = "system"
        self._resume_sampler = False

    @property
    def telemetry(self) -> DeviceTelemetry:
        return self._telemetry

    @property
    def current_query(self) -> Query:
        return self._search_query

    def compose(self) -> ComposeResult:
        yield PerformanceStats(id="performance-stats")
        yield Input(placeholder="Search device info...  (/ to focus)", id="search")
        yield Static(id="filter-bar")
        yield Static(id="suggestions")
        yield AttributeTable()
        yield Static(id="status")
        yield Footer()

    async def on_mount(self) -> None:
        """Wire the telemetry events, start sampling and take the first snapshot."""
        self._telemetry.subscribe(SNAPSHOT, self._on_snapshot)
        self._telemetry.subscribe(SAMPLE, self._on_sample)
        self._telemetry.subscribe(LIVE_MODE, self._on_live_mode)

        if self._store_path is not None:
            history = await HistoryStore.open(self._store_path, self._settings.history_limit)
            self._telemetry.attach_history(history)
            self._apply_theme(await history.theme())

        self._telemetry.sampler.start()
        self._set_monitoring_display()
        self._render_filter_bar()
        self._render_suggestions()
        self._render_status()
        await self._telemetry.refresh()

    async def on_unmount(self) -> None:
        """Stop the timers and flush storage however the app exits."""
        await self._telemetry.close()

    def _on_snapshot(self, snapshot: Snapshot) -> None:
        self._render_results()
        self._render_suggestions()
        self._render_status()

    def _on_sample(self, sample: Sample) -> None:
        try:
            window = self._telemetry.current_window()
            stats = self.query_one("#performance-stats", PerformanceStats)
            stats.update_metrics(self._telemetry.average_metrics(), [s.memory_mb for s in window])
        except Exception:
            pass  # App must keep running even if the header is gone

    def _on_live_mode(self, enabled: bool) -> None:
        self._render_status()

    def _render_results(self) -> None:
        result = self._telemetry.filter(self._search_query)
        try:
            self.query_one(AttributeTable).update_results(result)
        except Exception:
            logger.debug("Attribute table not ready", exc_info=True)

        summary = ""
        if self._search_query.text:
            found = self._telemetry.search.count_results(result)
            summary = f"  Found {found} results for “{escape(self._search_query.text)}”"
            if not result:
                summary += " - try a different term or filter"
        self._render_filter_bar(summary)

    def _render_filter_bar(self, summary: str = "") -> None:
        selected = self._search_query.category_filter
        chips = []
        for bucket in self._telemetry.search.index.buckets:
            label = bucket.capitalize()
            chips.append(f"[reverse]{label}[/reverse]" if bucket == selected else label)
        try:
            self.query_one("#filter-bar", Static).update("Filter: " + " | ".join(chips) + summary)
        except Exception:
            pass

    def _render_suggestions(self) -> None:
        title = "Suggestions" if self._search_query.text else "Popular searches"
        terms = self._telemetry.suggestions(self._search_query.text)
        line = Text(f"{title}: " + ", ".join(terms), style="dim")
        if self._search_history.terms:
            line.append("   Recent: " + ", ".join(self._search_history.terms), style="dim")
        try:
            self.query_one("#suggestions", Static).update(line)
        except Exception:
            pass

    def _render_status(self) -> None:
        snapshot = self._telemetry.current_snapshot
        last_updated = snapshot.get(LAST_UPDATED, "never") if snapshot is not None else "never"
        live = (
            f"[green]ON[/green] (every {self._telemetry.collector.live_interval:g}s)"
            if self._telemetry.live_mode
            else "OFF"
        )
        text = (
            f"Live updates: {live}   Last Updated: {escape(str(last_updated))}   "
            f"Theme: {self._theme_preference}"
        )
        try:
            self.query_one("#status", Static).update(text)
        except Exception:
            pass

    def _set_monitoring_display(self) -> None:
        try:
            stats = self.query_one("#performance-stats", PerformanceStats)
            stats.set_monitoring(self._telemetry.sampler.is_running)
        except Exception:
            pass

    def _apply_theme(self, preference: str) -> None:
        self._theme_preference = preference
        self.theme = TEXTUAL_THEMES[preference]
        self._render_status()

    def on_input_changed(self, event: Input.Changed) -> None:
        self._search_query = Query(event.value, self._search_query.category_filter)
        self._render_results()
        self._render_suggestions()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self._search_history.add(event.value)
        self._render_suggestions()
        self.query_one("#attribute-table", DataTable).focus()

    def on_app_blur(self) -> None:
        """Pause sampling while the terminal is in the background."""
        self._resume_sampler = self._telemetry.sampler.is_running
        self._app_state = AppState.BACKGROUND
        self._telemetry.sampler.on_app_state_change(AppState.BACKGROUND)
        self._set_monitoring_display()

    def on_app_focus(self) -> None:
        self._app_state = AppState.ACTIVE
        self._telemetry.sampler.on_app_state_change(AppState.ACTIVE)
        if self._resume_sampler:
            self._telemetry.sampler.start()
            self._resume_sampler = False
        self._set_monitoring_display()

    async def action_refresh(self) -> None:
        await self._telemetry.refresh()
        self.notify("Device info refreshed")

    def action_live(self) -> None:
        enabled = self._telemetry.collector.toggle_live_mode()
        self.notify(f"Live updates: {'ON' if enabled else 'OFF'}")

    def action_cycle_filter(self) -> None:
        buckets = self._telemetry.search.index.buckets
        current = buckets.index(self._search_query.category_filter)
        self._search_query = Query(self._search_query.text, buckets[(current + 1) % len(buckets)])
        self._render_results()

    def action_clear_search(self) -> None:
        self._search_query = Query()
        self.query_one("#search", Input).value = ""
        self._render_results()
        self._render_suggestions()

    def action_monitor(self) -> None:
        running = self._telemetry.sampler.toggle()
        self._set_monitoring_display()
        self.notify(f"Performance monitoring: {'ON' if running else 'OFF'}")

    async def action_theme(self) -> None:
        """Cycle light -> dark -> system and remember the choice."""
        preference = THEMES[(THEMES.index(self._theme_preference) + 1) % len(THEMES)]
        self._apply_theme(preference)
        if self._telemetry.history is not None:
            await self._telemetry.history.save_theme(preference)

    def action_search(self) -> None:
        self.query_one("#search", Input).focus()

    async def action_quit(self) -> None:
        """Stop the timers and storage before exiting."""
        await self._telemetry.close()
        self.exit()


def configure_logging(level: str, log_file: Path | None) -> None:
    """Send log records to a file, or to the Textual devtools console."""
    handler: logging.Handler
    if log_file is not None:
        handler = logging.FileHandler(log_file)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    else:
        handler = TextualHandler()
    logging.basicConfig(level=level.upper(), handlers=[handler], force=True)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="devicescope", description="Device attributes and performance at a glance."
    )
    parser.add_argument("--config", type=Path, help="TOML file with a [devicescope] table")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    parser.add_argument("--log-file", type=Path, help="Write logs to this file")
    parser.add_argument("--no-store", action="store_true", help="Keep history in memory only")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Entry point for devicescope application."""
    args = parse_args(argv)
    configure_logging(args.log_level, args.log_file)
    try:
        config = load_config(args.config)
    except ConfigError as e:
        raise SystemExit(f"devicescope: {e}") from e

    app = DeviceScopeApp(config, store_path=None if args.no_store else config.store_path)
    app.run()


if __name__ == "__main__":
    main()
