"""Presentation-facing facade over the telemetry core."""

import asyncio
import logging
from collections.abc import Iterable

from devicescope.categories import CategoryIndex
from devicescope.collector import SnapshotCollector
from devicescope.config import DeviceScopeConfig
from devicescope.events import SNAPSHOT, EventBus, Subscriber
from devicescope.models import AverageMetrics, PerformanceWindow, Query, Snapshot
from devicescope.providers import AttributeProvider, default_providers
from devicescope.sampler import Sampler
from devicescope.search import FilterResult, SearchFilterEngine
from devicescope.storage import HistoryStore

logger = logging.getLogger(__name__)


class DeviceTelemetry:
    """
    Wires the collector, sampler, category index and search engine together.

    A rendering layer reads ``current_snapshot`` and ``current_window()``,
    calls ``filter()`` on every query change, and subscribes to the
    ``snapshot``, ``sample`` and ``live_mode`` events.
    """

    def __init__(
        self,
        config: DeviceScopeConfig | None = None,
        providers: Iterable[AttributeProvider] | None = None,
        index: CategoryIndex | None = None,
        history: HistoryStore | None = None,
    ) -> None:
        self.config = config or DeviceScopeConfig()
        self.bus = EventBus()
        self.collector = SnapshotCollector(
            default_providers(self.config) if providers is None else providers,
            live_interval=self.config.live_interval,
            provider_timeout=self.config.provider_timeout,
            bus=self.bus,
        )
        self.sampler = Sampler(
            interval=self.config.sample_interval,
            capacity=self.config.window_capacity,
            bus=self.bus,
        )
        self.search = SearchFilterEngine(index or CategoryIndex())
        self.history: HistoryStore | None = None
        self._pending_saves: set[asyncio.Task] = set()
        self._closed = False
        if history is not None:
            self.attach_history(history)

    @property
    def current_snapshot(self) -> Snapshot | None:
        return self.collector.current_snapshot

    @property
    def live_mode(self) -> bool:
        return self.collector.live_mode

    def subscribe(self, event_type: str, callback: Subscriber) -> None:
        self.bus.subscribe(event_type, callback)

    def unsubscribe(self, event_type: str, callback: Subscriber) -> None:
        self.bus.unsubscribe(event_type, callback)

    def attach_history(self, history: HistoryStore) -> None:
        """Record every new snapshot into the given store."""
        if self.history is None:
            self.bus.subscribe(SNAPSHOT, self._record_snapshot)
        self.history = history

    async def refresh(self) -> Snapshot:
        return await self.collector.collect()

    def set_live_mode(self, enabled: bool) -> None:
        self.collector.set_live_mode(enabled)

    def filter(self, query: Query) -> FilterResult:
        """Filter the current snapshot. Empty until a snapshot exists."""
        snapshot = self.current_snapshot
        if snapshot is None:
            return []
        return self.search.filter(snapshot, query)

    def suggestions(self, text: str) -> list[str]:
        return self.search.suggestions(self.current_snapshot, text)

    def current_window(self) -> PerformanceWindow:
        return self.sampler.current_window()

    def average_metrics(self) -> AverageMetrics:
        return self.sampler.average_metrics()

    def _record_snapshot(self, snapshot: Snapshot) -> None:
        if self._closed:
            return
        task = asyncio.get_running_loop().create_task(self.history.save_snapshot(snapshot))
        self._pending_saves.add(task)
        task.add_done_callback(self._pending_saves.discard)

    async def close(self) -> None:
        """Stop both timers, flush pending history writes and close storage. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self.collector.close()
        self.sampler.stop()
        if self._pending_saves:
            await asyncio.gather(*list(self._pending_saves))
        if self.history is not None:
            window = self.sampler.current_window()
            await self.history.save_performance_data(
                {
                    "memory": [s.memory_mb for s in window],
                    "fps": [s.frame_rate for s in window],
                    "timestamps": [s.timestamp.strftime("%H:%M:%S") for s in window],
                }
            )
            await self.history.close()
