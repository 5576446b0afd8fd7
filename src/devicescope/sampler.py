"""
Synthetic performance sampling for devicescope.

The sampler is a simulation layer: its frame rate and memory figures are
smooth, bounded approximations for display, not readings of real OS
performance counters.
"""

import asyncio
import logging
import math
import random
import time
from collections.abc import Callable
from datetime import datetime

from devicescope.events import SAMPLE, EventBus
from devicescope.models import AppState, AverageMetrics, PerformanceWindow, Sample

logger = logging.getLogger(__name__)

MAX_FRAME_RATE = 60.0

Clock = Callable[[], float]


class FrameRateEstimator:
    """
    Piecewise-constant frame rate from tick counts.

    Every tick is counted; once at least a second has passed since the anchor,
    the count is converted to a rate clamped to [0, 60] and the counter and
    anchor reset. Between those boundaries the previous rate is returned.
    """

    def __init__(self, clock: Clock = time.monotonic, initial_rate: float = MAX_FRAME_RATE) -> None:
        self._clock = clock
        self._initial_rate = initial_rate
        self.reset()

    def reset(self) -> None:
        self._ticks = 0
        self._anchor = self._clock()
        self._rate = self._initial_rate

    @property
    def rate(self) -> float:
        return self._rate

    def tick(self) -> float:
        now = self._clock()
        self._ticks += 1
        elapsed_ms = (now - self._anchor) * 1000
        if elapsed_ms >= 1000:
            estimate = round(self._ticks * 1000 / elapsed_ms)
            self._rate = float(min(max(estimate, 0), MAX_FRAME_RATE))
            self._ticks = 0
            self._anchor = now
        return self._rate


class MemoryEstimator:
    """Base value plus a slow sine wave plus small jitter, never negative."""

    def __init__(
        self,
        base_mb: float = 250.0,
        amplitude_mb: float = 50.0,
        period_s: float = 10.0,
        jitter_mb: float = 10.0,
        clock: Clock = time.time,
        rng: random.Random | None = None,
    ) -> None:
        self.base_mb = base_mb
        self.amplitude_mb = amplitude_mb
        self.period_s = period_s
        self.jitter_mb = jitter_mb
        self._clock = clock
        self._rng = rng or random.Random()

    def estimate(self) -> float:
        variance = math.sin(self._clock() / self.period_s) * self.amplitude_mb
        jitter = self._rng.uniform(-self.jitter_mb, self.jitter_mb)
        return max(self.base_mb + variance + jitter, 0.0)


class Sampler:
    """
    Produces one Sample per period into a bounded window.

    A tick that fails is logged and skipped without touching the window.
    """

    def __init__(
        self,
        interval: float = 1.0,
        capacity: int = 20,
        frame_rate: FrameRateEstimator | None = None,
        memory: MemoryEstimator | None = None,
        bus: EventBus | None = None,
    ) -> None:
        """
        Initialize the Sampler.

        Args:
            interval: Seconds between samples.
            capacity: Number of samples kept in the window.
            frame_rate: Frame rate estimator, a default one if omitted.
            memory: Memory estimator, a default one if omitted.
            bus: Event bus receiving ``sample`` events.
        """
        self._interval = interval
        self._window = PerformanceWindow(capacity)
        self._frame_rate = frame_rate or FrameRateEstimator()
        self._memory = memory or MemoryEstimator()
        self._bus = bus or EventBus()
        self._task: asyncio.Task | None = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._task is not None

    def start(self) -> None:
        """Start sampling. Does nothing if already running."""
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="Sampler")
        logger.debug("Sampler started (every %.1fs)", self._interval)

    def stop(self) -> None:
        """Stop sampling. Safe to call repeatedly."""
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        logger.debug("Sampler stopped")

    def toggle(self) -> bool:
        if self.is_running:
            self.stop()
        else:
            self.start()
        return self.is_running

    def on_app_state_change(self, state: AppState) -> None:
        """Stop when the app leaves the foreground. Resuming is up to the caller."""
        if state is not AppState.ACTIVE:
            self.stop()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.tick()

    def tick(self) -> Sample | None:
        """Take one sample and push it. Returns None if the tick failed."""
        try:
            sample = self.sample()
        except Exception:
            logger.error("Performance sampling tick failed", exc_info=True)
            return None
        self._window.push(sample)
        self._bus.publish(SAMPLE, sample)
        return sample

    def sample(self) -> Sample:
        return Sample(
            timestamp=datetime.now(),
            frame_rate=self._frame_rate.tick(),
            memory_mb=self._memory.estimate(),
        )

    def current_window(self) -> PerformanceWindow:
        return self._window

    def reset(self) -> None:
        """Clear the window and restart frame rate estimation."""
        self._window.clear()
        self._frame_rate.reset()

    def average_metrics(self) -> AverageMetrics:
        latest = self._window.latest
        if latest is None:
            return AverageMetrics()
        return AverageMetrics(
            avg_memory=round(self._window.average_memory, 1),
            avg_fps=round(self._window.average_frame_rate, 1),
            current_memory=round(latest.memory_mb, 1),
            current_fps=round(latest.frame_rate, 1),
        )
