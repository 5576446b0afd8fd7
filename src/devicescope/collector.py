"""Snapshot collection across all attribute providers."""

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime

from devicescope.errors import DuplicateAttributeKeyError, ProviderTimeout
from devicescope.events import LIVE_MODE, SNAPSHOT, EventBus
from devicescope.models import ProviderResult, Snapshot, is_attribute_value
from devicescope.providers import AttributeProvider

logger = logging.getLogger(__name__)

LAST_UPDATED = "Last Updated"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class SnapshotCollector:
    """
    Merges the results of all registered providers into one Snapshot.

    A provider failure is contained at the provider boundary and replaced by
    that provider's fallback entry, so ``collect()`` always returns a usable
    snapshot. Live mode re-collects on a fixed period from a single owned task.
    """

    def __init__(
        self,
        providers: Iterable[AttributeProvider] = (),
        live_interval: float = 5.0,
        provider_timeout: float = 10.0,
        bus: EventBus | None = None,
    ) -> None:
        """
        Initialize the SnapshotCollector.

        Args:
            providers: Providers to register, merged in this order.
            live_interval: Seconds between collections in live mode.
            provider_timeout: Seconds a single provider may take.
            bus: Event bus receiving ``snapshot`` and ``live_mode`` events.
        """
        self._providers: list[AttributeProvider] = []
        self._owned_keys: set[str] = set()
        self._live_interval = live_interval
        self._provider_timeout = provider_timeout
        self._bus = bus or EventBus()
        self._current: Snapshot | None = None
        self._live_task: asyncio.Task | None = None
        self.collection_count = 0
        for provider in providers:
            self.register(provider)

    @property
    def providers(self) -> list[AttributeProvider]:
        return list(self._providers)

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def current_snapshot(self) -> Snapshot | None:
        """The most recently completed snapshot, if any."""
        return self._current

    @property
    def live_mode(self) -> bool:
        return self._live_task is not None

    @property
    def live_interval(self) -> float:
        return self._live_interval

    def register(self, provider: AttributeProvider) -> None:
        """
        Register a provider.

        Raises:
            DuplicateAttributeKeyError: If the provider declares a key another
                registered provider already owns.
        """
        overlap = self._owned_keys & provider.declared_keys
        if overlap:
            raise DuplicateAttributeKeyError(provider.name, overlap)
        self._providers.append(provider)
        self._owned_keys |= provider.declared_keys
        logger.debug("Registered provider %s", provider.name)

    async def collect(self) -> Snapshot:
        """
        Query every provider concurrently and merge the results.

        Never raises for provider or merge failures. The result becomes the
        current snapshot when it completes, so the last collection to finish
        wins.
        """
        self.collection_count += 1
        try:
            results = await asyncio.gather(*(self._query(p) for p in self._providers))
            snapshot = self._merge(results)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Device info collection failed", exc_info=True)
            snapshot = Snapshot(
                {
                    "Error": "Failed to collect device information",
                    "Error Message": str(e) or type(e).__name__,
                    LAST_UPDATED: datetime.now().strftime(TIMESTAMP_FORMAT),
                },
                collected_at=datetime.now(),
            )

        self._current = snapshot
        self._bus.publish(SNAPSHOT, snapshot)
        return snapshot

    async def _query(self, provider: AttributeProvider) -> ProviderResult:
        try:
            try:
                result = dict(await asyncio.wait_for(provider.query(), self._provider_timeout))
            except asyncio.TimeoutError as e:
                raise ProviderTimeout(f"Timed out after {self._provider_timeout:g}s") from e
            invalid = sorted(key for key, value in result.items() if not is_attribute_value(value))
            if invalid:
                raise TypeError(f"Invalid value for {', '.join(invalid)}")
            return result
        except Exception as e:
            logger.warning("Provider %s failed: %s", provider.name, e)
            return provider.fallback(e)

    def _merge(self, results: list[ProviderResult]) -> Snapshot:
        merged: ProviderResult = {}
        for provider, result in zip(self._providers, results):
            for key, value in result.items():
                if key in merged:
                    # Later providers win on undeclared collisions
                    logger.warning("Provider %s overwrites attribute %r", provider.name, key)
                    del merged[key]
                merged[key] = value

        now = datetime.now()
        merged.pop(LAST_UPDATED, None)
        merged[LAST_UPDATED] = now.strftime(TIMESTAMP_FORMAT)
        return Snapshot(merged, collected_at=now)

    def set_live_mode(self, enabled: bool) -> None:
        """
        Start or stop periodic collection.

        Enabling while enabled is a no-op. Disabling cancels the timer task, so
        no collection starts after this call returns; a collection already in
        flight is cancelled with it.
        """
        if enabled == self.live_mode:
            return

        if enabled:
            self._live_task = asyncio.get_running_loop().create_task(
                self._live_loop(), name="SnapshotCollector.live"
            )
            logger.info("Live mode enabled (every %.1fs)", self._live_interval)
        else:
            task, self._live_task = self._live_task, None
            task.cancel()
            logger.info("Live mode disabled")
        self._bus.publish(LIVE_MODE, enabled)

    def toggle_live_mode(self) -> bool:
        self.set_live_mode(not self.live_mode)
        return self.live_mode

    async def _live_loop(self) -> None:
        while True:
            await asyncio.sleep(self._live_interval)
            await self.collect()

    def close(self) -> None:
        """Stop live mode."""
        self.set_live_mode(False)
