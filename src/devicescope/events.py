"""Change notifications from the telemetry core to its subscribers."""

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

SNAPSHOT = "snapshot"
SAMPLE = "sample"
LIVE_MODE = "live_mode"

EVENT_TYPES = (SNAPSHOT, SAMPLE, LIVE_MODE)

Subscriber = Callable[[Any], None]


class EventBus:
    """
    Synchronous publish/subscribe hub.

    Callbacks run in publish order on the caller's event loop turn. A failing
    callback is logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscriber]] = {}

    def subscribe(self, event_type: str, callback: Subscriber) -> None:
        """
        Subscribe to an event type.

        Args:
            event_type: One of ``snapshot``, ``sample`` or ``live_mode``.
            callback: Called with the event payload.
        """
        if event_type not in EVENT_TYPES:
            raise ValueError(f"unknown event type: {event_type!r}")
        callbacks = self._subscribers.setdefault(event_type, [])
        if callback not in callbacks:
            callbacks.append(callback)
        logger.debug("Subscribed to event: %s", event_type)

    def unsubscribe(self, event_type: str, callback: Subscriber) -> None:
        callbacks = self._subscribers.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)
            logger.debug("Unsubscribed from event: %s", event_type)

    def publish(self, event_type: str, payload: Any) -> None:
        for callback in list(self._subscribers.get(event_type, [])):
            try:
                callback(payload)
            except Exception:
                logger.exception("Subscriber for %s failed", event_type)
