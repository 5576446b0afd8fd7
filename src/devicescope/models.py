"""Data models for devicescope."""

import json
from collections import deque
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Union

# A plain string, or a structured record such as a per-interface table.
AttributeValue = Union[str, Mapping[str, Any]]

ProviderResult = dict[str, AttributeValue]


def freeze(value: Any) -> Any:
    """Read-only copy of a record, nested mappings and lists included."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    return value


def thaw(value: Any) -> Any:
    """Plain dict/list copy of a frozen record, ready for JSON."""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [thaw(item) for item in value]
    return value


def stringify(value: AttributeValue) -> str:
    """Render an attribute value as text, records as JSON."""
    if isinstance(value, str):
        return value
    return json.dumps(thaw(value), default=str)


def is_attribute_value(value: Any) -> bool:
    return isinstance(value, (str, Mapping))


def has_value(value: AttributeValue | None) -> bool:
    """Return True if the value is worth displaying (not None, not empty)."""
    return bool(value)


@dataclass(slots=True, frozen=True, eq=False)
class Snapshot(Mapping[str, AttributeValue]):
    """
    Immutable, ordered collection of device attributes.

    Compares equal to any mapping with the same items; ``collected_at`` is
    not part of equality.
    """

    attributes: Mapping[str, AttributeValue]
    collected_at: datetime

    def __post_init__(self) -> None:
        for key, value in self.attributes.items():
            if not is_attribute_value(value):
                raise TypeError(
                    f"attribute {key!r} must be str or a mapping, got {type(value).__name__}"
                )
        object.__setattr__(self, "attributes", freeze(self.attributes))

    def __getitem__(self, key: str) -> AttributeValue:
        return self.attributes[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.attributes)

    def __len__(self) -> int:
        return len(self.attributes)

    def __repr__(self) -> str:
        return f"Snapshot({dict(self.attributes)!r}, collected_at={self.collected_at!r})"


@dataclass(slots=True, frozen=True)
class Category:
    """A named, ordered group of attribute keys with display metadata."""

    id: str
    name: str
    icon: str
    color: str
    keys: tuple[str, ...]


@dataclass(slots=True, frozen=True)
class Sample:
    """One synthetic performance measurement."""

    timestamp: datetime
    frame_rate: float  # 0.0 - 60.0
    memory_mb: float  # >= 0.0


@dataclass(slots=True, frozen=True)
class Query:
    """Search text plus a coarse bucket filter."""

    text: str = ""
    category_filter: str = "all"


@dataclass(slots=True, frozen=True)
class AverageMetrics:
    """Window averages and latest values, rounded to one decimal."""

    avg_memory: float = 0.0
    avg_fps: float = 0.0
    current_memory: float = 0.0
    current_fps: float = 0.0


@dataclass(slots=True)
class PerformanceWindow:
    """Bounded FIFO history of samples. Oldest samples are evicted first."""

    capacity: int = 20
    _samples: deque[Sample] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {self.capacity}")
        self._samples = deque(maxlen=self.capacity)

    def push(self, sample: Sample) -> None:
        self._samples.append(sample)

    def clear(self) -> None:
        self._samples.clear()

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[Sample]:
        return iter(self._samples)

    @property
    def samples(self) -> list[Sample]:
        """Samples oldest first."""
        return list(self._samples)

    @property
    def latest(self) -> Sample | None:
        return self._samples[-1] if self._samples else None

    @property
    def average_frame_rate(self) -> float:
        if not self._samples:
            return 0.0
        return sum(s.frame_rate for s in self._samples) / len(self._samples)

    @property
    def average_memory(self) -> float:
        if not self._samples:
            return 0.0
        return sum(s.memory_mb for s in self._samples) / len(self._samples)


class DeviceType(Enum):
    """Form factor of the device."""

    UNKNOWN = "unknown"
    PHONE = "phone"
    TABLET = "tablet"
    DESKTOP = "desktop"
    LAPTOP = "laptop"
    TV = "tv"


class BatteryState(Enum):
    """Charging state reported by the power provider."""

    UNKNOWN = "unknown"
    UNPLUGGED = "unplugged"
    CHARGING = "charging"
    FULL = "full"


class PowerMode(Enum):
    """Power-saving mode of the device."""

    UNKNOWN = "unknown"
    NORMAL = "normal"
    LOW_POWER = "low_power"


class Orientation(Enum):
    """Screen orientation."""

    UNKNOWN = "unknown"
    PORTRAIT_UP = "portrait_up"
    PORTRAIT_DOWN = "portrait_down"
    LANDSCAPE_LEFT = "landscape_left"
    LANDSCAPE_RIGHT = "landscape_right"


class AppState(Enum):
    """Foreground state of the hosting process."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    BACKGROUND = "background"


DISPLAY_TEXT: dict[Enum, str] = {
    DeviceType.UNKNOWN: "Unknown",
    DeviceType.PHONE: "Phone",
    DeviceType.TABLET: "Tablet",
    DeviceType.DESKTOP: "Desktop",
    DeviceType.LAPTOP: "Laptop",
    DeviceType.TV: "TV",
    BatteryState.UNKNOWN: "Unknown",
    BatteryState.UNPLUGGED: "Unplugged",
    BatteryState.CHARGING: "Charging",
    BatteryState.FULL: "Full",
    PowerMode.UNKNOWN: "Unknown",
    PowerMode.NORMAL: "Normal",
    PowerMode.LOW_POWER: "Low Power Mode",
    Orientation.UNKNOWN: "Unknown",
    Orientation.PORTRAIT_UP: "Portrait Up",
    Orientation.PORTRAIT_DOWN: "Portrait Down",
    Orientation.LANDSCAPE_LEFT: "Landscape Left",
    Orientation.LANDSCAPE_RIGHT: "Landscape Right",
    AppState.ACTIVE: "Active",
    AppState.INACTIVE: "Inactive",
    AppState.BACKGROUND: "Background",
}


def display_text(member: Enum) -> str:
    """Get the human-readable label for an enum member."""
    return DISPLAY_TEXT[member]
