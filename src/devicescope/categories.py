"""Static classification of attribute keys into display categories."""

import logging
from collections.abc import Iterable, Iterator, Mapping

from devicescope.models import AttributeValue, Category, has_value

logger = logging.getLogger(__name__)

ALL = "all"

DEFAULT_CATEGORIES = (
    Category(
        id="basic",
        name="Basic Information",
        icon="information-circle",
        color="#3B82F6",
        keys=(
            "Device Name",
            "Device Type",
            "Brand",
            "Manufacturer",
            "Model Name",
            "Platform",
            "Platform Version",
            "Is Device",
        ),
    ),
    Category(
        id="hardware",
        name="Hardware Information",
        icon="hardware-chip",
        color="#8B5CF6",
        keys=(
            "Model ID",
            "Product Name",
            "Total Memory",
            "Supported CPU Architectures",
            "CPU Cores",
            "Logical CPUs",
            "CPU Frequency",
            "Device Error",
        ),
    ),
    Category(
        id="display",
        name="Display & Screen",
        icon="phone-portrait",
        color="#10B981",
        keys=(
            "Screen Width",
            "Screen Height",
            "Terminal Type",
            "Color Support",
            "Screen Orientation",
            "Display Error",
        ),
    ),
    Category(
        id="network",
        name="Network Information",
        icon="wifi",
        color="#3B82F6",
        keys=(
            "Connection Type",
            "Is Connected",
            "Is Internet Reachable",
            "Network Interfaces",
            "Network Error",
        ),
    ),
    Category(
        id="power",
        name="Power & Battery",
        icon="battery-charging",
        color="#F59E0B",
        keys=("Battery Level", "Battery State", "Power Mode", "Time Remaining", "Battery Error"),
    ),
    Category(
        id="application",
        name="Application Information",
        icon="apps",
        color="#EF4444",
        keys=(
            "App Name",
            "App Version",
            "App ID",
            "App State",
            "Process ID",
            "Start Time",
            "Runtime Environment",
            "Application Error",
        ),
    ),
    Category(
        id="system",
        name="System Information",
        icon="settings",
        color="#6366F1",
        keys=(
            "Operating System",
            "Kernel",
            "Architecture",
            "Session ID",
            "Device Language",
            "Available Memory",
            "Boot Time",
            "System Error",
            "Error",
            "Error Message",
        ),
    ),
    Category(
        id="performance",
        name="Performance & Optimization",
        icon="speedometer",
        color="#8B5CF6",
        keys=(
            "CPU Usage",
            "Load Average",
            "Memory Usage",
            "Swap Usage",
            "Process Count",
            "Uptime",
            "Performance Error",
        ),
    ),
    Category(
        id="location",
        name="Location Information",
        icon="location",
        color="#14B8A6",
        keys=(
            "Latitude",
            "Longitude",
            "Accuracy",
            "Altitude",
            "Heading",
            "Speed",
            "Location",
            "Location Error",
        ),
    ),
)

# Coarse filter buckets offered by the search UI; "all" is the identity filter.
DEFAULT_BUCKETS: dict[str, tuple[str, ...]] = {
    "hardware": ("hardware", "performance"),
    "software": ("application", "system"),
    "network": ("network",),
    "battery": ("power",),
    "display": ("display",),
}


class CategoryIndex:
    """Read-only catalog of categories and filter buckets."""

    def __init__(
        self,
        categories: Iterable[Category] = DEFAULT_CATEGORIES,
        buckets: Mapping[str, Iterable[str]] = DEFAULT_BUCKETS,
    ) -> None:
        self._categories = tuple(categories)
        self._by_id = {c.id: c for c in self._categories}
        if len(self._by_id) != len(self._categories):
            raise ValueError("category ids must be unique")

        self._buckets = {name: tuple(ids) for name, ids in buckets.items()}
        for name, ids in self._buckets.items():
            missing = [i for i in ids if i not in self._by_id]
            if missing:
                raise ValueError(f"bucket {name!r} names unknown categories: {missing}")

        # First category to claim a key owns it
        self._owner: dict[str, Category] = {}
        for category in self._categories:
            for key in category.keys:
                self._owner.setdefault(key, category)

    def __iter__(self) -> Iterator[Category]:
        return iter(self._categories)

    def __len__(self) -> int:
        return len(self._categories)

    @property
    def buckets(self) -> list[str]:
        """Bucket names, ``all`` first."""
        return [ALL, *self._buckets]

    def get(self, category_id: str) -> Category:
        return self._by_id[category_id]

    def category_for(self, key: str) -> Category | None:
        return self._owner.get(key)

    def member_keys(self, category: Category) -> list[str]:
        """Keys the category owns, in declared order."""
        return [key for key in category.keys if self._owner[key] is category]

    def eligible(self, bucket: str) -> list[Category]:
        """Categories admitted by a bucket filter, in declaration order."""
        if bucket == ALL:
            return list(self._categories)
        ids = self._buckets.get(bucket)
        if ids is None:
            logger.debug("Unknown bucket filter %r matches no categories", bucket)
            return []
        return [c for c in self._categories if c.id in ids]

    def categories_containing(
        self, snapshot: Mapping[str, AttributeValue]
    ) -> list[tuple[Category, list[str]]]:
        """Categories with at least one non-empty attribute in the snapshot."""
        result = []
        for category in self._categories:
            matched = [k for k in self.member_keys(category) if has_value(snapshot.get(k))]
            if matched:
                result.append((category, matched))
        return result
