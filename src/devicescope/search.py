"""Search and category filtering over a snapshot."""

from collections.abc import Mapping

from devicescope.categories import CategoryIndex
from devicescope.models import AttributeValue, Category, Query, has_value, stringify

POPULAR_TERMS = (
    "battery",
    "memory",
    "screen",
    "cpu",
    "network",
    "storage",
    "device",
    "platform",
    "browser",
    "location",
    "performance",
)
SUGGESTION_LIMIT = 6

FilterResult = list[tuple[Category, list[tuple[str, AttributeValue]]]]


def matches(key: str, value: AttributeValue, text: str) -> bool:
    """Case-insensitive substring test against the key or the stringified value."""
    if not text:
        return True
    needle = text.lower()
    return needle in key.lower() or needle in stringify(value).lower()


class SearchFilterEngine:
    """
    Reduces a snapshot to the categories and attributes matching a query.

    Stateless apart from the read-only category index; ``filter`` is a pure
    function of its arguments.
    """

    def __init__(self, index: CategoryIndex | None = None) -> None:
        self.index = index or CategoryIndex()

    def filter(self, snapshot: Mapping[str, AttributeValue], query: Query) -> FilterResult:
        """
        Apply a query to a snapshot.

        Categories keep their declaration order and attributes keep the
        category's key order. Categories with no match are dropped.
        """
        text = query.text
        result: FilterResult = []
        for category in self.index.eligible(query.category_filter):
            entries = []
            for key in self.index.member_keys(category):
                value = snapshot.get(key)
                if has_value(value) and matches(key, value, text):
                    entries.append((key, value))
            if entries:
                result.append((category, entries))
        return result

    def suggestions(
        self, snapshot: Mapping[str, AttributeValue] | None, text: str, limit: int = SUGGESTION_LIMIT
    ) -> list[str]:
        """Attribute keys containing the text, or popular terms when nothing matches."""
        needle = text.lower()
        if needle and snapshot:
            found = [key for key in snapshot if needle in key.lower()][:limit]
            if found:
                return found
        return list(POPULAR_TERMS[:limit])

    @staticmethod
    def count_results(result: FilterResult) -> int:
        return sum(len(entries) for _, entries in result)


class SearchHistory:
    """Most recent distinct search terms, newest first."""

    def __init__(self, limit: int = 5) -> None:
        self._limit = limit
        self._terms: list[str] = []

    @property
    def terms(self) -> list[str]:
        return list(self._terms)

    def add(self, term: str) -> None:
        term = term.strip()
        if not term:
            return
        self._terms = [term, *(t for t in self._terms if t != term)][: self._limit]

    def clear(self) -> None:
        self._terms.clear()
