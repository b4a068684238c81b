"""Bounded key/value context for the autonomous decision agent."""

import logging
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 50
HINTED_LIMIT = 10
UNHINTED_LIMIT = 20
RELEVANT_MARKERS = ("last_", "error", "result")


class BoundedExecutionContext:
    """Insertion-ordered cache with FIFO eviction.

    Updating an existing key replaces its value without changing its
    position, so eviction order is insertion order only.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._entries: dict[str, Any] = {}

    def update(self, key: str, value: Any) -> None:
        if key not in self._entries and len(self._entries) >= self.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.debug(f"Evicted context entry: {oldest}")
        self._entries[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self._entries.get(key, default)

    def relevant_context(self, tool_name_hint: str | None = None) -> dict[str, Any]:
        """Select the entries worth showing to the model.

        Args:
            tool_name_hint: When given, only keys containing the hint or one
                of the markers "last_", "error", "result" are considered

        Returns:
            The most recent matching entries, oldest first
        """
        items = list(self._entries.items())
        if tool_name_hint:
            matching = [
                (key, value)
                for key, value in items
                if tool_name_hint in key
                or any(marker in key for marker in RELEVANT_MARKERS)
            ]
            return dict(matching[-HINTED_LIMIT:])
        return dict(items[-UNHINTED_LIMIT:])

    def keys(self) -> list[str]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
