"""Retain counts per field id."""

from __future__ import annotations

from collections.abc import Iterable

from cellcache.core.logging import get_logger

__all__ = ["FieldRetentionTracker"]

logger = get_logger(__name__)


class FieldRetentionTracker:
    """Counts how many watchers need each field's values resident.

    Every ``retain`` call adds one unit per id and every ``release`` removes
    one, so N watchers need N releases. Releasing below zero is logged and
    clamped rather than raised.
    """

    def __init__(self, name: str = "fields") -> None:
        self._name = name
        self._counts: dict[str, int] = {}

    def retain(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._counts[key] = self._counts.get(key, 0) + 1

    def release(self, keys: Iterable[str]) -> list[str]:
        """Decrement each key and return the ones whose count is now zero."""
        zeroed: list[str] = []
        for key in keys:
            count = self._counts.get(key, 0) - 1
            if count < 0:
                logger.warning("retention.over_released", tracker=self._name, key=key)
                count = 0
            if count == 0:
                self._counts.pop(key, None)
                zeroed.append(key)
            else:
                self._counts[key] = count
        return zeroed

    def count(self, key: str) -> int:
        return self._counts.get(key, 0)

    def is_retained(self, key: str) -> bool:
        return self.count(key) > 0

    def retained_keys(self) -> list[str]:
        return [key for key, count in self._counts.items() if count > 0]
