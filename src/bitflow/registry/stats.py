"""Statistics counters: monotonic counts of lifecycle events."""

from __future__ import annotations

from bitflow.models.tag import StatKey


class StatisticsCounters:
    """Counters keyed by StatKey. Each starts at zero and only increments,
    except when an uncommitted call is rolled back.
    """

    def __init__(self) -> None:
        self._counts: dict[StatKey, int] = {}

    def increment(self, key: StatKey) -> int:
        value = self._counts.get(key, 0) + 1
        self._counts[key] = value
        return value

    def rollback(self, key: StatKey, previous: int) -> None:
        self._counts[key] = previous

    def get(self, key: str) -> int:
        """Counter value for a key name. Unknown keys read as zero."""
        try:
            return self._counts.get(StatKey(key), 0)
        except ValueError:
            return 0

    def snapshot(self) -> dict[str, int]:
        return {k.value: self._counts.get(k, 0) for k in StatKey}

    def restore(self, counts: dict[str, int]) -> None:
        restored: dict[StatKey, int] = {}
        for name, value in counts.items():
            if value < 0:
                raise ValueError(f"Counter {name} cannot be negative: {value}")
            restored[StatKey(name)] = value
        self._counts = restored
