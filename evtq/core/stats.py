"""
StatisticsTable — Per-provenance event counters

Counts events by "<provider>-<eventId>-<version>" key. increment() is called
from every delivery thread, so all mutation happens under one lock.
"""

import threading
from typing import Dict, List, Tuple, Union

from .record import MetadataKey


class StatisticsTable:
    """Thread-safe counter keyed by metadata key."""

    def __init__(self):
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {}

    def increment(self, key: Union[MetadataKey, str], amount: int = 1) -> None:
        name = str(key)
        with self._lock:
            self._counts[name] = self._counts.get(name, 0) + amount

    def count(self, key: Union[MetadataKey, str]) -> int:
        with self._lock:
            return self._counts.get(str(key), 0)

    def total(self) -> int:
        with self._lock:
            return sum(self._counts.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._counts)

    def report(self) -> List[Tuple[str, int]]:
        """
        Snapshot of (key, count) pairs, highest count first.

        Ties are broken by key, descending.
        """
        with self._lock:
            items = list(self._counts.items())
        return sorted(items, key=lambda item: (item[1], item[0]), reverse=True)

    def format_report(self) -> List[str]:
        """Aligned "count  key" lines followed by a total line."""
        rows = self.report()
        total = sum(count for _, count in rows)
        width = max([len(str(total))] + [len(str(count)) for _, count in rows])

        lines = [f"{count:>{width}}  {key}" for key, count in rows]
        lines.append(f"{total:>{width}}  total ({len(rows)} distinct events)")
        return lines
