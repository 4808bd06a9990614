"""
In-process freshness cache holding the latest Reading per panel.

Single writer (the ingestion connector's consumer task), any number of
readers. Entries are overwritten on every successfully stored Reading and
never evicted: staleness is derived at read time by comparing
``last_update`` with the shared 5-minute threshold.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

from energy_monitor.src.models import CacheEntry, Reading
from energy_monitor.src.services.usage import is_stale


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class FreshnessCache:
    """Latest-reading cache keyed by panel identifier.

    All operations are plain dict operations on the event loop thread, so
    they never block and never fail.

    Args:
        clock: Callable returning the current time. Defaults to UTC now.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def put(self, panel_id: str, reading: Reading) -> CacheEntry:
        """Install or overwrite the entry for *panel_id* (last write wins).

        Args:
            panel_id: Panel identifier.
            reading: Reading that was just written to the store.

        Returns:
            CacheEntry: The installed entry, stamped with the current time.
        """
        entry = CacheEntry(reading=reading, last_update=self._clock())
        self._entries[panel_id] = entry
        return entry

    def get(self, panel_id: str) -> CacheEntry | None:
        """Return the current entry for *panel_id*, or None if never seen."""
        return self._entries.get(panel_id)

    def entries(self) -> list[CacheEntry]:
        """Return a snapshot of all entries."""
        return list(self._entries.values())

    def is_stale(self, panel_id: str) -> bool:
        """Return True if the panel has no entry or its entry is >= 5 minutes old."""
        entry = self._entries.get(panel_id)
        return is_stale(entry.last_update if entry else None, self._clock())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, panel_id: object) -> bool:
        return panel_id in self._entries
