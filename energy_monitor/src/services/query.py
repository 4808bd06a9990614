"""
Query service shaping cache and store data for callers.

Read path for the HTTP API: freshest data comes from the in-process cache,
falling back to the time-series store; historical and monthly views map
range tokens and calendar months onto store queries and apply the usage and
cost rules. Store failures degrade to absent/empty results rather than
propagating to the caller.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING

from energy_monitor.src.errors import StoreUnavailable
from energy_monitor.src.models import Bucket, PanelInfo, PanelStatus, Reading
from energy_monitor.src.services.usage import cost, panel_status, today_usage
from energy_monitor.src.store.ranges import resolve_range

if TYPE_CHECKING:
    from energy_monitor.src.cache.freshness import FreshnessCache
    from energy_monitor.src.store.influx import InfluxStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


# ---------------------------------------------------------------------------
# Result shapes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PanelSnapshot:
    """Latest known state of one panel for the realtime view."""

    panel: PanelInfo
    status: PanelStatus
    last_update: datetime | None
    reading: Reading | None


@dataclass(frozen=True)
class HistoryPoint:
    """One aggregated bucket with its derived cost."""

    bucket: Bucket
    cost: int


@dataclass(frozen=True)
class TodayUsage:
    """Energy used by a panel since UTC midnight."""

    panel_id: str
    date: date
    current_kwh: float
    midnight_kwh: float
    usage_kwh: float
    cost: int


@dataclass(frozen=True)
class PanelMonthlyUsage:
    """Monthly energy and cost for one registry panel."""

    panel: PanelInfo
    total_kwh: float
    total_cost: int


@dataclass(frozen=True)
class MonthlyUsage:
    """Monthly usage for all registry panels plus the building total."""

    year: int
    month: int
    panels: list[PanelMonthlyUsage] = field(default_factory=list)
    total_kwh: float = 0.0
    total_cost: int = 0


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class QueryService:
    """Read-side facade over the freshness cache and time-series store.

    Args:
        store: Time-series store adapter.
        cache: Freshness cache.
        cost_per_kwh: Integer currency units per kWh.
        clock: Callable returning the current time. Defaults to UTC now.
    """

    def __init__(
        self,
        *,
        store: InfluxStore,
        cache: FreshnessCache,
        cost_per_kwh: int,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._cache = cache
        self._rate = cost_per_kwh
        self._clock = clock

    @property
    def cost_per_kwh(self) -> int:
        """Configured currency units per kWh."""
        return self._rate

    def now(self) -> datetime:
        """Current time according to the service clock."""
        return self._clock()

    async def _latest_from_store(self, panel_id: str) -> Reading | None:
        try:
            return await self._store.latest(panel_id, now=self._clock())
        except StoreUnavailable:
            logger.warning("Latest reading query failed for %s", panel_id, exc_info=True)
            return None

    async def snapshot(self, panel: PanelInfo) -> PanelSnapshot:
        """Return the freshest known state of *panel*.

        Uses the cache entry when present, else the store's latest Reading
        (its own timestamp standing in for last_update), else only the
        registry's last_online time.
        """
        entry = self._cache.get(panel.panel_id)
        if entry is not None:
            reading: Reading | None = entry.reading
            last_update = entry.last_update
        else:
            reading = await self._latest_from_store(panel.panel_id)
            last_update = reading.timestamp if reading is not None else panel.last_online

        return PanelSnapshot(
            panel=panel,
            status=panel_status(last_update, self._clock()),
            last_update=last_update,
            reading=reading,
        )

    async def realtime(self, panels: list[PanelInfo]) -> list[PanelSnapshot]:
        """Return snapshots for all *panels*, in the given order."""
        return [await self.snapshot(panel) for panel in panels]

    async def history(self, panel_id: str, range_token: str) -> list[HistoryPoint]:
        """Return aggregated buckets for a panel over a range token.

        Args:
            panel_id: Panel identifier.
            range_token: One of ``1h, 6h, 12h, 24h, 7d, 30d, 1y, 365d``.

        Returns:
            list[HistoryPoint]: Sparse, time-ordered buckets; empty when the
            store is unavailable.

        Raises:
            InvalidRange: If *range_token* is not supported.
        """
        window = resolve_range(range_token)
        try:
            buckets = await self._store.aggregate(
                panel_id,
                window.lookback,
                window.bucket_width,
                now=self._clock(),
            )
        except StoreUnavailable:
            logger.warning("History query failed for %s (%s)", panel_id, range_token, exc_info=True)
            return []

        logger.debug("History query: panel=%s range=%s buckets=%d", panel_id, range_token, len(buckets))
        return [HistoryPoint(bucket=b, cost=cost(b.energy_kwh, self._rate)) for b in buckets]

    async def today(self, panel_id: str) -> TodayUsage:
        """Return today's usage and cost for a panel.

        The current counter comes from the cache, falling back to the store
        when the cache has nothing for the panel. The midnight counter is the
        first sample since UTC midnight. Missing values count as zero.
        """
        now = self._clock()
        current_kwh = 0.0
        entry = self._cache.get(panel_id)
        if entry is not None:
            current_kwh = entry.reading.energy_kwh
        if current_kwh == 0.0:
            latest = await self._latest_from_store(panel_id)
            if latest is not None:
                current_kwh = latest.energy_kwh

        try:
            midnight_kwh = await self._store.midnight_kwh(panel_id, now=now) or 0.0
        except StoreUnavailable:
            logger.warning("Midnight kWh query failed for %s", panel_id, exc_info=True)
            midnight_kwh = 0.0

        usage = today_usage(current_kwh, midnight_kwh)
        return TodayUsage(
            panel_id=panel_id,
            date=now.date(),
            current_kwh=current_kwh,
            midnight_kwh=midnight_kwh,
            usage_kwh=usage,
            cost=cost(usage, self._rate),
        )

    async def monthly(self, year: int, month: int, panels: list[PanelInfo]) -> MonthlyUsage:
        """Return per-panel and building-total usage for a calendar month.

        Registry panels without samples in the month are reported as zero.
        """
        try:
            deltas = await self._store.monthly_deltas(year, month)
        except StoreUnavailable:
            logger.warning("Monthly query failed for %04d-%02d", year, month, exc_info=True)
            deltas = []

        usage_by_panel = {d.panel_id: d.total_kwh for d in deltas}
        rows: list[PanelMonthlyUsage] = []
        total_kwh = 0.0
        for panel in panels:
            kwh = usage_by_panel.get(panel.panel_id, 0.0)
            total_kwh += kwh
            rows.append(
                PanelMonthlyUsage(
                    panel=panel,
                    total_kwh=round(kwh, 2),
                    total_cost=cost(kwh, self._rate),
                )
            )

        return MonthlyUsage(
            year=year,
            month=month,
            panels=rows,
            total_kwh=round(total_kwh, 2),
            total_cost=cost(total_kwh, self._rate),
        )
