"""
Unit tests for the query service.

Tests verify:
- Realtime snapshots prefer the cache, then the store, then the registry.
- ONLINE/OFFLINE follows the 5-minute staleness threshold.
- History maps range tokens onto store aggregation and attaches costs.
- Today's usage and monthly usage apply the usage and cost rules.
- Store outages degrade to empty/zero results.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from energy_monitor.src.cache.freshness import FreshnessCache
from energy_monitor.src.errors import InvalidRange, StoreUnavailable
from energy_monitor.src.models import Bucket, MonthlyDelta, PanelStatus
from energy_monitor.src.services.query import QueryService
from energy_monitor.tests.factories import T0, FakeClock, make_panel, make_reading


@pytest.fixture()
def cache(clock: FakeClock) -> FreshnessCache:
    return FreshnessCache(clock=clock)


@pytest.fixture()
def service(mock_store: AsyncMock, cache: FreshnessCache, clock: FakeClock) -> QueryService:
    return QueryService(store=mock_store, cache=cache, cost_per_kwh=1500, clock=clock)


# ---------------------------------------------------------------------------
# Realtime
# ---------------------------------------------------------------------------


class TestSnapshot:
    """Freshest known state per panel."""

    @pytest.mark.asyncio
    async def test_cache_hit_is_online(
        self, service: QueryService, cache: FreshnessCache, mock_store: AsyncMock
    ) -> None:
        cache.put("PANEL_LANTAI_1", make_reading(energy_kwh=151.0))

        snap = await service.snapshot(make_panel("PANEL_LANTAI_1"))

        assert snap.status is PanelStatus.ONLINE
        assert snap.reading is not None
        assert snap.reading.energy_kwh == 151.0
        assert snap.last_update == T0
        mock_store.latest.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stale_cache_entry_is_offline(
        self, service: QueryService, cache: FreshnessCache, clock: FakeClock
    ) -> None:
        cache.put("PANEL_LANTAI_1", make_reading())
        clock.advance(minutes=5)

        snap = await service.snapshot(make_panel("PANEL_LANTAI_1"))

        assert snap.status is PanelStatus.OFFLINE
        assert snap.reading is not None

    @pytest.mark.asyncio
    async def test_store_fallback_uses_reading_time(
        self, service: QueryService, mock_store: AsyncMock
    ) -> None:
        mock_store.latest.return_value = make_reading(timestamp=T0 - timedelta(minutes=2))

        snap = await service.snapshot(make_panel("PANEL_LANTAI_1"))

        assert snap.status is PanelStatus.ONLINE
        assert snap.last_update == T0 - timedelta(minutes=2)
        mock_store.latest.assert_awaited_once_with("PANEL_LANTAI_1", now=T0)

    @pytest.mark.asyncio
    async def test_registry_last_online_when_no_data(self, service: QueryService) -> None:
        last_online = T0 - timedelta(minutes=10)

        snap = await service.snapshot(make_panel("PANEL_LANTAI_1", last_online=last_online))

        assert snap.status is PanelStatus.OFFLINE
        assert snap.reading is None
        assert snap.last_update == last_online

    @pytest.mark.asyncio
    async def test_store_outage_falls_back_to_registry(
        self, service: QueryService, mock_store: AsyncMock
    ) -> None:
        mock_store.latest.side_effect = StoreUnavailable("down")

        snap = await service.snapshot(make_panel("PANEL_LANTAI_1"))

        assert snap.status is PanelStatus.OFFLINE
        assert snap.reading is None
        assert snap.last_update is None

    @pytest.mark.asyncio
    async def test_realtime_keeps_panel_order(
        self, service: QueryService, cache: FreshnessCache
    ) -> None:
        cache.put("B", make_reading("B"))
        panels = [make_panel("A", 1), make_panel("B", 2), make_panel("C", 3)]

        snaps = await service.realtime(panels)

        assert [s.panel.panel_id for s in snaps] == ["A", "B", "C"]
        assert [s.status for s in snaps] == [
            PanelStatus.OFFLINE,
            PanelStatus.ONLINE,
            PanelStatus.OFFLINE,
        ]

    def test_now_uses_clock(self, service: QueryService, clock: FakeClock) -> None:
        assert service.now() == clock.now


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


class TestHistory:
    """Range token to aggregated buckets."""

    @pytest.mark.asyncio
    async def test_buckets_with_cost(self, service: QueryService, mock_store: AsyncMock) -> None:
        mock_store.aggregate.return_value = [
            Bucket(time=T0 - timedelta(hours=6), energy_kwh=2.0, power_kw=0.5),
            Bucket(time=T0, energy_kwh=3.5, power_kw=0.7),
        ]

        points = await service.history("PANEL_LANTAI_1", "7d")

        assert [p.cost for p in points] == [3000, 5250]
        mock_store.aggregate.assert_awaited_once_with(
            "PANEL_LANTAI_1", timedelta(days=7), timedelta(hours=6), now=T0
        )

    @pytest.mark.asyncio
    async def test_invalid_range_raises(self, service: QueryService, mock_store: AsyncMock) -> None:
        with pytest.raises(InvalidRange):
            await service.history("PANEL_LANTAI_1", "2w")
        mock_store.aggregate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_outage_gives_empty(
        self, service: QueryService, mock_store: AsyncMock
    ) -> None:
        mock_store.aggregate.side_effect = StoreUnavailable("down")
        assert await service.history("PANEL_LANTAI_1", "24h") == []


# ---------------------------------------------------------------------------
# Today
# ---------------------------------------------------------------------------


class TestToday:
    """Usage since UTC midnight."""

    @pytest.mark.asyncio
    async def test_usage_from_cache_and_midnight(
        self, service: QueryService, cache: FreshnessCache, mock_store: AsyncMock
    ) -> None:
        cache.put("PANEL_LANTAI_1", make_reading(energy_kwh=150.0))
        mock_store.midnight_kwh.return_value = 140.0

        usage = await service.today("PANEL_LANTAI_1")

        assert usage.current_kwh == 150.0
        assert usage.midnight_kwh == 140.0
        assert usage.usage_kwh == 10.0
        assert usage.cost == 15000
        assert usage.date == T0.date()
        mock_store.latest.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_current_from_store_when_not_cached(
        self, service: QueryService, mock_store: AsyncMock
    ) -> None:
        mock_store.latest.return_value = make_reading(energy_kwh=130.0)
        mock_store.midnight_kwh.return_value = 125.0

        usage = await service.today("PANEL_LANTAI_1")

        assert usage.current_kwh == 130.0
        assert usage.usage_kwh == 5.0

    @pytest.mark.asyncio
    async def test_counter_reset_is_zero(
        self, service: QueryService, cache: FreshnessCache, mock_store: AsyncMock
    ) -> None:
        cache.put("PANEL_LANTAI_1", make_reading(energy_kwh=3.0))
        mock_store.midnight_kwh.return_value = 140.0

        usage = await service.today("PANEL_LANTAI_1")

        assert usage.usage_kwh == 0.0
        assert usage.cost == 0

    @pytest.mark.asyncio
    async def test_missing_midnight_counts_as_zero(
        self, service: QueryService, cache: FreshnessCache, mock_store: AsyncMock
    ) -> None:
        cache.put("PANEL_LANTAI_1", make_reading(energy_kwh=12.0))
        mock_store.midnight_kwh.side_effect = StoreUnavailable("down")

        usage = await service.today("PANEL_LANTAI_1")

        assert usage.midnight_kwh == 0.0
        assert usage.usage_kwh == 12.0

    @pytest.mark.asyncio
    async def test_unknown_panel_is_zero(self, service: QueryService) -> None:
        usage = await service.today("PANEL_X")

        assert usage.current_kwh == 0.0
        assert usage.usage_kwh == 0.0
        assert usage.cost == 0


# ---------------------------------------------------------------------------
# Monthly
# ---------------------------------------------------------------------------


class TestMonthly:
    """Calendar month usage for all panels."""

    @pytest.mark.asyncio
    async def test_per_panel_and_total(self, service: QueryService, mock_store: AsyncMock) -> None:
        mock_store.monthly_deltas.return_value = [
            MonthlyDelta(panel_id="A", total_kwh=80.5),
            MonthlyDelta(panel_id="B", total_kwh=19.5),
            MonthlyDelta(panel_id="UNREGISTERED", total_kwh=1000.0),
        ]
        panels = [make_panel("A", 1), make_panel("B", 2), make_panel("C", 3)]

        usage = await service.monthly(2026, 3, panels)

        rows = {row.panel.panel_id: row for row in usage.panels}
        assert list(rows) == ["A", "B", "C"]
        assert rows["A"].total_kwh == 80.5
        assert rows["A"].total_cost == 120750
        assert rows["C"].total_kwh == 0.0
        assert rows["C"].total_cost == 0
        assert usage.total_kwh == 100.0
        assert usage.total_cost == 150000
        mock_store.monthly_deltas.assert_awaited_once_with(2026, 3)

    @pytest.mark.asyncio
    async def test_store_outage_gives_zeros(
        self, service: QueryService, mock_store: AsyncMock
    ) -> None:
        mock_store.monthly_deltas.side_effect = StoreUnavailable("down")

        usage = await service.monthly(2026, 3, [make_panel("A", 1)])

        assert usage.panels[0].total_kwh == 0.0
        assert usage.total_kwh == 0.0
        assert usage.total_cost == 0
