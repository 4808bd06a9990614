"""
Unit tests for the InfluxDB store adapter.

The async InfluxDB client is replaced by mocks; query results are built from
the library's own FluxTable/FluxRecord types.

Tests verify:
- Readings are written as ``energy_data`` points tagged by ``panelId``.
- Write and query errors surface as StoreUnavailable.
- latest/first/last/aggregate map Flux rows back into domain values.
- Monthly deltas are last - first per panel, clamped at zero, and panels
  with no samples in the month are absent.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from influxdb_client.client.flux_table import FluxRecord, FluxTable

from energy_monitor.src.errors import StoreUnavailable
from energy_monitor.src.store.influx import (
    MEASUREMENT,
    InfluxStore,
    month_window,
    reading_to_point,
)
from energy_monitor.tests.factories import T0, make_reading

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _tables(*rows: dict[str, Any]) -> list[FluxTable]:
    """Return a single FluxTable holding one record per row."""
    table = FluxTable()
    table.records = [FluxRecord(table=0, values=dict(row)) for row in rows]
    return [table]


def _make_store(query_results: list[Any] | None = None) -> tuple[InfluxStore, MagicMock]:
    """Build an InfluxStore over a mocked async client.

    Args:
        query_results: Successive return values of ``query_api.query``.
    """
    client = MagicMock()
    client.write_api.return_value.write = AsyncMock(return_value=True)
    client.query_api.return_value.query = AsyncMock(side_effect=query_results or [[]])
    client.close = AsyncMock()
    client.ping = AsyncMock(return_value=True)
    store = InfluxStore(client, org="ravelware", bucket="energy")
    return store, client


def _query_call(client: MagicMock, index: int = 0) -> tuple[str, dict[str, Any]]:
    call = client.query_api.return_value.query.await_args_list[index]
    return call.args[0], call.kwargs["params"]


# ---------------------------------------------------------------------------
# Point mapping
# ---------------------------------------------------------------------------


class TestReadingToPoint:
    """Reading -> energy_data point."""

    def test_measurement_tag_and_time(self) -> None:
        point = reading_to_point(make_reading("PANEL_LANTAI_1"))

        assert point._name == MEASUREMENT
        assert point._tags == {"panelId": "PANEL_LANTAI_1"}
        assert point._time == T0

    def test_all_fields_present(self) -> None:
        point = reading_to_point(make_reading(energy_kwh=150.0, power_kw=1.2))

        assert point._fields["voltage_r"] == 224.5
        assert point._fields["voltage_n"] == 149.8
        assert point._fields["current_s"] == 3.2
        assert point._fields["powerKW"] == 1.2
        assert point._fields["powerKVA"] == 1.4
        assert point._fields["energyKWh"] == 150.0
        assert point._fields["powerFactor"] == 0.85
        assert point._fields["voltageUnbalance"] == 0.01
        assert point._fields["currentUnbalance"] == 0.05
        assert len(point._fields) == 14


class TestMonthWindow:
    """Calendar month bounds."""

    def test_mid_year(self) -> None:
        assert month_window(2026, 3) == (
            datetime(2026, 3, 1, tzinfo=UTC),
            datetime(2026, 4, 1, tzinfo=UTC),
        )

    def test_december_rolls_over(self) -> None:
        assert month_window(2025, 12) == (
            datetime(2025, 12, 1, tzinfo=UTC),
            datetime(2026, 1, 1, tzinfo=UTC),
        )

    def test_last_representable_month(self) -> None:
        assert month_window(9999, 11)[1] == datetime(9999, 12, 1, tzinfo=UTC)

    @pytest.mark.parametrize(("year", "month"), [(9999, 12), (2026, 13), (0, 1)])
    def test_unrepresentable_month_raises(self, year: int, month: int) -> None:
        with pytest.raises(ValueError):
            month_window(year, month)


# ---------------------------------------------------------------------------
# Write path
# ---------------------------------------------------------------------------


class TestWrite:
    """Appending readings."""

    @pytest.mark.asyncio
    async def test_write_sends_point(self) -> None:
        store, client = _make_store()

        await store.write(make_reading())

        write = client.write_api.return_value.write
        write.assert_awaited_once()
        assert write.await_args.kwargs["bucket"] == "energy"
        assert write.await_args.kwargs["org"] == "ravelware"
        assert write.await_args.kwargs["record"]._name == MEASUREMENT

    @pytest.mark.asyncio
    async def test_write_error_raises_store_unavailable(self) -> None:
        store, client = _make_store()
        client.write_api.return_value.write.side_effect = OSError("connection refused")

        with pytest.raises(StoreUnavailable) as exc_info:
            await store.write(make_reading())

        assert exc_info.value.operation == "write"
        assert isinstance(exc_info.value.__cause__, OSError)


# ---------------------------------------------------------------------------
# Query path
# ---------------------------------------------------------------------------


class TestLatest:
    """Most recent stored reading."""

    @pytest.mark.asyncio
    async def test_no_rows_returns_none(self) -> None:
        store, _client = _make_store([[]])
        assert await store.latest("PANEL_X", now=T0) is None

    @pytest.mark.asyncio
    async def test_pivoted_row_becomes_reading(self) -> None:
        row = {
            "_time": T0 - timedelta(seconds=30),
            "panelId": "PANEL_LANTAI_1",
            "voltage_r": 224.0,
            "voltage_s": 225.0,
            "voltage_t": 226.0,
            "voltage_n": 150.0,
            "current_r": 1.0,
            "current_s": 2.0,
            "current_t": 3.0,
            "current_n": 0.1,
            "powerKW": 1.1,
            "powerKVA": 1.3,
            "energyKWh": 151.5,
            "powerFactor": 0.9,
            "voltageUnbalance": 0.02,
            "currentUnbalance": 0.04,
        }
        store, client = _make_store([_tables(row)])

        reading = await store.latest("PANEL_LANTAI_1", now=T0)

        assert reading is not None
        assert reading.panel_id == "PANEL_LANTAI_1"
        assert reading.voltage == [224.0, 225.0, 226.0, 150.0]
        assert reading.current == [1.0, 2.0, 3.0, 0.1]
        assert reading.energy_kwh == 151.5
        assert reading.timestamp == T0 - timedelta(seconds=30)

        query, params = _query_call(client)
        assert "last()" in query
        assert params["_panel"] == "PANEL_LANTAI_1"
        assert params["_bucket"] == "energy"
        assert params["_start"] == T0 - timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_missing_fields_default_to_zero(self) -> None:
        store, _client = _make_store([_tables({"_time": T0, "energyKWh": 10.0})])

        reading = await store.latest("P", now=T0)

        assert reading is not None
        assert reading.voltage == [0.0, 0.0, 0.0, 0.0]
        assert reading.power_kw == 0.0
        assert reading.energy_kwh == 10.0

    @pytest.mark.asyncio
    async def test_query_error_raises_store_unavailable(self) -> None:
        store, _client = _make_store([RuntimeError("influx down")])

        with pytest.raises(StoreUnavailable) as exc_info:
            await store.latest("P", now=T0)

        assert exc_info.value.operation == "latest"


class TestWindowEdges:
    """First and last energy counter in a window."""

    @pytest.mark.asyncio
    async def test_first_in_window(self) -> None:
        store, client = _make_store([_tables({"_value": 140.25, "_time": T0})])
        start, end = T0 - timedelta(hours=2), T0

        assert await store.first_in_window("P", start, end) == 140.25

        query, params = _query_call(client)
        assert "first()" in query
        assert 'r._field == "energyKWh"' in query
        assert params["_start"] == start
        assert params["_stop"] == end

    @pytest.mark.asyncio
    async def test_last_in_window(self) -> None:
        store, client = _make_store([_tables({"_value": 150.0, "_time": T0})])

        assert await store.last_in_window("P", T0 - timedelta(hours=1), T0) == 150.0

        query, _params = _query_call(client)
        assert "last()" in query

    @pytest.mark.asyncio
    async def test_no_samples_returns_none(self) -> None:
        store, _client = _make_store([[]])
        assert await store.first_in_window("P", T0 - timedelta(hours=1), T0) is None

    @pytest.mark.asyncio
    async def test_midnight_uses_utc_midnight(self) -> None:
        store, client = _make_store([_tables({"_value": 120.0, "_time": T0})])

        assert await store.midnight_kwh("P", now=T0) == 120.0

        _query, params = _query_call(client)
        assert params["_start"] == datetime(2026, 3, 14, 0, 0, 0, tzinfo=UTC)
        assert params["_stop"] == T0


class TestAggregate:
    """Bucketed mean energy/power."""

    @pytest.mark.asyncio
    async def test_buckets_in_order(self) -> None:
        rows = [
            {"_time": T0 - timedelta(hours=12), "energyKWh": 140.0, "powerKW": 0.9},
            {"_time": T0 - timedelta(hours=6), "energyKWh": 145.0, "powerKW": 1.1},
        ]
        store, client = _make_store([_tables(*rows)])

        buckets = await store.aggregate(
            "P", timedelta(days=7), timedelta(hours=6), now=T0
        )

        assert [b.time for b in buckets] == [rows[0]["_time"], rows[1]["_time"]]
        assert buckets[1].energy_kwh == 145.0
        assert buckets[1].power_kw == 1.1

        query, params = _query_call(client)
        assert "every: 21600s" in query
        assert "fn: mean" in query
        assert "createEmpty: false" in query
        assert params["_start"] == T0 - timedelta(days=7)

    @pytest.mark.asyncio
    async def test_empty_range(self) -> None:
        store, _client = _make_store([[]])
        assert await store.aggregate("P", timedelta(hours=1), timedelta(hours=1), now=T0) == []


class TestMonthlyDeltas:
    """Per-panel monthly energy."""

    @pytest.mark.asyncio
    async def test_delta_per_panel(self) -> None:
        first = _tables(
            {"panelId": "A", "_value": 100.0},
            {"panelId": "B", "_value": 50.0},
        )
        last = _tables(
            {"panelId": "A", "_value": 180.5},
            {"panelId": "B", "_value": 70.0},
        )
        store, client = _make_store([first, last])

        deltas = {d.panel_id: d.total_kwh for d in await store.monthly_deltas(2026, 3)}

        assert deltas == {"A": 80.5, "B": 20.0}
        _query, params = _query_call(client, 0)
        assert params["_start"] == datetime(2026, 3, 1, tzinfo=UTC)
        assert params["_stop"] == datetime(2026, 4, 1, tzinfo=UTC)

    @pytest.mark.asyncio
    async def test_counter_reset_clamped_to_zero(self) -> None:
        first = _tables({"panelId": "A", "_value": 100.0})
        last = _tables({"panelId": "A", "_value": 80.0})
        store, _client = _make_store([first, last])

        deltas = await store.monthly_deltas(2026, 3)

        assert len(deltas) == 1
        assert deltas[0].total_kwh == 0.0

    @pytest.mark.asyncio
    async def test_panels_without_samples_absent(self) -> None:
        store, _client = _make_store([[], []])
        assert await store.monthly_deltas(2026, 2) == []


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    """Ping and close."""

    @pytest.mark.asyncio
    async def test_ping_failure_returns_false(self) -> None:
        store, client = _make_store()
        client.ping.side_effect = OSError("unreachable")
        assert await store.ping() is False

    @pytest.mark.asyncio
    async def test_close_closes_client(self) -> None:
        store, client = _make_store()
        await store.close()
        client.close.assert_awaited_once()
