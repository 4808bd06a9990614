"""
InfluxDB time-series store adapter for panel Readings.

Owns all interaction with InfluxDB. Readings are written as immutable
``energy_data`` points tagged by ``panelId``; range queries are expressed in
Flux with the panel id, bucket and window bounds passed as query parameters.

Writes raise :class:`StoreUnavailable` on any backend or transport error so
the ingestion connector can drop the message. Queries raise the same
exception; the query service turns it into absent/empty results.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from influxdb_client import Point, WritePrecision
from influxdb_client.client.influxdb_client_async import InfluxDBClientAsync

from energy_monitor.src.errors import StoreUnavailable
from energy_monitor.src.models import Bucket, MonthlyDelta, Reading
from energy_monitor.src.store.ranges import flux_duration

if TYPE_CHECKING:
    from energy_monitor.src.config import MonitorSettings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

MEASUREMENT = "energy_data"
PANEL_TAG = "panelId"
ENERGY_FIELD = "energyKWh"
POWER_FIELD = "powerKW"

_PHASES = ("r", "s", "t", "n")

_SCALAR_FIELDS: dict[str, str] = {
    "powerKW": "power_kw",
    "powerKVA": "power_kva",
    "energyKWh": "energy_kwh",
    "powerFactor": "power_factor",
    "voltageUnbalance": "voltage_unbalance",
    "currentUnbalance": "current_unbalance",
}
"""Maps InfluxDB field name -> Reading attribute."""

LATEST_LOOKBACK = timedelta(hours=1)
"""How far back :meth:`InfluxStore.latest` looks for a Reading."""


# ---------------------------------------------------------------------------
# Flux queries
# ---------------------------------------------------------------------------

_LATEST_QUERY = f"""
from(bucket: _bucket)
  |> range(start: _start)
  |> filter(fn: (r) => r._measurement == "{MEASUREMENT}")
  |> filter(fn: (r) => r.{PANEL_TAG} == _panel)
  |> last()
  |> pivot(rowKey: ["_time"], columnKey: ["_field"], valueColumn: "_value")
"""

_ENERGY_EDGE_QUERY = f"""
from(bucket: _bucket)
  |> range(start: _start, stop: _stop)
  |> filter(fn: (r) => r._measurement == "{MEASUREMENT}")
  |> filter(fn: (r) => r.{PANEL_TAG} == _panel)
  |> filter(fn: (r) => r._field == "{ENERGY_FIELD}")
  |> {{selector}}()
"""

_AGGREGATE_QUERY = f"""
from(bucket: _bucket)
  |> range(start: _start)
  |> filter(fn: (r) => r._measurement == "{MEASUREMENT}")
  |> filter(fn: (r) => r.{PANEL_TAG} == _panel)
  |> filter(fn: (r) => r._field == "{ENERGY_FIELD}" or r._field == "{POWER_FIELD}")
  |> aggregateWindow(every: {{every}}, fn: mean, createEmpty: false)
  |> pivot(rowKey: ["_time"], columnKey: ["_field"], valueColumn: "_value")
  |> sort(columns: ["_time"])
"""

_MONTHLY_EDGE_QUERY = f"""
from(bucket: _bucket)
  |> range(start: _start, stop: _stop)
  |> filter(fn: (r) => r._measurement == "{MEASUREMENT}")
  |> filter(fn: (r) => r._field == "{ENERGY_FIELD}")
  |> group(columns: ["{PANEL_TAG}"])
  |> {{selector}}()
"""


def month_window(year: int, month: int) -> tuple[datetime, datetime]:
    """Return the UTC ``[start, stop)`` bounds of a calendar month.

    Args:
        year: Calendar year.
        month: Month number 1-12.

    Returns:
        tuple: First instant of the month and first instant of the next month.

    Raises:
        ValueError: If the month or either bound is outside the datetime
            range (December 9999 has no representable end).
        OverflowError: If the year does not fit a C integer.
    """
    start = datetime(year, month, 1, tzinfo=UTC)
    if month == 12:
        stop = datetime(year + 1, 1, 1, tzinfo=UTC)
    else:
        stop = datetime(year, month + 1, 1, tzinfo=UTC)
    return start, stop


def reading_to_point(reading: Reading) -> Point:
    """Build the InfluxDB point for a Reading."""
    point = Point(MEASUREMENT).tag(PANEL_TAG, reading.panel_id)
    for phase, value in zip(_PHASES, reading.voltage, strict=True):
        point = point.field(f"voltage_{phase}", float(value))
    for phase, value in zip(_PHASES, reading.current, strict=True):
        point = point.field(f"current_{phase}", float(value))
    for field_name, attr in _SCALAR_FIELDS.items():
        point = point.field(field_name, float(getattr(reading, attr)))
    return point.time(reading.timestamp, WritePrecision.NS)


def _num(values: dict[str, Any], key: str) -> float:
    value = values.get(key)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return 0.0


def _row_to_reading(panel_id: str, values: dict[str, Any]) -> Reading:
    """Rebuild a Reading from a pivoted ``energy_data`` row."""
    return Reading(
        panel_id=panel_id,
        voltage=[_num(values, f"voltage_{p}") for p in _PHASES],
        current=[_num(values, f"current_{p}") for p in _PHASES],
        timestamp=values["_time"],
        **{attr: _num(values, name) for name, attr in _SCALAR_FIELDS.items()},
    )


def _records(tables: Any) -> list[Any]:
    return [record for table in tables for record in table.records]


# ---------------------------------------------------------------------------
# Store adapter
# ---------------------------------------------------------------------------


class InfluxStore:
    """Async InfluxDB adapter for writing and querying panel Readings.

    Args:
        client: An ``InfluxDBClientAsync`` instance.
        org: InfluxDB organisation.
        bucket: Bucket holding ``energy_data`` points.
    """

    def __init__(self, client: InfluxDBClientAsync, *, org: str, bucket: str) -> None:
        self._client = client
        self._org = org
        self._bucket = bucket
        self._write_api = client.write_api()
        self._query_api = client.query_api()

    @classmethod
    def from_settings(cls, settings: MonitorSettings) -> InfluxStore:
        """Create a store with a new async client from service settings."""
        client = InfluxDBClientAsync(
            url=settings.influx_url,
            token=settings.influx_token,
            org=settings.influx_org,
        )
        return cls(client, org=settings.influx_org, bucket=settings.influx_bucket)

    # -- Write path --------------------------------------------------------

    async def write(self, reading: Reading) -> None:
        """Append a Reading as an immutable point.

        Args:
            reading: Fully populated Reading.

        Raises:
            StoreUnavailable: If InfluxDB rejects the write or is unreachable.
        """
        point = reading_to_point(reading)
        try:
            await self._write_api.write(bucket=self._bucket, org=self._org, record=point)
        except Exception as exc:
            raise StoreUnavailable(
                f"Failed to write reading for {reading.panel_id}: {exc}",
                operation="write",
            ) from exc

    # -- Query path --------------------------------------------------------

    async def _query(self, query: str, operation: str, **params: Any) -> list[Any]:
        try:
            tables = await self._query_api.query(
                query,
                org=self._org,
                params={"_bucket": self._bucket, **params},
            )
        except Exception as exc:
            raise StoreUnavailable(
                f"InfluxDB {operation} query failed: {exc}",
                operation=operation,
            ) from exc
        return _records(tables)

    async def latest(
        self,
        panel_id: str,
        *,
        now: datetime | None = None,
        lookback: timedelta = LATEST_LOOKBACK,
    ) -> Reading | None:
        """Return the most recent stored Reading within *lookback*, or None."""
        now = now or datetime.now(tz=UTC)
        records = await self._query(
            _LATEST_QUERY,
            "latest",
            _panel=panel_id,
            _start=now - lookback,
        )
        if not records:
            return None
        return _row_to_reading(panel_id, records[-1].values)

    async def _energy_edge(
        self,
        selector: str,
        panel_id: str,
        start: datetime,
        end: datetime,
    ) -> float | None:
        records = await self._query(
            _ENERGY_EDGE_QUERY.format(selector=selector),
            selector,
            _panel=panel_id,
            _start=start,
            _stop=end,
        )
        if not records:
            return None
        value = records[0].get_value()
        return float(value) if value is not None else None

    async def first_in_window(
        self, panel_id: str, start: datetime, end: datetime
    ) -> float | None:
        """Return the earliest ``energy_kwh`` sample in ``[start, end)``, or None."""
        return await self._energy_edge("first", panel_id, start, end)

    async def last_in_window(
        self, panel_id: str, start: datetime, end: datetime
    ) -> float | None:
        """Return the latest ``energy_kwh`` sample in ``[start, end)``, or None."""
        return await self._energy_edge("last", panel_id, start, end)

    async def midnight_kwh(self, panel_id: str, *, now: datetime | None = None) -> float | None:
        """Return the first energy counter value since UTC midnight, or None."""
        now = now or datetime.now(tz=UTC)
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return await self.first_in_window(panel_id, midnight, now)

    async def aggregate(
        self,
        panel_id: str,
        lookback: timedelta,
        bucket_width: timedelta,
        *,
        now: datetime | None = None,
    ) -> list[Bucket]:
        """Return mean energy/power buckets covering *lookback*.

        Windows without samples produce no bucket; the result is sparse and
        ordered by time.

        Args:
            panel_id: Panel identifier.
            lookback: How far back from *now* to query.
            bucket_width: Aggregation window width.
            now: Query reference time. Defaults to UTC now.

        Returns:
            list[Bucket]: One bucket per non-empty window.
        """
        now = now or datetime.now(tz=UTC)
        records = await self._query(
            _AGGREGATE_QUERY.format(every=flux_duration(bucket_width)),
            "aggregate",
            _panel=panel_id,
            _start=now - lookback,
        )
        return [
            Bucket(
                time=record.values["_time"],
                energy_kwh=_num(record.values, ENERGY_FIELD),
                power_kw=_num(record.values, POWER_FIELD),
            )
            for record in records
        ]

    async def monthly_deltas(self, year: int, month: int) -> list[MonthlyDelta]:
        """Return per-panel energy used over a calendar month.

        ``total_kwh = max(0, last - first)`` computed independently for each
        panel, so counter resets never produce negative usage. Panels with no
        samples in the month are absent from the result.

        Args:
            year: Calendar year.
            month: Month number 1-12.

        Returns:
            list[MonthlyDelta]: One entry per panel with samples.
        """
        start, stop = month_window(year, month)
        first_rows = await self._query(
            _MONTHLY_EDGE_QUERY.format(selector="first"),
            "monthly_first",
            _start=start,
            _stop=stop,
        )
        last_rows = await self._query(
            _MONTHLY_EDGE_QUERY.format(selector="last"),
            "monthly_last",
            _start=start,
            _stop=stop,
        )

        first: dict[str, float] = {}
        last: dict[str, float] = {}
        for record in first_rows:
            first[record.values[PANEL_TAG]] = _num(record.values, "_value")
        for record in last_rows:
            last[record.values[PANEL_TAG]] = _num(record.values, "_value")

        return [
            MonthlyDelta(panel_id=panel_id, total_kwh=max(0.0, last[panel_id] - first_kwh))
            for panel_id, first_kwh in first.items()
            if panel_id in last
        ]

    # -- Lifecycle ---------------------------------------------------------

    async def ping(self) -> bool:
        """Return True if InfluxDB answers a ping."""
        try:
            return await self._client.ping()
        except Exception:
            logger.warning("InfluxDB ping failed", exc_info=True)
            return False

    async def close(self) -> None:
        """Close the client, releasing its HTTP session."""
        await self._client.close()
        logger.info("InfluxDB client closed")
