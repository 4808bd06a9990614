"""
Panel read endpoints: realtime, history, today usage, monthly usage.

All responses use the ``{"status": "OK", "data": ...}`` envelope expected by
the dashboard. Range tokens are validated here, before reaching the query
service; store outages surface as empty/zero data rather than errors.

Routes:
- GET /v1/panels/realtime
- GET /v1/panels/history/{panel_code}?range=24h
- GET /v1/panels/usage/today/{panel_code}
- GET /v1/panels/usage/monthly/{year}/{month}

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, Query
from pydantic import BaseModel

from energy_monitor.src.api.deps import Queries, Registry, Settings
from energy_monitor.src.models import ZERO_PHASES
from energy_monitor.src.services.query import PanelSnapshot
from energy_monitor.src.store.influx import month_window
from energy_monitor.src.store.ranges import DEFAULT_RANGE, VALID_RANGES

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/panels", tags=["panels"])

_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def _format_time(value: datetime | None) -> str | None:
    return value.strftime(_TIME_FORMAT) if value is not None else None


# ---------------------------------------------------------------------------
# Pydantic response models
# ---------------------------------------------------------------------------


class PanelRealtimeOut(BaseModel):
    """Latest state of one panel in the dashboard wire format."""

    pmCode: str
    location: str
    floor: int
    panelStatus: str
    v: list[float]
    i: list[float]
    kw: str
    kVA: str
    kWh: str
    pf: float
    vunbal: float
    iunbal: float
    time: str | None

    @classmethod
    def from_snapshot(cls, snap: PanelSnapshot) -> "PanelRealtimeOut":
        """Flatten a PanelSnapshot into the dashboard format."""
        r = snap.reading
        return cls(
            pmCode=snap.panel.panel_id,
            location=snap.panel.location,
            floor=snap.panel.floor,
            panelStatus=str(snap.status),
            v=r.voltage if r else list(ZERO_PHASES),
            i=r.current if r else list(ZERO_PHASES),
            kw=str(r.power_kw) if r else "0",
            kVA=str(r.power_kva) if r else "0",
            kWh=str(r.energy_kwh) if r else "0",
            pf=r.power_factor if r else 0.0,
            vunbal=r.voltage_unbalance if r else 0.0,
            iunbal=r.current_unbalance if r else 0.0,
            time=_format_time(snap.last_update),
        )


class HistoryOut(BaseModel):
    """Aggregated history for one panel."""

    pmCode: str
    year: str
    month: str
    date: str
    range: str
    time: list[str]
    energy: list[float]
    power: list[float]
    cost: list[int]
    dataPoints: int


class TodayUsageOut(BaseModel):
    """Today's usage for one panel."""

    panelCode: str
    date: str
    todayUsageKWh: float
    todayCost: int
    currency: str
    currentKWh: float
    midnightKWh: float


class PanelUsageOut(BaseModel):
    """Monthly usage for one panel."""

    panelCode: str
    location: str
    floor: int
    totalKWh: float
    totalCost: int


class BuildingTotalOut(BaseModel):
    """Monthly usage summed over all panels."""

    totalKWh: float
    totalCost: int


class MonthlyUsageOut(BaseModel):
    """Monthly usage for all panels."""

    year: str
    month: str
    panels: list[PanelUsageOut]
    buildingTotal: BuildingTotalOut


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/realtime")
async def realtime(query: Queries, registry: Registry) -> dict:
    """Return the latest reading and ONLINE/OFFLINE status of every panel.

    Cache first, then InfluxDB, then the registry's last_online time.
    """
    panels = await registry.list_panels()
    snapshots = await query.realtime(panels)
    return {
        "status": "OK",
        "data": {
            "panels": [PanelRealtimeOut.from_snapshot(s).model_dump() for s in snapshots],
            "timestamp": _format_time(query.now()),
        },
    }


@router.get("/history/{panel_code}")
async def history(
    query: Queries,
    panel_code: Annotated[str, Path(min_length=1)],
    range_token: Annotated[
        str,
        Query(alias="range", description="One of 1h, 6h, 12h, 24h, 7d, 30d, 1y, 365d."),
    ] = DEFAULT_RANGE,
) -> dict:
    """Return mean energy/power buckets for a panel over a range.

    The year, month and date fields give the current UTC day.

    Returns:
        dict: Envelope with time, energy, power, and cost series.

    Raises:
        HTTPException: 400 for an invalid range token.
    """
    if range_token not in VALID_RANGES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid range. Valid values: {', '.join(VALID_RANGES)}",
        )

    points = await query.history(panel_code, range_token)
    today = query.now()
    body = HistoryOut(
        pmCode=panel_code,
        year=f"{today.year:04d}",
        month=f"{today.month:02d}",
        date=f"{today.day:02d}",
        range=range_token,
        time=[p.bucket.time.isoformat() for p in points],
        energy=[round(p.bucket.energy_kwh, 3) for p in points],
        power=[round(p.bucket.power_kw, 3) for p in points],
        cost=[p.cost for p in points],
        dataPoints=len(points),
    )
    return {"status": "OK", "message": "", "data": body.model_dump()}


@router.get("/usage/today/{panel_code}")
async def usage_today(
    query: Queries,
    settings: Settings,
    panel_code: Annotated[str, Path(min_length=1)],
) -> dict:
    """Return energy used since UTC midnight and its cost."""
    usage = await query.today(panel_code)
    body = TodayUsageOut(
        panelCode=usage.panel_id,
        date=usage.date.isoformat(),
        todayUsageKWh=round(usage.usage_kwh, 2),
        todayCost=usage.cost,
        currency=settings.currency,
        currentKWh=round(usage.current_kwh, 2),
        midnightKWh=round(usage.midnight_kwh, 2),
    )
    return {"status": "OK", "data": body.model_dump()}


@router.get("/usage/monthly/{year}/{month}")
async def usage_monthly(
    query: Queries,
    registry: Registry,
    year: str,
    month: str,
) -> dict:
    """Return per-panel and building-total usage for a calendar month.

    Returns:
        dict: Envelope with per-panel usage and the building total.

    Raises:
        HTTPException: 400 for a non-numeric year or month, or a month whose
            UTC window cannot be represented.
    """
    try:
        year_num = int(year)
        month_num = int(month)
        month_window(year_num, month_num)
    except (ValueError, OverflowError):
        raise HTTPException(status_code=400, detail="Invalid year or month") from None

    panels = await registry.list_panels()
    usage = await query.monthly(year_num, month_num, panels)
    body = MonthlyUsageOut(
        year=f"{usage.year:04d}",
        month=f"{usage.month:02d}",
        panels=[
            PanelUsageOut(
                panelCode=row.panel.panel_id,
                location=row.panel.location,
                floor=row.panel.floor,
                totalKWh=row.total_kwh,
                totalCost=row.total_cost,
            )
            for row in usage.panels
        ],
        buildingTotal=BuildingTotalOut(totalKWh=usage.total_kwh, totalCost=usage.total_cost),
    )
    return {"status": "OK", "data": body.model_dump()}
