"""
Pydantic models for panel telemetry readings and query results.

Defines the Reading model that represents one decoded power-meter sample
for a panel, the CacheEntry wrapper held by the freshness cache, and the
result shapes returned by the time-series store.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

PHASE_COUNT = 4
"""Number of per-phase values in voltage/current (R, S, T, neutral)."""

ZERO_PHASES: tuple[float, ...] = (0.0,) * PHASE_COUNT


class PanelStatus(StrEnum):
    """Online/offline classification of a panel."""

    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"


class Reading(BaseModel):
    """A single decoded telemetry sample from a panel power meter.

    Every Reading produced by the decoder is fully populated; defaults are
    applied at decode time so no partial Reading is ever written or cached.

    Attributes:
        panel_id: Panel identifier, matches the registry panel code.
        voltage: Phase voltages [R, S, T, N] in volts.
        current: Phase currents [R, S, T, N] in amperes.
        power_kw: Instantaneous active power in kW.
        power_kva: Instantaneous apparent power in kVA.
        energy_kwh: Cumulative energy counter in kWh.
        power_factor: Power factor, nominally 0-1 (not validated).
        voltage_unbalance: Voltage unbalance ratio (not validated).
        current_unbalance: Current unbalance ratio (not validated).
        timestamp: Sample time (UTC); ingestion time if the payload had none.
    """

    panel_id: str
    voltage: list[float] = Field(min_length=PHASE_COUNT, max_length=PHASE_COUNT)
    current: list[float] = Field(min_length=PHASE_COUNT, max_length=PHASE_COUNT)
    power_kw: float
    power_kva: float
    energy_kwh: float
    power_factor: float
    voltage_unbalance: float
    current_unbalance: float
    timestamp: datetime


class CacheEntry(BaseModel):
    """Latest Reading for a panel plus the time it was installed in the cache."""

    reading: Reading
    last_update: datetime


class Bucket(BaseModel):
    """Mean energy and power over one aggregation window."""

    time: datetime
    energy_kwh: float
    power_kw: float


class MonthlyDelta(BaseModel):
    """Energy consumed by a panel over a calendar month."""

    panel_id: str
    total_kwh: float


class PanelInfo(BaseModel):
    """Panel metadata as held by the panel registry."""

    panel_id: str
    location: str
    floor: int
    status: PanelStatus = PanelStatus.OFFLINE
    last_online: datetime | None = None
