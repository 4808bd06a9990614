"""
Usage, cost, and online/offline derivations.

Pure functions with no I/O. The clock is passed in by the caller so the
5-minute staleness boundary can be tested exactly.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta

from energy_monitor.src.models import PanelStatus

STALENESS_THRESHOLD = timedelta(minutes=5)
"""Age after which a panel without new data is OFFLINE.

Shared by the freshness cache staleness check and status classification.
"""


def today_usage(current_kwh: float, midnight_kwh: float) -> float:
    """Return energy used since midnight, rounded to 2 decimals.

    Counter resets or decreases are clamped to zero rather than reported as
    negative usage.

    Args:
        current_kwh: Latest cumulative energy counter.
        midnight_kwh: First counter value recorded today.

    Returns:
        float: Non-negative usage in kWh.
    """
    return max(0.0, round(current_kwh - midnight_kwh, 2))


def cost(kwh: float, rate_per_unit: int) -> int:
    """Return the cost of *kwh* at *rate_per_unit* currency units per kWh.

    Args:
        kwh: Energy in kWh.
        rate_per_unit: Integer currency units per kWh.

    Returns:
        int: Cost rounded half-up to the nearest whole currency unit.
    """
    return math.floor(kwh * rate_per_unit + 0.5)


def is_stale(last_update: datetime | None, now: datetime) -> bool:
    """Return True if *last_update* is absent or at least 5 minutes old."""
    if last_update is None:
        return True
    return now - last_update >= STALENESS_THRESHOLD


def panel_status(last_update: datetime | None, now: datetime) -> PanelStatus:
    """Classify a panel as ONLINE or OFFLINE from its last update time.

    Args:
        last_update: Time of the most recent data, or None if never seen.
        now: Current time.

    Returns:
        PanelStatus: OFFLINE when stale, ONLINE otherwise.
    """
    return PanelStatus.OFFLINE if is_stale(last_update, now) else PanelStatus.ONLINE
