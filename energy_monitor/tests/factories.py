"""
Builders for test data shared across the energy monitor tests.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

from energy_monitor.src.models import PanelInfo, Reading

T0 = datetime(2026, 3, 14, 10, 0, 0, tzinfo=UTC)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_reading(
    panel_id: str = "PANEL_LANTAI_1",
    *,
    energy_kwh: float = 150.0,
    power_kw: float = 1.2,
    timestamp: datetime = T0,
) -> Reading:
    """Return a fully populated Reading."""
    return Reading(
        panel_id=panel_id,
        voltage=[224.5, 224.5, 224.5, 149.8],
        current=[2.5, 3.2, 1.8, 0.1],
        power_kw=power_kw,
        power_kva=1.4,
        energy_kwh=energy_kwh,
        power_factor=0.85,
        voltage_unbalance=0.01,
        current_unbalance=0.05,
        timestamp=timestamp,
    )


def make_payload(**data_overrides: object) -> bytes:
    """Return a valid ``{"status": "OK", "data": {...}}`` message body."""
    data: dict[str, object] = {
        "v": [224.5, 224.5, 224.5, 149.8],
        "i": [2.5, 3.2, 1.8, 0.1],
        "kw": "1.2",
        "kVA": "1.4",
        "kWh": "150.00",
        "pf": 0.85,
        "vunbal": 0.01,
        "iunbal": 0.05,
        "time": "2026-03-14 10:00:00",
    }
    data.update(data_overrides)
    return json.dumps({"status": "OK", "data": data}).encode("utf-8")


def make_panel(panel_id: str = "PANEL_LANTAI_1", floor: int = 1, **kwargs: object) -> PanelInfo:
    """Return registry metadata for a panel."""
    return PanelInfo(panel_id=panel_id, location=f"Lantai {floor}", floor=floor, **kwargs)
