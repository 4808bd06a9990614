"""
Panel telemetry simulator for local testing.

Publishes a telemetry envelope for three simulated power panels every few
seconds to ``DATA/PM/<panel>`` so the monitor can be exercised without real
power meters. Current and power follow a simple time-of-day profile and each
panel's kWh counter accumulates monotonically.

Usage:
    python scripts/simulate_panels.py
    python scripts/simulate_panels.py --broker mqtt://localhost:1883 --interval 5

CHANGELOG:
- 2026-10-19: Initial creation
"""

from __future__ import annotations

import argparse
import json
import os
import random
import sys
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from urllib.parse import urlparse

import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion

# ---------------------------------------------------------------------------
# Simulated panels
# ---------------------------------------------------------------------------

TOPIC_PREFIX = "DATA/PM"


@dataclass
class SimPanel:
    """Base values for one simulated panel."""

    code: str
    voltage: tuple[float, float, float, float]
    current: tuple[float, float, float, float]
    kw: float
    kva: float
    kwh: float  # accumulating counter
    pf: float

    @property
    def topic(self) -> str:
        return f"{TOPIC_PREFIX}/{self.code}"


PANELS: list[SimPanel] = [
    SimPanel("PANEL_LANTAI_1", (224.5, 224.5, 224.5, 149.8), (2.5, 3.2, 1.8, 0.1), 1.2, 1.4, 150.0, 0.85),
    SimPanel("PANEL_LANTAI_2", (223.8, 223.8, 223.8, 148.5), (1.8, 2.1, 1.5, 0.08), 0.9, 1.1, 120.0, 0.82),
    SimPanel("PANEL_LANTAI_3", (225.2, 225.2, 225.2, 150.2), (1.2, 1.5, 0.9, 0.05), 0.6, 0.75, 80.0, 0.80),
]


def vary(value: float, percentage: float = 5.0) -> float:
    """Return *value* with uniform +/- *percentage* % noise."""
    spread = value * percentage / 100.0
    return value + random.uniform(-spread, spread)


def usage_multiplier(hour: int) -> float:
    """Load factor for a given hour of day (office profile)."""
    if 8 <= hour < 12:
        return 1.5
    if 12 <= hour < 14:
        return 1.2
    if 14 <= hour < 18:
        return 1.4
    return 0.3


def build_payload(panel: SimPanel, *, now: datetime, interval_s: float) -> dict:
    """Generate one telemetry envelope and advance the panel's kWh counter."""
    factor = usage_multiplier(now.hour)
    kw = round(vary(panel.kw, 15) * factor, 2)
    kva = round(vary(panel.kva, 15) * factor, 2)
    panel.kwh += kw / 3600.0 * interval_s

    return {
        "status": "OK",
        "data": {
            "v": [round(vary(v, 2), 1) for v in panel.voltage],
            "i": [round(vary(c, 10) * factor, 2) for c in panel.current],
            "kw": str(kw),
            "kVA": str(kva),
            "kWh": f"{panel.kwh:.2f}",
            "pf": round(vary(panel.pf, 5), 2),
            "vunbal": round(random.uniform(0, 0.02), 3),
            "iunbal": round(random.uniform(0, 0.1), 3),
            "time": now.strftime("%Y-%m-%d %H:%M:%S"),
        },
    }


# ---------------------------------------------------------------------------
# Publisher
# ---------------------------------------------------------------------------


def run(*, broker_url: str, interval_s: float, qos: int) -> None:
    """Connect to the broker and publish until interrupted."""
    parsed = urlparse(broker_url)
    host = parsed.hostname or "localhost"
    port = parsed.port or (8883 if parsed.scheme in ("mqtts", "ssl") else 1883)

    client = mqtt.Client(
        callback_api_version=CallbackAPIVersion.VERSION2,
        client_id=f"simulator-{int(time.time() * 1000)}",
        clean_session=True,
    )
    if parsed.scheme in ("mqtts", "ssl"):
        client.tls_set()
    if parsed.username:
        client.username_pw_set(parsed.username, parsed.password)

    print(f"Connecting to broker: {host}:{port}")
    try:
        client.connect(host, port)
    except OSError as exc:
        print(f"MQTT connection error: {exc}", file=sys.stderr)
        sys.exit(1)
    client.loop_start()

    print("Publishing to:")
    for panel in PANELS:
        print(f"  {panel.topic}")
    print("Press Ctrl+C to stop\n")

    try:
        while True:
            now = datetime.now(tz=UTC)
            for panel in PANELS:
                payload = build_payload(panel, now=now, interval_s=interval_s)
                info = client.publish(panel.topic, json.dumps(payload), qos=qos)
                if info.rc != mqtt.MQTT_ERR_SUCCESS:
                    print(f"Error publishing to {panel.topic}: rc={info.rc}", file=sys.stderr)
                    continue
                data = payload["data"]
                print(f"{now:%H:%M:%S} | {panel.code} | kW: {data['kw']} | kWh: {data['kWh']}")
            time.sleep(interval_s)
    except KeyboardInterrupt:
        print("\nStopping simulator...")
    finally:
        client.disconnect()
        client.loop_stop()


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    p = argparse.ArgumentParser(description="Publish simulated panel telemetry over MQTT")
    p.add_argument(
        "--broker",
        default=os.environ.get("MQTT_BROKER_URL", "mqtt://localhost:1883"),
        help="Broker URL (default: $MQTT_BROKER_URL or mqtt://localhost:1883)",
    )
    p.add_argument("--interval", type=float, default=5.0, help="Seconds between rounds (default 5)")
    p.add_argument("--qos", type=int, choices=(0, 1, 2), default=1, help="Publish QoS (default 1)")
    return p.parse_args()


def main() -> None:
    """Synchronous entrypoint."""
    args = parse_args()
    run(broker_url=args.broker, interval_s=args.interval, qos=args.qos)


if __name__ == "__main__":
    main()
