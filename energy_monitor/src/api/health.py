"""
Health check endpoint.

Returns ``{"status": "ok", "mqtt": <connector state>, "influx": "ok"}`` with
HTTP 200 as long as the process is serving. Intended for Docker HEALTHCHECK
and internal monitoring; a GIVEN_UP connector or an unreachable InfluxDB is
visible here without failing the check.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from fastapi import APIRouter

from energy_monitor.src.api.deps import Connector, Store

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(connector: Connector, store: Store) -> dict[str, str]:
    """Return a simple health status with the MQTT connector and store state.

    Returns:
        dict: ``{"status": "ok", "mqtt": "<state>", "influx": "ok" | "unreachable"}``.
    """
    return {
        "status": "ok",
        "mqtt": str(connector.state),
        "influx": "ok" if await store.ping() else "unreachable",
    }
