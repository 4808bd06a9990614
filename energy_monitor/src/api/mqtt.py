"""
MQTT connector control endpoints.

POST /v1/mqtt/start starts (or restarts after give-up) the ingestion
connector; it is a no-op when the connector is already running.
GET /v1/mqtt/status reports state and per-outcome message counters.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import logging

from fastapi import APIRouter

from energy_monitor.src.api.deps import Connector

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/mqtt", tags=["mqtt"])


@router.post("/start")
async def start_mqtt(connector: Connector) -> dict:
    """Start the MQTT connector if it is not already running.

    Returns:
        dict: Envelope with a message and the connector status.
    """
    if connector.machine.is_active:
        message = "MQTT client already running"
    else:
        await connector.start()
        message = "MQTT client started"
    logger.info(message)
    return {"status": "OK", "message": message, "data": connector.status()}


@router.get("/status")
async def mqtt_status(connector: Connector) -> dict:
    """Return the connector status snapshot."""
    return {"status": "OK", "data": connector.status()}
