"""
FastAPI dependency injection providers.

Services are constructed once by the application lifespan and stored on
``app.state.services``; these providers hand the relevant piece to route
handlers via Depends().

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from energy_monitor.src.config import MonitorSettings
from energy_monitor.src.db.registry import PanelRegistry
from energy_monitor.src.ingestion.connector import MqttConnector
from energy_monitor.src.main import MonitorServices
from energy_monitor.src.services.query import QueryService
from energy_monitor.src.store.influx import InfluxStore


def get_services(request: Request) -> MonitorServices:
    """Return the service graph built at startup."""
    return request.app.state.services


def get_query(request: Request) -> QueryService:
    """Return the query service."""
    return get_services(request).query


def get_registry(request: Request) -> PanelRegistry:
    """Return the panel registry."""
    return get_services(request).registry


def get_connector(request: Request) -> MqttConnector:
    """Return the MQTT ingestion connector."""
    return get_services(request).connector


def get_settings(request: Request) -> MonitorSettings:
    """Return the settings the service graph was built from."""
    return get_services(request).settings


def get_store(request: Request) -> InfluxStore:
    """Return the time-series store adapter."""
    return get_services(request).store


# Type aliases for injecting services via FastAPI Depends().
# Usage in route handlers:
#   async def my_route(query: Queries):
#       points = await query.history(...)
Queries = Annotated[QueryService, Depends(get_query)]
Registry = Annotated[PanelRegistry, Depends(get_registry)]
Connector = Annotated[MqttConnector, Depends(get_connector)]
Store = Annotated[InfluxStore, Depends(get_store)]
Settings = Annotated[MonitorSettings, Depends(get_settings)]
