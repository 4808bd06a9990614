"""
Process wiring for the panel energy monitor.

Builds the service graph (store, cache, registry, connector, query service)
from explicit settings, installs structured JSON logging, and provides the
``energy-monitor`` console entry point that serves the FastAPI app with
uvicorn. The FastAPI lifespan in ``api/main.py`` owns start/stop.

Shutdown order: connector (disconnect and drain in-flight messages), then
store (flush and close the InfluxDB client), then the registry engine.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from energy_monitor.src.cache.freshness import FreshnessCache
from energy_monitor.src.db.registry import SqlPanelRegistry
from energy_monitor.src.db.session import create_engine, create_session_factory
from energy_monitor.src.ingestion.connector import MqttConnector
from energy_monitor.src.services.query import QueryService
from energy_monitor.src.store.influx import InfluxStore

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from energy_monitor.src.config import MonitorSettings
    from energy_monitor.src.db.registry import PanelRegistry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


class JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def configure_logging(level: int = logging.INFO) -> None:
    """Configure structured JSON logging on the root logger (stderr)."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


def _masked_token(value: str | None) -> str:
    """Return a short non-reversible token fingerprint for diagnostics."""
    if not value:
        return "empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:10]
    return f"len={len(value)} sha256={digest}"


def log_config_summary(settings: MonitorSettings) -> None:
    """Log a config summary at startup, masking the InfluxDB token."""
    logger.info(
        "Energy monitor starting with config: "
        "mqtt_broker_url=%s, mqtt_topic_prefix=%s, mqtt_qos=%s, "
        "reconnect_interval_s=%s, max_reconnect_attempts=%s, "
        "influx_url=%s, influx_org=%s, influx_bucket=%s, "
        "cost_per_kwh=%s, currency=%s, mqtt_autostart=%s, influx_token_masked=%s",
        settings.mqtt_broker_url,
        settings.mqtt_topic_prefix,
        settings.mqtt_qos,
        settings.reconnect_interval_s,
        settings.max_reconnect_attempts,
        settings.influx_url,
        settings.influx_org,
        settings.influx_bucket,
        settings.cost_per_kwh,
        settings.currency,
        settings.mqtt_autostart,
        _masked_token(settings.influx_token),
    )


# ---------------------------------------------------------------------------
# Service graph
# ---------------------------------------------------------------------------


@dataclass
class MonitorServices:
    """Constructed services shared by the connector and the HTTP API."""

    settings: MonitorSettings
    cache: FreshnessCache
    store: InfluxStore
    registry: PanelRegistry
    connector: MqttConnector
    query: QueryService
    engine: AsyncEngine | None = None

    async def start(self) -> None:
        """Start ingestion if autostart is enabled."""
        if self.settings.mqtt_autostart:
            await self.connector.start()
        else:
            logger.info("MQTT autostart disabled; waiting for POST /v1/mqtt/start")

    async def close(self) -> None:
        """Stop ingestion, then flush the store, then release the database."""
        try:
            await self.connector.stop()
        except Exception:
            logger.error("Error stopping MQTT connector", exc_info=True)
        try:
            await self.store.close()
        except Exception:
            logger.error("Error closing InfluxDB client", exc_info=True)
        if self.engine is not None:
            await self.engine.dispose()


def build_services(settings: MonitorSettings) -> MonitorServices:
    """Construct the service graph from settings.

    Must be called from within a running event loop (the InfluxDB async
    client binds its HTTP session to it).
    """
    engine = create_engine(settings.database_url)
    registry = SqlPanelRegistry(create_session_factory(engine))
    cache = FreshnessCache()
    store = InfluxStore.from_settings(settings)
    connector = MqttConnector(
        settings=settings,
        store=store,
        cache=cache,
        registry=registry,
    )
    query = QueryService(store=store, cache=cache, cost_per_kwh=settings.cost_per_kwh)
    return MonitorServices(
        settings=settings,
        cache=cache,
        store=store,
        registry=registry,
        connector=connector,
        query=query,
        engine=engine,
    )


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    """Serve the HTTP API (and ingestion) with uvicorn."""
    import uvicorn

    configure_logging()
    uvicorn.run(
        "energy_monitor.src.api.main:app",
        host="0.0.0.0",
        port=8000,
        log_config=None,
    )


if __name__ == "__main__":
    main()
