"""
Service configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
Settings are read once by the process entry point and passed explicitly to
the components that need them; no component reads the environment itself.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from urllib.parse import urlparse

from pydantic import field_validator
from pydantic_settings import BaseSettings

_MQTT_SCHEMES = {"mqtt": 1883, "tcp": 1883, "mqtts": 8883, "ssl": 8883}


class MonitorSettings(BaseSettings):
    """Energy monitor configuration.

    All values are loaded from environment variables. Required variables
    must be set; optional variables have sensible defaults.

    Attributes:
        mqtt_broker_url: Broker URL, e.g. ``mqtt://localhost:1883``.
        mqtt_topic_prefix: Fixed namespace/category prefix of panel topics.
        mqtt_client_id: MQTT client identifier.
        mqtt_qos: QoS level used for the panel subscription (0-2).
        mqtt_keepalive_s: MQTT keepalive interval in seconds.
        mqtt_autostart: Start the connector during application startup.
        reconnect_interval_s: Fixed delay between reconnect attempts.
        max_reconnect_attempts: Reconnect attempts before giving up.
        influx_url: InfluxDB base URL.
        influx_token: InfluxDB API token.
        influx_org: InfluxDB organisation.
        influx_bucket: InfluxDB bucket holding ``energy_data`` points.
        cost_per_kwh: Integer currency units charged per kWh.
        currency: ISO 4217 code of the cost currency, reported with usage.
        database_url: SQLAlchemy async URL of the panel registry database.
    """

    mqtt_broker_url: str = "mqtt://localhost:1883"
    mqtt_topic_prefix: str = "DATA/PM"
    mqtt_client_id: str = "energy-monitor"
    mqtt_qos: int = 1
    mqtt_keepalive_s: int = 60
    mqtt_autostart: bool = True
    reconnect_interval_s: int = 5
    max_reconnect_attempts: int = 10
    influx_url: str = "http://localhost:8086"
    influx_token: str
    influx_org: str = "ravelware"
    influx_bucket: str = "energy"
    cost_per_kwh: int = 1500
    currency: str = "IDR"
    database_url: str

    @field_validator("mqtt_broker_url")
    @classmethod
    def broker_url_must_be_mqtt(cls, v: str) -> str:
        """Validate that the broker URL uses an MQTT scheme and has a host."""
        parsed = urlparse(v)
        if parsed.scheme not in _MQTT_SCHEMES:
            raise ValueError(
                f"MQTT_BROKER_URL must use one of {sorted(_MQTT_SCHEMES)} (got: '{v}')"
            )
        if not parsed.hostname:
            raise ValueError(f"MQTT_BROKER_URL has no host (got: '{v}')")
        return v

    @field_validator("mqtt_topic_prefix")
    @classmethod
    def topic_prefix_must_have_two_segments(cls, v: str) -> str:
        """Validate the prefix is exactly two non-wildcard topic segments."""
        parts = v.split("/")
        if len(parts) != 2 or not all(parts) or any(c in v for c in "+#"):
            raise ValueError("MQTT_TOPIC_PREFIX must be two segments, e.g. 'DATA/PM'")
        return v

    @field_validator("mqtt_qos")
    @classmethod
    def qos_must_be_valid(cls, v: int) -> int:
        """Validate MQTT QoS level is 0, 1 or 2."""
        if v not in (0, 1, 2):
            raise ValueError("MQTT_QOS must be 0, 1 or 2")
        return v

    @field_validator("reconnect_interval_s", "max_reconnect_attempts", "mqtt_keepalive_s")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        """Validate reconnect and keepalive settings are >= 1."""
        if v < 1:
            raise ValueError("value must be >= 1")
        return v

    @field_validator("cost_per_kwh")
    @classmethod
    def cost_must_be_non_negative(cls, v: int) -> int:
        """Validate the per-kWh rate is non-negative."""
        if v < 0:
            raise ValueError("COST_PER_KWH must be >= 0")
        return v

    @field_validator("currency")
    @classmethod
    def currency_must_be_iso_code(cls, v: str) -> str:
        """Validate the currency is a three-letter code, normalised to upper case."""
        if len(v) != 3 or not v.isalpha():
            raise ValueError("CURRENCY must be a three-letter code, e.g. 'IDR'")
        return v.upper()

    @property
    def broker_host(self) -> str:
        """Hostname part of ``mqtt_broker_url``."""
        return urlparse(self.mqtt_broker_url).hostname or "localhost"

    @property
    def broker_port(self) -> int:
        """Port of ``mqtt_broker_url``, defaulting per scheme."""
        parsed = urlparse(self.mqtt_broker_url)
        return parsed.port or _MQTT_SCHEMES[parsed.scheme]

    @property
    def broker_tls(self) -> bool:
        """Whether the broker URL requests TLS."""
        return urlparse(self.mqtt_broker_url).scheme in ("mqtts", "ssl")

    @property
    def topic_prefix_parts(self) -> tuple[str, str]:
        """The two prefix segments as a tuple."""
        namespace, category = self.mqtt_topic_prefix.split("/")
        return namespace, category

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
