"""
Exception hierarchy for the panel energy monitor.

DecodeFailure and UnrecognizedRoute are raised by the decoder's parse_envelope
and parse_route and turned into ``None`` by its public entry points.
Per-message faults are handled locally by the ingestion connector and never
escape the consumer task. Only connection-level faults (TransportError,
ReconnectExhausted) change connector state.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations


class MonitorError(Exception):
    """Base exception for all energy monitor errors."""


class DecodeFailure(MonitorError):
    """Inbound payload is malformed or not a successful telemetry envelope."""


class UnrecognizedRoute(MonitorError):
    """MQTT topic does not match the expected ``<namespace>/<category>/<panel>`` shape."""

    def __init__(self, topic: str) -> None:
        self.topic = topic
        super().__init__(f"Unrecognized route: {topic!r}")


class StoreUnavailable(MonitorError):
    """Time-series backend write or query failed."""

    def __init__(self, message: str, *, operation: str = "") -> None:
        self.operation = operation
        super().__init__(message)


class TransportError(MonitorError):
    """MQTT transport reported a connection failure or unexpected disconnect."""


class ReconnectExhausted(TransportError):
    """Reconnect attempts exceeded the configured bound; connector gave up."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"Gave up reconnecting after {attempts} attempt(s)")


class InvalidRange(MonitorError):
    """History range token is not one of the supported values."""

    def __init__(self, token: str, valid: list[str]) -> None:
        self.token = token
        self.valid = valid
        super().__init__(f"Invalid range {token!r}. Valid values: {', '.join(valid)}")


class RegistryError(MonitorError):
    """Panel registry lookup or update failed."""
