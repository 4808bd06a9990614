"""
Pure decoder that converts raw MQTT messages into panel Readings.

Two entry points:

- :func:`extract_panel_id` maps a topic such as ``DATA/PM/PANEL_LANTAI_1`` to
  its panel identifier, or ``None`` for an unrecognized route.
- :func:`decode_payload` parses the JSON envelope
  ``{"status": "OK", "data": {"v", "i", "kw", "kVA", "kWh", "pf", "vunbal",
  "iunbal", "time"}}`` into a fully populated :class:`Reading`, or ``None``
  on decode failure.

Neither function raises; :func:`parse_route` and :func:`parse_envelope` are
the raising forms (:class:`UnrecognizedRoute`, :class:`DecodeFailure`) they
are built on. Field-level problems are repaired with defaults
(zeros, or ``now`` for the timestamp); only envelope-level problems fail the
decode. The power and energy fields arrive as numeric strings from existing
meters and are coerced, falling back to zero when coercion fails.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import json
import logging
import math
from datetime import UTC, datetime
from typing import Any

from energy_monitor.src.errors import DecodeFailure, UnrecognizedRoute
from energy_monitor.src.models import PHASE_COUNT, ZERO_PHASES, Reading

logger = logging.getLogger(__name__)

STATUS_OK = "OK"
"""Envelope ``status`` value marking a successful meter read."""

DEFAULT_TOPIC_PREFIX: tuple[str, str] = ("DATA", "PM")


# ---------------------------------------------------------------------------
# Topic handling
# ---------------------------------------------------------------------------


def subscription_topic(prefix: tuple[str, str] = DEFAULT_TOPIC_PREFIX) -> str:
    """Return the single-level wildcard subscription for all panels.

    Args:
        prefix: Namespace and category segments.

    Returns:
        str: Topic filter such as ``DATA/PM/+``.
    """
    return "/".join((*prefix, "+"))


def parse_route(topic: str, *, prefix: tuple[str, str] = DEFAULT_TOPIC_PREFIX) -> str:
    """Return the panel segment of *topic*.

    Raises:
        UnrecognizedRoute: If the topic does not have exactly three segments
            with the expected prefix and a non-empty panel segment.
    """
    parts = topic.split("/")
    if len(parts) != 3 or (parts[0], parts[1]) != tuple(prefix) or not parts[2]:
        raise UnrecognizedRoute(topic)
    return parts[2]


def extract_panel_id(
    topic: str,
    *,
    prefix: tuple[str, str] = DEFAULT_TOPIC_PREFIX,
) -> str | None:
    """Extract the panel identifier from a routing key.

    Args:
        topic: MQTT topic the message arrived on.
        prefix: Expected namespace and category segments.

    Returns:
        The third topic segment, or ``None`` if the topic does not have
        exactly three segments with the expected prefix.
    """
    try:
        return parse_route(topic, prefix=prefix)
    except UnrecognizedRoute:
        return None


# ---------------------------------------------------------------------------
# Field coercion helpers
# ---------------------------------------------------------------------------


def _to_float(value: Any) -> float:
    """Coerce a numeric or numeric-looking string to float, 0.0 on failure."""
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        result = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    if not math.isfinite(result):
        return 0.0
    return result


def _phase_value(item: Any) -> float | None:
    """Return one phase sample as a finite float, or None if unusable."""
    if isinstance(item, bool) or not isinstance(item, (int, float)):
        return None
    try:
        result = float(item)
    except OverflowError:
        return None
    return result if math.isfinite(result) else None


def _to_phases(value: Any) -> list[float]:
    """Return a 4-element float list, or four zeros if the shape is wrong.

    The sequence is never partially defaulted: one bad element zeroes the
    whole list.
    """
    if not isinstance(value, list) or len(value) != PHASE_COUNT:
        return list(ZERO_PHASES)
    phases: list[float] = []
    for item in value:
        sample = _phase_value(item)
        if sample is None:
            return list(ZERO_PHASES)
        phases.append(sample)
    return phases


def _to_timestamp(value: Any, now: datetime) -> datetime:
    """Parse ``YYYY-MM-DD HH:MM:SS`` (or ISO 8601) as UTC, else return now.

    Naive timestamps are interpreted as UTC.
    """
    if not isinstance(value, str) or not value.strip():
        return now
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        logger.debug("Unparseable payload time %r, using ingestion time", value)
        return now
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    try:
        return parsed.astimezone(UTC)
    except OverflowError:
        logger.debug("Payload time %r is out of range in UTC, using ingestion time", value)
        return now


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_envelope(body: bytes | str) -> dict[str, Any]:
    """Return the ``data`` object of a successful telemetry envelope.

    Raises:
        DecodeFailure: If the body is not UTF-8 JSON (or nests too deeply to
            parse), is not an object, has a status other than ``"OK"``, or
            has no ``data`` object.
    """
    try:
        text = body.decode("utf-8") if isinstance(body, bytes) else body
        envelope = json.loads(text)
    except (UnicodeDecodeError, ValueError, RecursionError) as exc:
        raise DecodeFailure("body is not valid JSON") from exc

    if not isinstance(envelope, dict):
        raise DecodeFailure("body is not a JSON object")

    status = envelope.get("status")
    if status != STATUS_OK:
        raise DecodeFailure(f"status is {status!r}")

    data = envelope.get("data")
    if not isinstance(data, dict):
        raise DecodeFailure("no data object")
    return data


def decode_payload(
    body: bytes | str,
    *,
    panel_id: str,
    now: datetime | None = None,
) -> Reading | None:
    """Decode a raw MQTT message body into a Reading.

    This is a pure function apart from reading the clock when *now* is not
    supplied.

    Args:
        body: Raw message bytes (UTF-8 JSON) or an already-decoded string.
        panel_id: Panel identifier extracted from the topic.
        now: Ingestion time used when the payload carries no usable time.

    Returns:
        A fully populated :class:`Reading`, or ``None`` when the body is not
        valid JSON, the status is not ``"OK"``, or ``data`` is missing.
    """
    if now is None:
        now = datetime.now(tz=UTC)

    try:
        data = parse_envelope(body)
    except DecodeFailure as exc:
        logger.warning("Invalid payload from %s: %s", panel_id, exc)
        return None

    return Reading(
        panel_id=panel_id,
        voltage=_to_phases(data.get("v")),
        current=_to_phases(data.get("i")),
        power_kw=_to_float(data.get("kw")),
        power_kva=_to_float(data.get("kVA")),
        energy_kwh=_to_float(data.get("kWh")),
        power_factor=_to_float(data.get("pf")),
        voltage_unbalance=_to_float(data.get("vunbal")),
        current_unbalance=_to_float(data.get("iunbal")),
        timestamp=_to_timestamp(data.get("time"), now),
    )
