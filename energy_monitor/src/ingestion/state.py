"""
Connection state machine for the MQTT ingestion connector.

Holds the connector's lifecycle state and the reconnect attempt counter as
explicit, transport-independent state so both can be tested without a live
broker::

    DISCONNECTED -> CONNECTING -> CONNECTED -> SUBSCRIBING -> SUBSCRIBED
          any state --transport error--> RECONNECTING
    RECONNECTING --connected--> CONNECTED  (attempts reset)
    RECONNECTING --error, attempts exhausted--> GIVEN_UP  (terminal)

GIVEN_UP is left only through :meth:`ConnectionStateMachine.reset`, which the
connector calls from ``stop()``.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from enum import StrEnum

logger = logging.getLogger(__name__)


class ConnectionState(StrEnum):
    """Lifecycle states of the ingestion connector."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    SUBSCRIBING = "subscribing"
    SUBSCRIBED = "subscribed"
    RECONNECTING = "reconnecting"
    GIVEN_UP = "given_up"


ACTIVE_STATES = frozenset(
    {
        ConnectionState.CONNECTING,
        ConnectionState.CONNECTED,
        ConnectionState.SUBSCRIBING,
        ConnectionState.SUBSCRIBED,
        ConnectionState.RECONNECTING,
    }
)
"""States in which the connector owns a live transport."""


class ConnectionStateMachine:
    """Explicit connector lifecycle with a bounded reconnect counter.

    Transitions that do not apply to the current state are ignored and
    logged at debug level, so late callbacks from the transport thread
    (e.g. a disconnect notification after ``stop()``) cannot corrupt state.

    Args:
        max_attempts: Reconnect attempts allowed before giving up.
    """

    def __init__(self, *, max_attempts: int) -> None:
        self._max_attempts = max_attempts
        self._state = ConnectionState.DISCONNECTED
        self._attempts = 0
        self._last_error: str | None = None

    @property
    def state(self) -> ConnectionState:
        """Current lifecycle state."""
        return self._state

    @property
    def attempts(self) -> int:
        """Reconnect attempts since the last successful connect."""
        return self._attempts

    @property
    def max_attempts(self) -> int:
        """Configured reconnect attempt bound."""
        return self._max_attempts

    @property
    def last_error(self) -> str | None:
        """Description of the most recent transport error, if any."""
        return self._last_error

    @property
    def is_active(self) -> bool:
        """True while the connector owns a live (or reconnecting) transport."""
        return self._state in ACTIVE_STATES

    @property
    def given_up(self) -> bool:
        """True once reconnect attempts are exhausted."""
        return self._state is ConnectionState.GIVEN_UP

    def _move(self, new: ConnectionState) -> ConnectionState:
        if new is not self._state:
            logger.info("MQTT connector state %s -> %s", self._state, new)
        self._state = new
        return new

    def _ignore(self, event: str) -> ConnectionState:
        logger.debug("Ignoring %s in state %s", event, self._state)
        return self._state

    # -- Transitions -------------------------------------------------------

    def connecting(self) -> ConnectionState:
        """Begin connecting. Only valid from DISCONNECTED."""
        if self._state is not ConnectionState.DISCONNECTED:
            return self._ignore("connecting")
        self._attempts = 0
        self._last_error = None
        return self._move(ConnectionState.CONNECTING)

    def connected(self) -> ConnectionState:
        """Record a successful (re)connect and reset the attempt counter."""
        if self._state not in (ConnectionState.CONNECTING, ConnectionState.RECONNECTING):
            return self._ignore("connected")
        self._attempts = 0
        return self._move(ConnectionState.CONNECTED)

    def subscribing(self) -> ConnectionState:
        """Record that the subscription request was sent."""
        if self._state is not ConnectionState.CONNECTED:
            return self._ignore("subscribing")
        return self._move(ConnectionState.SUBSCRIBING)

    def subscribed(self) -> ConnectionState:
        """Record that the broker acknowledged the subscription."""
        if self._state is not ConnectionState.SUBSCRIBING:
            return self._ignore("subscribed")
        return self._move(ConnectionState.SUBSCRIBED)

    def subscribe_failed(self) -> ConnectionState:
        """Record a rejected subscription; the connection itself stays up."""
        if self._state is not ConnectionState.SUBSCRIBING:
            return self._ignore("subscribe_failed")
        return self._move(ConnectionState.CONNECTED)

    def transport_error(self, reason: str) -> ConnectionState:
        """Record a connect failure or unexpected disconnect.

        Each error while active counts as one reconnect attempt. Once
        ``max_attempts`` attempts have been made, the next error moves the
        machine to GIVEN_UP.

        Args:
            reason: Human-readable description of the failure.

        Returns:
            ConnectionState: RECONNECTING or GIVEN_UP.
        """
        if not self.is_active:
            return self._ignore("transport_error")
        self._last_error = reason
        if self._attempts >= self._max_attempts:
            logger.error(
                "Max reconnection attempts reached (%d/%d): %s",
                self._attempts,
                self._max_attempts,
                reason,
            )
            return self._move(ConnectionState.GIVEN_UP)
        self._attempts += 1
        logger.warning(
            "Reconnecting to MQTT broker (attempt %d/%d): %s",
            self._attempts,
            self._max_attempts,
            reason,
        )
        return self._move(ConnectionState.RECONNECTING)

    def reset(self) -> ConnectionState:
        """Return to DISCONNECTED from any state (used by ``stop()``)."""
        self._attempts = 0
        return self._move(ConnectionState.DISCONNECTED)
