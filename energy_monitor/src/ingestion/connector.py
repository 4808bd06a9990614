"""
MQTT ingestion connector for panel telemetry.

Owns the paho-mqtt client lifecycle, the ``<namespace>/<category>/+``
subscription, and the per-message pipeline::

    topic -> panel id -> decode -> store.write -> cache.put -> registry update

paho runs its network loop on its own thread. Connection callbacks are
forwarded to the asyncio loop with ``call_soon_threadsafe`` and drive the
:class:`ConnectionStateMachine`; messages are handed to a bounded inbox that
a single consumer task drains in arrival order. When the inbox is full the
network thread blocks, so a slow store write back-pressures the broker
connection instead of growing an unbounded in-process backlog.

Per-message faults are isolated: an unrecognized topic, an undecodable
payload, or a failed store write drops that message only. A failed registry
update after a successful write is logged and does not roll back the write
or the cache update.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections import Counter
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import paho.mqtt.client as mqtt

from energy_monitor.src.decoder import decode_payload, extract_panel_id, subscription_topic
from energy_monitor.src.errors import ReconnectExhausted, StoreUnavailable
from energy_monitor.src.ingestion.state import ConnectionState, ConnectionStateMachine
from energy_monitor.src.models import PanelStatus

if TYPE_CHECKING:
    from energy_monitor.src.cache.freshness import FreshnessCache
    from energy_monitor.src.config import MonitorSettings
    from energy_monitor.src.db.registry import PanelRegistry
    from energy_monitor.src.store.influx import InfluxStore

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

INBOX_MAXSIZE: int = 100
"""Messages buffered between the network thread and the consumer task."""

DRAIN_TIMEOUT_S: float = 10.0
"""Seconds ``stop()`` waits for buffered messages to be processed."""


class MessageOutcome(StrEnum):
    """Result of handling one inbound message."""

    STORED = "stored"
    UNRECOGNIZED_ROUTE = "unrecognized_route"
    DECODE_FAILED = "decode_failed"
    STORE_FAILED = "store_failed"
    REGISTRY_FAILED = "registry_failed"


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class MqttConnector:
    """Ingestion connector: MQTT subscription feeding store, cache and registry.

    The connector is the single writer of the freshness cache. It is built
    and owned by the process entry point, which calls :meth:`start` and
    :meth:`stop`.

    Args:
        settings: Service settings (broker address, topic prefix, QoS,
            reconnect interval and attempt bound).
        store: Time-series store adapter.
        cache: Freshness cache.
        registry: Panel registry collaborator.
        clock: Callable returning the current time. Defaults to UTC now.
    """

    def __init__(
        self,
        *,
        settings: MonitorSettings,
        store: InfluxStore,
        cache: FreshnessCache,
        registry: PanelRegistry,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._settings = settings
        self._store = store
        self._cache = cache
        self._registry = registry
        self._clock = clock
        self._prefix = settings.topic_prefix_parts
        self._topic = subscription_topic(self._prefix)
        self._machine = ConnectionStateMachine(max_attempts=settings.max_reconnect_attempts)

        self._client: mqtt.Client | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._inbox: asyncio.Queue[tuple[str, bytes]] | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._teardown: asyncio.Task[None] | None = None
        self._stopping = False
        self._terminal_error: ReconnectExhausted | None = None
        self._outcomes: Counter[MessageOutcome] = Counter()

    # -- Introspection -----------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        """Current connector lifecycle state."""
        return self._machine.state

    @property
    def machine(self) -> ConnectionStateMachine:
        """The underlying connection state machine."""
        return self._machine

    @property
    def is_connected(self) -> bool:
        """True while connected to the broker (subscribed or not)."""
        return self._machine.state in (
            ConnectionState.CONNECTED,
            ConnectionState.SUBSCRIBING,
            ConnectionState.SUBSCRIBED,
        )

    @property
    def terminal_error(self) -> ReconnectExhausted | None:
        """The error that moved the connector to GIVEN_UP, if any."""
        return self._terminal_error

    def status(self) -> dict[str, Any]:
        """Return a JSON-serialisable snapshot of connector state and counters."""
        return {
            "state": str(self._machine.state),
            "connected": self.is_connected,
            "topic": self._topic,
            "reconnect_attempts": self._machine.attempts,
            "max_reconnect_attempts": self._machine.max_attempts,
            "last_error": self._machine.last_error,
            "messages": {outcome.value: self._outcomes[outcome] for outcome in MessageOutcome},
        }

    # -- Lifecycle ---------------------------------------------------------

    async def start(self) -> MqttConnector:
        """Connect to the broker and start consuming messages.

        Idempotent: if the connector is already connecting, connected,
        subscribed or reconnecting, returns immediately without side
        effects. A connector that has given up is torn down and started
        fresh.

        Returns:
            MqttConnector: ``self``.
        """
        if self._machine.is_active:
            logger.info("MQTT connector already running (state=%s)", self._machine.state)
            return self
        if self._machine.given_up:
            logger.info("Restarting MQTT connector after give-up")
            await self.stop()

        self._loop = asyncio.get_running_loop()
        self._inbox = asyncio.Queue(maxsize=INBOX_MAXSIZE)
        self._stopping = False
        self._terminal_error = None
        self._machine.connecting()

        logger.info(
            "Connecting to MQTT broker: %s:%d",
            self._settings.broker_host,
            self._settings.broker_port,
        )
        client = self._create_client()
        self._client = client
        self._consumer = asyncio.create_task(self._consume(), name="mqtt-consumer")

        client.connect_async(
            self._settings.broker_host,
            self._settings.broker_port,
            keepalive=self._settings.mqtt_keepalive_s,
        )
        client.loop_start()
        return self

    async def stop(self) -> None:
        """Disconnect, stop the network thread, and drain buffered messages.

        Safe to call in any state. Leaves the connector DISCONNECTED.
        """
        self._stopping = True
        await self._stop_transport()
        if self._teardown is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._teardown
            self._teardown = None

        if self._consumer is not None:
            if self._inbox is not None:
                try:
                    await asyncio.wait_for(self._inbox.join(), timeout=DRAIN_TIMEOUT_S)
                except TimeoutError:
                    logger.warning(
                        "Timed out draining %d buffered MQTT message(s)",
                        self._inbox.qsize(),
                    )
            self._consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._consumer
            self._consumer = None

        self._inbox = None
        self._machine.reset()
        logger.info("MQTT client disconnected")

    async def _stop_transport(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        client.disconnect()
        await asyncio.to_thread(client.loop_stop)

    def _create_client(self) -> mqtt.Client:
        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=f"{self._settings.mqtt_client_id}-{int(time.time() * 1000)}",
            clean_session=True,
        )
        client.enable_logger(logger)
        if self._settings.broker_tls:
            client.tls_set()
        interval = self._settings.reconnect_interval_s
        client.reconnect_delay_set(min_delay=interval, max_delay=interval)

        client.on_connect = self._on_connect
        client.on_connect_fail = self._on_connect_fail
        client.on_disconnect = self._on_disconnect
        client.on_subscribe = self._on_subscribe
        client.on_message = self._on_message
        return client

    # -- paho callbacks (network thread) -------------------------------------

    def _post(self, callback: Callable[..., None], *args: Any) -> None:
        """Schedule *callback* on the asyncio loop from the network thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(callback, *args)

    def _on_connect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if reason_code.is_failure:
            self._post(self.handle_transport_error, f"connect refused: {reason_code}")
        else:
            self._post(self.handle_connected)

    def _on_connect_fail(self, _client: mqtt.Client, _userdata: Any) -> None:
        self._post(self.handle_transport_error, "connect failed")

    def _on_disconnect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        self._post(self.handle_transport_error, f"disconnected: {reason_code}")

    def _on_subscribe(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _mid: int,
        reason_codes: list[Any],
        _properties: Any,
    ) -> None:
        failures = [str(rc) for rc in reason_codes if rc.is_failure]
        self._post(self.handle_subscribed, failures)

    def _on_message(self, _client: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
        loop, inbox = self._loop, self._inbox
        if loop is None or inbox is None or loop.is_closed():
            return
        future = asyncio.run_coroutine_threadsafe(
            inbox.put((msg.topic, bytes(msg.payload))), loop
        )
        try:
            future.result()
        except Exception:
            logger.warning("Failed to enqueue message from %s", msg.topic, exc_info=True)

    # -- Connection events (event loop) ------------------------------------

    def handle_connected(self) -> None:
        """Handle a successful broker connect: subscribe to panel topics."""
        if self._stopping or self._client is None:
            return
        logger.info("Connected to MQTT broker")
        self._machine.connected()
        self._machine.subscribing()
        result, _mid = self._client.subscribe(self._topic, qos=self._settings.mqtt_qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            logger.error("Failed to subscribe to %s: rc=%s", self._topic, result)
            self._machine.subscribe_failed()

    def handle_subscribed(self, failures: list[str]) -> None:
        """Handle the broker's SUBACK."""
        if self._stopping:
            return
        if failures:
            logger.error("Failed to subscribe to %s: %s", self._topic, ", ".join(failures))
            self._machine.subscribe_failed()
            return
        logger.info("Subscribed to %s", self._topic)
        self._machine.subscribed()

    def handle_transport_error(self, reason: str) -> None:
        """Handle a connect failure or disconnect reported by the transport.

        Moves the state machine to RECONNECTING (paho retries on the fixed
        reconnect interval) or, once attempts are exhausted, to GIVEN_UP and
        stops the transport.
        """
        if self._stopping:
            return
        state = self._machine.transport_error(reason)
        if state is ConnectionState.GIVEN_UP and self._teardown is None:
            self._terminal_error = ReconnectExhausted(self._machine.attempts)
            logger.error("%s; external restart required", self._terminal_error)
            self._teardown = asyncio.ensure_future(self._stop_transport())

    # -- Message pipeline --------------------------------------------------

    async def _consume(self) -> None:
        """Process inbox messages one at a time in arrival order."""
        inbox = self._inbox
        assert inbox is not None, "Inbox not initialised"
        while True:
            topic, payload = await inbox.get()
            try:
                await self.handle_message(topic, payload)
            except Exception:
                logger.error("Unexpected error handling message on %s", topic, exc_info=True)
            finally:
                inbox.task_done()

    async def handle_message(self, topic: str, payload: bytes | str) -> MessageOutcome:
        """Run the ingestion pipeline for one message.

        Steps:
            1. Extract the panel id from the topic; unrecognized -> drop.
            2. Decode the payload; failure -> drop.
            3. Write to the store; StoreUnavailable -> drop (no cache or
               registry update, no retry).
            4. Install in the cache, then update the registry's last-seen
               fields; a registry failure is logged only.

        Args:
            topic: MQTT topic the message arrived on.
            payload: Raw message body.

        Returns:
            MessageOutcome: What happened to the message.
        """
        panel_id = extract_panel_id(topic, prefix=self._prefix)
        if panel_id is None:
            logger.warning("Unknown topic format: %s", topic)
            return self._record(MessageOutcome.UNRECOGNIZED_ROUTE)

        logger.debug("Received data from %s", panel_id)
        reading = decode_payload(payload, panel_id=panel_id, now=self._clock())
        if reading is None:
            logger.warning("Invalid payload from %s, dropping message", panel_id)
            return self._record(MessageOutcome.DECODE_FAILED)

        try:
            await self._store.write(reading)
        except StoreUnavailable:
            logger.warning("Store write failed for %s, dropping message", panel_id, exc_info=True)
            return self._record(MessageOutcome.STORE_FAILED)
        logger.debug("Saved reading for %s", panel_id)

        entry = self._cache.put(panel_id, reading)

        try:
            await self._registry.update_last_seen(panel_id, PanelStatus.ONLINE, entry.last_update)
        except Exception:
            logger.warning("Failed to update registry for %s", panel_id, exc_info=True)
            return self._record(MessageOutcome.REGISTRY_FAILED)

        return self._record(MessageOutcome.STORED)

    def _record(self, outcome: MessageOutcome) -> MessageOutcome:
        self._outcomes[outcome] += 1
        return outcome
