"""Resilient connection controller.

This module provides the canonical API for talking to a WebSocket peer
through action-tagged JSON envelopes. It handles:
- Replacing and re-opening the transport on demand
- Reconnecting with backoff and jitter after errors and abnormal closes
- Heartbeat liveness checks with a forced close on timeout
- Listener dispatch and optional acknowledgement of inbound envelopes

All transitions run on the event loop thread as reactions to transport
events or timer callbacks; nothing here blocks.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import replace
from enum import Enum
from functools import partial
from typing import Any

from .backoff import compute_retry_delay, default_jitter
from .config import ReevSocketOptions
from .errors import HeartbeatTimeout, MalformedEnvelope, SendFailure
from .network import NetworkSignals
from .protocol import (
    ACK_ACTION,
    HEARTBEAT_FAILURE_CODE,
    NORMAL_CLOSURE,
    OFFLINE_CLOSE_CODE,
    PING_ACTION,
    build_ack,
    decode_envelope,
    encode_envelope,
)
from .registry import EventRegistry, Listener, invoke_callback
from .timers import LoopTimerService, TimerService
from .transport import (
    Frame,
    Transport,
    TransportEvent,
    TransportState,
    WebSocketTransport,
)

_LOGGER = logging.getLogger(__name__)

RESTART_REASON = "Restarting connection"
HEARTBEAT_FAILURE_REASON = "Heartbeat failed"
OFFLINE_REASON = "Network is offline"


class ConnectionState(Enum):
    """Lifecycle states of a ReevSocket controller."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECT_PENDING = "reconnect_pending"
    OVERFLOW = "overflow"
    CLOSED = "closed"


class ReevSocket:
    """Self-healing WebSocket connection.

    Usage:
        socket = ReevSocket("wss://example.org/live", ReevSocketOptions(delay=2.0))
        socket.on("chat", handle_chat)
        socket.start()
        socket.emit("chat", {"text": "hi"})
        socket.close()
    """

    def __init__(
        self,
        url: str,
        options: ReevSocketOptions | None = None,
        *,
        transport_factory: Callable[[], Transport] | None = None,
        timers: TimerService | None = None,
        network: NetworkSignals | None = None,
        jitter: Callable[[], float] = default_jitter,
    ) -> None:
        """Initialize controller.

        Args:
            url: WebSocket URL to connect to
            options: Reconnect, heartbeat and callback configuration
            transport_factory: Builds a fresh Transport for every start()
            timers: Timer service for retry and heartbeat timers
            network: Host reachability signals; online restarts the
                connection and offline closes it
            jitter: Source of the random offset added to retry delays
        """
        self.url = url
        self.options = options or ReevSocketOptions()

        self._transport_factory = transport_factory or self._default_transport
        self._timers: TimerService = timers or LoopTimerService()
        self._jitter = jitter
        self._registry = EventRegistry()

        # Connection state
        self._transport: Transport | None = None
        self._state = ConnectionState.IDLE
        self._retry_count = 0
        self._metadata: Any = self.options.metadata

        # Timers
        self._retry_timer: Any = None
        self._heartbeat_timer: Any = None
        self._pong_timer: Any = None
        self._heartbeat_expired = False

        self._network_unsubscribes: list[Callable[[], None]] = []
        if network is not None:
            self._network_unsubscribes = [
                network.subscribe_online(self._handle_network_online),
                network.subscribe_offline(self._handle_network_offline),
            ]

    # -------------------------------------------------------------------------
    # Public API: Connection Management
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Open a new connection, replacing the current one if any."""
        if self._transport is not None:
            previous = self._transport
            previous.detach()
            previous.close(NORMAL_CLOSURE, RESTART_REASON)

        # Timers of the replaced transport must not act on the new one.
        self._cancel_timers()
        self._heartbeat_expired = False

        transport = self._transport_factory()
        transport.on_open = partial(self._handle_open, transport)
        transport.on_message = partial(self._handle_message, transport)
        transport.on_error = partial(self._handle_error, transport)
        transport.on_close = partial(self._handle_close, transport)
        self._transport = transport

        _LOGGER.info(
            "[%s] Connecting (attempt #%d)", self.url, self._retry_count + 1
        )
        self._set_state(ConnectionState.CONNECTING)
        transport.open(self.url, self.options.protocols)

    def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        """Close the connection and stop all automatic reconnects.

        Safe to call repeatedly. ``start()`` may be called again afterwards.
        """
        _LOGGER.info("[%s] Closing (code=%d)", self.url, code)
        self._cancel_timers()
        self._heartbeat_expired = False
        if self._transport is not None:
            self._transport.close(code, reason)
        self._set_state(ConnectionState.CLOSED)

    def retry(self, event: TransportEvent | None = None) -> None:
        """Arm the reconnect timer, or report overflow if attempts ran out."""
        max_attempts = self.options.max_attempts
        if max_attempts is not None and self._retry_count >= max_attempts:
            self._cancel_timer("_retry_timer")
            _LOGGER.warning(
                "[%s] Giving up after %d reconnect attempts",
                self.url,
                self._retry_count,
            )
            self._set_state(ConnectionState.OVERFLOW)
            invoke_callback(self.options.on_overflow, event)
            return

        delay = compute_retry_delay(
            self._retry_count,
            delay=self.options.delay,
            exponential_factor=self.options.exponential_factor,
            max_delay=self.options.max_delay,
            jitter=self._jitter,
        )
        _LOGGER.info(
            "[%s] Reconnecting in %.2fs (attempt %d)",
            self.url,
            delay,
            self._retry_count + 1,
        )
        self._arm_timer(
            "_retry_timer", delay, partial(self._handle_retry_timer, event)
        )

    @property
    def is_connected(self) -> bool:
        """True unless the transport is absent, closing or closed."""
        if self._transport is None:
            return False
        return self._transport.ready_state not in (
            TransportState.CLOSING,
            TransportState.CLOSED,
        )

    @property
    def state(self) -> ConnectionState:
        """Current controller state."""
        return self._state

    @property
    def retry_count(self) -> int:
        """Reconnect attempts since the last successful open."""
        return self._retry_count

    @property
    def transport(self) -> Transport | None:
        """Current transport handle."""
        return self._transport

    def detach_network(self) -> None:
        """Stop reacting to host network signals."""
        for unsubscribe in self._network_unsubscribes:
            unsubscribe()
        self._network_unsubscribes = []

    # -------------------------------------------------------------------------
    # Public API: Messaging
    # -------------------------------------------------------------------------

    @property
    def metadata(self) -> Any:
        """Metadata attached to outbound envelopes."""
        return self._metadata

    def set_metadata(self, value: Any) -> None:
        """Replace the metadata attached to subsequent envelopes."""
        self._metadata = value

    def on(self, action: str, listener: Listener) -> None:
        """Register ``listener`` for inbound envelopes with ``action``.

        Listener receives the envelope payload.
        """
        self._registry.register(action, listener)

    def send(self, frame: Frame) -> None:
        """Send a raw frame.

        Raises:
            SendFailure: If the connection is not open.
        """
        transport = self._transport
        if transport is None or transport.ready_state is not TransportState.OPEN:
            raise SendFailure("Connection is not open")
        transport.send(frame)

    def emit(self, action: str, payload: Any = None) -> bool:
        """Send an envelope for ``action`` carrying ``payload``.

        Returns:
            True if the envelope was handed to the transport, False if the
            action is empty or the connection is not open.

        Raises:
            SendFailure: If payload or metadata cannot be serialized.
        """
        if not action:
            return False
        if not self._is_open():
            _LOGGER.debug("[%s] Dropping %r: not open", self.url, action)
            return False

        try:
            frame = encode_envelope(action, payload, self._metadata)
        except (TypeError, ValueError) as err:
            raise SendFailure(f"Cannot serialize {action!r} envelope: {err}") from err

        self.send(frame)
        return True

    def send_json(self, value: Any) -> bool:
        """Serialize ``value`` to JSON and send it as a raw frame.

        Returns:
            True if sent, False if serialization or sending failed.
        """
        try:
            self.send(json.dumps(value))
        except (TypeError, ValueError, SendFailure) as err:
            _LOGGER.error("[%s] Failed to send JSON: %s", self.url, err)
            return False
        return True

    def send_ack(self, action: str) -> bool:
        """Acknowledge receipt of ``action`` if acknowledgements are enabled."""
        if not action or not self.options.enable_acknowledge:
            return False
        try:
            return self.emit(ACK_ACTION, build_ack(action))
        except SendFailure as err:
            _LOGGER.error("[%s] Failed to acknowledge %r: %s", self.url, action, err)
            return False

    # -------------------------------------------------------------------------
    # Internal: Transport Events
    # -------------------------------------------------------------------------

    def _handle_open(self, transport: Transport, event: TransportEvent) -> None:
        if transport is not self._transport:
            return

        _LOGGER.info("[%s] Connected", self.url)
        self._retry_count = 0
        invoke_callback(self.options.on_connect, event)
        # on_connect may have closed or restarted the connection.
        if transport is not self._transport or not self._is_open():
            return
        self._set_state(ConnectionState.OPEN)
        self._setup_heartbeat()

    def _handle_message(self, transport: Transport, event: TransportEvent) -> None:
        if transport is not self._transport:
            return

        invoke_callback(self.options.on_message, event)

        try:
            envelope = decode_envelope(event.data)
        except MalformedEnvelope as err:
            _LOGGER.warning("[%s] Invalid message: %s", self.url, err)
        else:
            if envelope.action in self._registry:
                self._registry.dispatch(envelope.action, envelope.payload)
                self.send_ack(envelope.action)
            else:
                _LOGGER.debug(
                    "[%s] No listeners for action: %s", self.url, envelope.action
                )

        # Any traffic proves the peer is alive.
        if transport is self._transport and self._is_open():
            self._setup_heartbeat()

    def _handle_error(self, transport: Transport, event: TransportEvent) -> None:
        if transport is not self._transport:
            return

        _LOGGER.warning("[%s] Transport error: %s", self.url, event.error)
        invoke_callback(self.options.on_error, event)
        self._schedule_retry(event)

    def _handle_close(self, transport: Transport, event: TransportEvent) -> None:
        if transport is not self._transport:
            return

        if self._heartbeat_expired and event.code == HEARTBEAT_FAILURE_CODE:
            event = replace(
                event, error=HeartbeatTimeout(HEARTBEAT_FAILURE_CODE, event.reason)
            )
        self._heartbeat_expired = False
        self._cancel_heartbeat()

        _LOGGER.info(
            "[%s] Connection closed (code=%s, reason=%r)",
            self.url,
            event.code,
            event.reason,
        )
        invoke_callback(self.options.on_close, event)

        if event.code != NORMAL_CLOSURE:
            self._schedule_retry(event)
        elif self._state is not ConnectionState.CLOSED:
            self._set_state(ConnectionState.CLOSED)

    # -------------------------------------------------------------------------
    # Internal: Connection State Machine
    # -------------------------------------------------------------------------

    def _set_state(self, state: ConnectionState) -> None:
        """Update connection state and notify callback."""
        if self._state is state:
            return
        _LOGGER.debug("[%s] State: %s → %s", self.url, self._state.value, state.value)
        self._state = state
        invoke_callback(self.options.on_state_change, state)

    def _schedule_retry(self, event: TransportEvent) -> None:
        if self._state is ConnectionState.CLOSED:
            _LOGGER.debug("[%s] Not reconnecting: closed by caller", self.url)
            return
        if self._state is ConnectionState.OVERFLOW:
            return

        self._cancel_timers()
        self._set_state(ConnectionState.RECONNECT_PENDING)
        self.retry(event)

    def _handle_retry_timer(self, event: TransportEvent | None) -> None:
        self._retry_timer = None
        self._retry_count += 1
        invoke_callback(self.options.on_reconnecting, event)
        if self._state is ConnectionState.CLOSED:
            # on_reconnecting closed the controller.
            return
        self.start()

    def _is_open(self) -> bool:
        return (
            self._transport is not None
            and self._transport.ready_state is TransportState.OPEN
        )

    def _default_transport(self) -> Transport:
        return WebSocketTransport(open_timeout=self.options.open_timeout)

    # -------------------------------------------------------------------------
    # Internal: Heartbeat
    # -------------------------------------------------------------------------

    def _setup_heartbeat(self) -> None:
        if self.options.disable_heartbeat:
            return

        self._arm_timer(
            "_heartbeat_timer", self.options.heartbeat_interval, self._send_heartbeat
        )
        self._arm_timer(
            "_pong_timer",
            self.options.effective_pong_timeout,
            self._handle_pong_timeout,
        )

    def _send_heartbeat(self) -> None:
        self._heartbeat_timer = None
        if not self._is_open():
            return
        try:
            self.emit(PING_ACTION)
        except SendFailure as err:
            _LOGGER.error("[%s] Failed to send heartbeat: %s", self.url, err)

    def _handle_pong_timeout(self) -> None:
        self._pong_timer = None
        _LOGGER.warning(
            "[%s] Heartbeat failed: no traffic for %.1fs",
            self.url,
            self.options.effective_pong_timeout,
        )
        self._cancel_heartbeat()
        if self._transport is not None:
            self._heartbeat_expired = True
            self._transport.close(HEARTBEAT_FAILURE_CODE, HEARTBEAT_FAILURE_REASON)

    def _cancel_heartbeat(self) -> None:
        self._cancel_timer("_heartbeat_timer")
        self._cancel_timer("_pong_timer")

    # -------------------------------------------------------------------------
    # Internal: Timers
    # -------------------------------------------------------------------------

    def _arm_timer(self, slot: str, delay: float, callback: Callable[[], None]) -> None:
        self._cancel_timer(slot)
        setattr(self, slot, self._timers.schedule(delay, callback))

    def _cancel_timer(self, slot: str) -> None:
        handle = getattr(self, slot)
        if handle is not None:
            self._timers.cancel(handle)
            setattr(self, slot, None)

    def _cancel_timers(self) -> None:
        self._cancel_timer("_retry_timer")
        self._cancel_heartbeat()

    # -------------------------------------------------------------------------
    # Internal: Network Signals
    # -------------------------------------------------------------------------

    def _handle_network_online(self) -> None:
        _LOGGER.info("[%s] Network online, restarting", self.url)
        self.start()

    def _handle_network_offline(self) -> None:
        _LOGGER.info("[%s] Network offline, closing", self.url)
        self.close(OFFLINE_CLOSE_CODE, OFFLINE_REASON)


def connect(
    url: str,
    options: ReevSocketOptions | None = None,
    **kwargs: Any,
) -> ReevSocket:
    """Create a ReevSocket and start connecting right away.

    Keyword arguments are passed to ReevSocket (transport_factory, timers,
    network, jitter). Must be called with a running event loop when the
    default transport and timers are used.
    """
    socket = ReevSocket(url, options, **kwargs)
    socket.start()
    return socket
