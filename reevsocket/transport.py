"""Transport handles driving a single WebSocket connection.

A transport is opened once, reports its lifecycle through four callback
slots and is never reused after it closes. Each handle reports exactly one
terminal event: ``CLOSE`` once a connection was established, or ``ERROR``
when opening failed or reading broke unexpectedly.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Coroutine, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

import aiohttp
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed

from .errors import SendFailure, TransportAbnormalClose, TransportOpenFailure
from .protocol import ABNORMAL_CLOSURE, NORMAL_CLOSURE
from .ws import connect_aiohttp_websocket, connect_websocket

_LOGGER = logging.getLogger(__name__)

Frame = str | bytes

_AIOHTTP_CLOSE_TYPES = (
    aiohttp.WSMsgType.CLOSE,
    aiohttp.WSMsgType.CLOSING,
    aiohttp.WSMsgType.CLOSED,
)


class TransportState(Enum):
    """Ready state of a transport handle."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class TransportEventType(Enum):
    """Lifecycle events reported by a transport."""

    OPEN = "open"
    MESSAGE = "message"
    ERROR = "error"
    CLOSE = "close"


@dataclass(frozen=True)
class TransportEvent:
    """Normalized transport event.

    ``data`` holds the raw frame for MESSAGE events and the negotiated
    sub-protocol for OPEN events. ``code``, ``reason`` and ``was_clean`` are
    set on CLOSE events. ``error`` is set on ERROR events and on abnormal
    CLOSE events.
    """

    type: TransportEventType
    data: Any = None
    code: int | None = None
    reason: str = ""
    was_clean: bool = False
    error: BaseException | None = None


TransportCallback = Callable[[TransportEvent], None]


class Transport(ABC):
    """Connectable, message-framed channel."""

    def __init__(self) -> None:
        self.on_open: TransportCallback | None = None
        self.on_message: TransportCallback | None = None
        self.on_error: TransportCallback | None = None
        self.on_close: TransportCallback | None = None
        self._state = TransportState.CONNECTING
        self._local_close: tuple[int, str] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def ready_state(self) -> TransportState:
        """Current ready state."""
        return self._state

    @abstractmethod
    def open(self, url: str, protocols: Sequence[str] = ()) -> None:
        """Start connecting to ``url``. Completion is reported via on_open."""

    @abstractmethod
    def send(self, frame: Frame) -> None:
        """Queue ``frame`` for sending.

        Raises:
            SendFailure: If the transport is not open.
        """

    @abstractmethod
    def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        """Start the closing handshake. Completion is reported via on_close."""

    def detach(self) -> None:
        """Drop all installed callbacks."""
        self.on_open = None
        self.on_message = None
        self.on_error = None
        self.on_close = None

    # -------------------------------------------------------------------------
    # Internal: event reporting
    # -------------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _report_open(self, subprotocol: str | None = None) -> None:
        self._state = TransportState.OPEN
        if self.on_open is not None:
            self.on_open(
                TransportEvent(type=TransportEventType.OPEN, data=subprotocol)
            )

    def _report_message(self, frame: Frame) -> None:
        if self.on_message is not None:
            self.on_message(TransportEvent(type=TransportEventType.MESSAGE, data=frame))

    def _report_error(self, error: BaseException) -> None:
        self._state = TransportState.CLOSED
        if self.on_error is not None:
            self.on_error(TransportEvent(type=TransportEventType.ERROR, error=error))

    def _report_close(self, code: int, reason: str, was_clean: bool) -> None:
        self._state = TransportState.CLOSED
        if self._local_close is not None:
            code, reason = self._local_close

        error: BaseException | None = None
        if code != NORMAL_CLOSURE or not was_clean:
            error = TransportAbnormalClose(code, reason)

        if self.on_close is not None:
            self.on_close(
                TransportEvent(
                    type=TransportEventType.CLOSE,
                    code=code,
                    reason=reason,
                    was_clean=was_clean,
                    error=error,
                )
            )

    def _begin_close(self, code: int, reason: str) -> bool:
        """Record a local close request. Returns False if already closing."""
        if self._state in (TransportState.CLOSING, TransportState.CLOSED):
            return False
        self._local_close = (code, reason)
        self._state = TransportState.CLOSING
        return True


class WebSocketTransport(Transport):
    """Transport built on the ``websockets`` asyncio client."""

    def __init__(
        self,
        *,
        open_timeout: float = 15.0,
        ping_interval: float | None = None,
    ) -> None:
        super().__init__()
        self._open_timeout = open_timeout
        self._ping_interval = ping_interval
        self._ws: ClientConnection | None = None
        self._runner: asyncio.Task[None] | None = None

    def open(self, url: str, protocols: Sequence[str] = ()) -> None:
        if self._runner is not None:
            raise RuntimeError("Transport was already opened")
        self._runner = self._spawn(self._run(url, list(protocols)))

    def send(self, frame: Frame) -> None:
        if self._state is not TransportState.OPEN or self._ws is None:
            raise SendFailure("WebSocket is not open")
        self._spawn(self._send(self._ws, frame))

    def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        if not self._begin_close(code, reason):
            return
        # Still connecting: _run closes the socket once the handshake ends.
        if self._ws is not None:
            self._spawn(self._ws.close(code, reason))

    async def _send(self, ws: ClientConnection, frame: Frame) -> None:
        try:
            await ws.send(frame)
        except ConnectionClosed as err:
            # Reader observes the same closure and reports it.
            _LOGGER.debug("Send dropped, connection closed: %s", err)

    async def _run(self, url: str, protocols: list[str]) -> None:
        try:
            ws = await connect_websocket(
                url,
                subprotocols=protocols,
                ping_interval=self._ping_interval,
                timeout=self._open_timeout,
            )
        except TransportOpenFailure as err:
            _LOGGER.debug("Open %s failed: %s", url, err)
            self._report_error(err)
            return

        self._ws = ws
        if self._local_close is not None:
            await ws.close(*self._local_close)
            self._report_close(*self._local_close, was_clean=True)
            return

        self._report_open(ws.subprotocol)

        try:
            async for frame in ws:
                self._report_message(frame)
        except ConnectionClosed as err:
            code, reason = _closed_details(err)
            self._report_close(code, reason, was_clean=err.rcvd is not None)
        except Exception as err:
            _LOGGER.debug("Reading from %s failed: %s", url, err)
            self._report_error(err)
            await ws.close()
        else:
            # Normal iteration completion means the peer closed gracefully.
            self._report_close(
                ws.close_code or NORMAL_CLOSURE,
                ws.close_reason or "",
                was_clean=True,
            )


class AiohttpTransport(Transport):
    """Transport built on ``aiohttp.ClientSession.ws_connect``.

    When no session is given, the transport creates one and closes it with
    the connection.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession | None = None,
        *,
        open_timeout: float = 15.0,
        heartbeat: float | None = None,
    ) -> None:
        super().__init__()
        self._session = session
        self._owns_session = session is None
        self._open_timeout = open_timeout
        self._heartbeat = heartbeat
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._runner: asyncio.Task[None] | None = None

    def open(self, url: str, protocols: Sequence[str] = ()) -> None:
        if self._runner is not None:
            raise RuntimeError("Transport was already opened")
        self._runner = self._spawn(self._run(url, list(protocols)))

    def send(self, frame: Frame) -> None:
        if self._state is not TransportState.OPEN or self._ws is None:
            raise SendFailure("WebSocket is not open")
        if isinstance(frame, str):
            self._spawn(self._ws.send_str(frame))
        else:
            self._spawn(self._ws.send_bytes(frame))

    def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        if not self._begin_close(code, reason):
            return
        if self._ws is not None:
            self._spawn(self._ws.close(code=code, message=reason.encode()))

    async def _run(self, url: str, protocols: list[str]) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        try:
            await self._communicate(self._session, url, protocols)
        finally:
            if self._owns_session:
                await self._session.close()

    async def _communicate(
        self, session: aiohttp.ClientSession, url: str, protocols: list[str]
    ) -> None:
        try:
            ws = await connect_aiohttp_websocket(
                session,
                url,
                protocols=protocols,
                heartbeat=self._heartbeat,
                timeout=self._open_timeout,
            )
        except TransportOpenFailure as err:
            _LOGGER.debug("Open %s failed: %s", url, err)
            self._report_error(err)
            return

        self._ws = ws
        if self._local_close is not None:
            code, reason = self._local_close
            await ws.close(code=code, message=reason.encode())
            self._report_close(code, reason, was_clean=True)
            return

        self._report_open(ws.protocol)

        reason = ""
        while True:
            msg = await ws.receive()
            if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                self._report_message(msg.data)
            elif msg.type is aiohttp.WSMsgType.ERROR:
                err = ws.exception() or TransportOpenFailure("WebSocket error")
                _LOGGER.debug("Reading from %s failed: %s", url, err)
                self._report_error(err)
                await ws.close()
                return
            elif msg.type in _AIOHTTP_CLOSE_TYPES:
                # Peer close frames carry the reason in ``extra``.
                if msg.type is aiohttp.WSMsgType.CLOSE:
                    reason = msg.extra or ""
                break

        code = ws.close_code if ws.close_code is not None else ABNORMAL_CLOSURE
        self._report_close(code, reason, was_clean=code != ABNORMAL_CLOSURE)


def _closed_details(err: ConnectionClosed) -> tuple[int, str]:
    """Extract the close code and reason seen by the client."""
    if err.rcvd is not None:
        return err.rcvd.code, err.rcvd.reason
    if err.sent is not None:
        return err.sent.code, err.sent.reason
    return ABNORMAL_CLOSURE, ""
