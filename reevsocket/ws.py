"""WebSocket connect helpers with reevsocket error mapping."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import aiohttp
import websockets
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import (
    InvalidHandshake,
    InvalidURI,
    WebSocketException,
)
from websockets.typing import Subprotocol

from .errors import (
    TransportHandshakeError,
    TransportOpenFailure,
    TransportTimeout,
)


async def connect_websocket(
    url: str,
    *,
    subprotocols: Sequence[str] | None = None,
    ping_interval: float | None = None,
    timeout: float = 15.0,
) -> ClientConnection:
    """Connect to a WebSocket endpoint with the ``websockets`` client.

    Uses the websockets library which properly implements RFC 6455 frame masking.
    Protocol-level pings are off by default; liveness is tracked with
    application-level heartbeats instead.

    Args:
        url: ``ws://`` or ``wss://`` URL
        subprotocols: Sub-protocols offered during the handshake
        ping_interval: Interval for protocol ping frames, None disables them
        timeout: Connection timeout
    """
    offered = [Subprotocol(name) for name in subprotocols] if subprotocols else None
    try:
        return await asyncio.wait_for(
            websockets.connect(
                url,
                subprotocols=offered,
                ping_interval=ping_interval,
                close_timeout=5,
                max_size=None,
            ),
            timeout=timeout,
        )
    except TimeoutError as err:
        raise TransportTimeout("WebSocket connection timed out") from err
    except (InvalidHandshake, InvalidURI) as err:
        raise TransportHandshakeError("WebSocket handshake failed") from err
    except (OSError, WebSocketException) as err:
        raise TransportOpenFailure("WebSocket connection failed") from err


async def connect_aiohttp_websocket(
    session: aiohttp.ClientSession,
    url: str,
    *,
    protocols: Sequence[str] = (),
    heartbeat: float | None = None,
    timeout: float = 15.0,
) -> aiohttp.ClientWebSocketResponse:
    """Connect to a WebSocket endpoint through an aiohttp session.

    Args:
        session: Session that owns the underlying HTTP connection
        url: ``ws://`` or ``wss://`` URL
        protocols: Sub-protocols offered during the handshake
        heartbeat: aiohttp protocol ping interval, None disables it
        timeout: Connection timeout
    """
    try:
        return await asyncio.wait_for(
            session.ws_connect(
                url,
                protocols=tuple(protocols),
                heartbeat=heartbeat,
                max_msg_size=0,
            ),
            timeout=timeout,
        )
    except TimeoutError as err:
        raise TransportTimeout("WebSocket connection timed out") from err
    except aiohttp.WSServerHandshakeError as err:
        raise TransportHandshakeError("WebSocket handshake failed") from err
    except (OSError, aiohttp.ClientError, ValueError) as err:
        raise TransportOpenFailure("WebSocket connection failed") from err
