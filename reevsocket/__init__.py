"""Self-healing WebSocket connections with heartbeats and action dispatch."""

__version__ = "0.1.0"

from .backoff import compute_retry_delay
from .config import ReevSocketOptions
from .controller import ConnectionState, ReevSocket, connect
from .errors import (
    HeartbeatTimeout,
    MalformedEnvelope,
    ReevSocketError,
    SendFailure,
    TransportAbnormalClose,
    TransportHandshakeError,
    TransportOpenFailure,
    TransportTimeout,
)
from .network import NetworkMonitor, NetworkSignals
from .protocol import (
    HEARTBEAT_FAILURE_CODE,
    NORMAL_CLOSURE,
    Envelope,
    build_envelope,
    decode_envelope,
    encode_envelope,
)
from .registry import EventRegistry
from .timers import LoopTimerService, TimerService
from .transport import (
    AiohttpTransport,
    Transport,
    TransportEvent,
    TransportEventType,
    TransportState,
    WebSocketTransport,
)
from .ws import connect_aiohttp_websocket, connect_websocket

__all__ = [
    "HEARTBEAT_FAILURE_CODE",
    "NORMAL_CLOSURE",
    "AiohttpTransport",
    "ConnectionState",
    "Envelope",
    "EventRegistry",
    "HeartbeatTimeout",
    "LoopTimerService",
    "MalformedEnvelope",
    "NetworkMonitor",
    "NetworkSignals",
    "ReevSocket",
    "ReevSocketError",
    "ReevSocketOptions",
    "SendFailure",
    "TimerService",
    "Transport",
    "TransportAbnormalClose",
    "TransportEvent",
    "TransportEventType",
    "TransportHandshakeError",
    "TransportOpenFailure",
    "TransportState",
    "TransportTimeout",
    "WebSocketTransport",
    "__version__",
    "build_envelope",
    "compute_retry_delay",
    "connect",
    "connect_aiohttp_websocket",
    "connect_websocket",
    "decode_envelope",
    "encode_envelope",
]
