"""Error types for reevsocket connections."""

from __future__ import annotations


class ReevSocketError(Exception):
    """Base error for reevsocket failures."""


class TransportOpenFailure(ReevSocketError):
    """Opening the transport connection failed."""


class TransportTimeout(TransportOpenFailure):
    """Timeout while opening the transport connection."""


class TransportHandshakeError(TransportOpenFailure):
    """WebSocket handshake failed."""


class TransportAbnormalClose(ReevSocketError):
    """The transport closed with a code other than normal closure."""

    def __init__(self, code: int, reason: str = "") -> None:
        message = f"Connection closed abnormally (code={code})"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.code = code
        self.reason = reason


class HeartbeatTimeout(TransportAbnormalClose):
    """No inbound traffic arrived within the pong timeout window."""


class MalformedEnvelope(ReevSocketError, ValueError):
    """Inbound frame is not a valid message envelope."""


class SendFailure(ReevSocketError):
    """A frame could not be sent."""
