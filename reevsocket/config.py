"""Configuration for reevsocket controllers."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .controller import ConnectionState
    from .transport import TransportEvent

EventCallback = Callable[["TransportEvent"], Any]

DEFAULT_DELAY = 10.0
DEFAULT_MAX_DELAY = 30.0
DEFAULT_HEARTBEAT_INTERVAL = 30.0
PONG_TIMEOUT_GRACE = 5.0


@dataclass
class ReevSocketOptions:
    """Options for a ReevSocket controller.

    Durations are in seconds.

    Attributes:
        max_attempts: Reconnect attempts before giving up (None: unbounded)
        delay: Base delay between reconnect attempts
        exponential_factor: Backoff growth factor (0 disables backoff)
        max_delay: Upper bound for the exponential delay
        heartbeat_interval: Idle time before a ping envelope is sent
        disable_heartbeat: Turn the heartbeat protocol off entirely
        pong_timeout_interval: Idle time before the connection is declared
            dead (default: heartbeat_interval + 5)
        metadata: Initial metadata attached to every outbound envelope
        enable_acknowledge: Reply with an ``ack`` envelope to every dispatched
            inbound envelope
        protocols: Sub-protocols offered when connecting
        open_timeout: Timeout for establishing a connection
        on_connect: Called with the OPEN event
        on_close: Called with every CLOSE event
        on_message: Called with every MESSAGE event, parsed or not
        on_error: Called with every ERROR event
        on_reconnecting: Called with the triggering event before a reconnect
        on_overflow: Called with the triggering event once attempts run out
        on_state_change: Called with the new ConnectionState on transitions
    """

    max_attempts: int | None = None
    delay: float = DEFAULT_DELAY
    exponential_factor: float = 0
    max_delay: float = DEFAULT_MAX_DELAY
    heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL
    disable_heartbeat: bool = False
    pong_timeout_interval: float | None = None
    metadata: Any = None
    enable_acknowledge: bool = False
    protocols: list[str] = field(default_factory=list)
    open_timeout: float = 15.0

    on_connect: EventCallback | None = None
    on_close: EventCallback | None = None
    on_message: EventCallback | None = None
    on_error: EventCallback | None = None
    on_reconnecting: EventCallback | None = None
    on_overflow: EventCallback | None = None
    on_state_change: Callable[[ConnectionState], Any] | None = None

    def __post_init__(self) -> None:
        if self.max_attempts is not None and self.max_attempts < 0:
            raise ValueError("max_attempts must be non-negative")
        if self.delay < 0:
            raise ValueError("delay must be non-negative")
        if self.exponential_factor < 0:
            raise ValueError("exponential_factor must be non-negative")
        if self.max_delay < 0:
            raise ValueError("max_delay must be non-negative")
        if self.heartbeat_interval <= 0:
            raise ValueError("heartbeat_interval must be positive")
        if self.pong_timeout_interval is not None and self.pong_timeout_interval <= 0:
            raise ValueError("pong_timeout_interval must be positive")
        if self.open_timeout <= 0:
            raise ValueError("open_timeout must be positive")
        if isinstance(self.protocols, str):
            self.protocols = [self.protocols]
        else:
            self.protocols = list(self.protocols)

    @property
    def effective_pong_timeout(self) -> float:
        """Pong timeout, defaulting to heartbeat_interval + 5 seconds."""
        if self.pong_timeout_interval is not None:
            return self.pong_timeout_interval
        return self.heartbeat_interval + PONG_TIMEOUT_GRACE
