"""Pytest configuration and fixtures for reevsocket tests."""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from typing import Any

import pytest

from reevsocket.config import ReevSocketOptions
from reevsocket.controller import ReevSocket
from reevsocket.errors import SendFailure
from reevsocket.protocol import NORMAL_CLOSURE
from reevsocket.transport import Frame, Transport, TransportState


class FakeTimers:
    """TimerService with a manual clock."""

    def __init__(self) -> None:
        self.now = 0.0
        self._seq = 0
        self._pending: dict[int, tuple[float, int, Callable[[], None]]] = {}
        self.scheduled: list[float] = []

    def schedule(self, delay: float, callback: Callable[[], None]) -> int:
        self._seq += 1
        self._pending[self._seq] = (self.now + delay, self._seq, callback)
        self.scheduled.append(delay)
        return self._seq

    def cancel(self, handle: int) -> None:
        self._pending.pop(handle, None)

    @property
    def armed(self) -> int:
        """Number of timers waiting to fire."""
        return len(self._pending)

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due timers in order."""
        target = self.now + seconds
        while True:
            due = [entry for entry in self._pending.items() if entry[1][0] <= target]
            if not due:
                break
            handle, (when, _, callback) = min(due, key=lambda item: item[1][:2])
            del self._pending[handle]
            self.now = when
            callback()
        self.now = target


class FakeTransport(Transport):
    """Transport driven by the test through simulate_* helpers."""

    def __init__(self) -> None:
        super().__init__()
        self.url: str | None = None
        self.protocols: list[str] = []
        self.sent: list[Frame] = []
        self.close_calls: list[tuple[int, str]] = []

    def open(self, url: str, protocols: Sequence[str] = ()) -> None:
        self.url = url
        self.protocols = list(protocols)

    def send(self, frame: Frame) -> None:
        if self._state is not TransportState.OPEN:
            raise SendFailure("WebSocket is not open")
        self.sent.append(frame)

    def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        if self._begin_close(code, reason):
            self.close_calls.append((code, reason))

    @property
    def sent_envelopes(self) -> list[dict[str, Any]]:
        return [json.loads(frame) for frame in self.sent]

    def simulate_open(self, subprotocol: str | None = None) -> None:
        self._report_open(subprotocol)

    def simulate_message(self, frame: Frame) -> None:
        self._report_message(frame)

    def simulate_error(self, error: BaseException | None = None) -> None:
        self._report_error(error or ConnectionError("boom"))

    def simulate_close(
        self, code: int = 1006, reason: str = "", *, was_clean: bool = False
    ) -> None:
        """Complete the close, as seen from the peer or after close()."""
        self._report_close(code, reason, was_clean)


class TransportFactory:
    """Factory recording every transport it creates."""

    def __init__(self) -> None:
        self.created: list[FakeTransport] = []

    def __call__(self) -> FakeTransport:
        transport = FakeTransport()
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


@pytest.fixture
def timers() -> FakeTimers:
    """Manual-clock timer service."""
    return FakeTimers()


@pytest.fixture
def transports() -> TransportFactory:
    """Factory of fake transports."""
    return TransportFactory()


def no_jitter() -> float:
    return 0.0


@pytest.fixture
def make_socket(
    transports: TransportFactory, timers: FakeTimers
) -> Callable[..., ReevSocket]:
    """Build a ReevSocket wired to fake transports and timers, without jitter."""

    def _make(url: str = "ws://test/ws", **option_kwargs: Any) -> ReevSocket:
        network = option_kwargs.pop("network", None)
        return ReevSocket(
            url,
            ReevSocketOptions(**option_kwargs),
            transport_factory=transports,
            timers=timers,
            network=network,
            jitter=no_jitter,
        )

    return _make
