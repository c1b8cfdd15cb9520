"""One-shot timer scheduling used by the connection controller."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, Protocol


class TimerService(Protocol):
    """Schedule and cancel one-shot callbacks.

    Delays are in seconds. The handle returned by ``schedule`` is opaque to
    callers and only ever passed back to ``cancel``.
    """

    def schedule(self, delay: float, callback: Callable[[], None]) -> Any:
        """Run ``callback`` once after ``delay`` seconds."""
        ...

    def cancel(self, handle: Any) -> None:
        """Cancel a scheduled callback. Cancelling twice is harmless."""
        ...


class LoopTimerService:
    """TimerService backed by ``loop.call_later``."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def schedule(
        self, delay: float, callback: Callable[[], None]
    ) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)

    def cancel(self, handle: asyncio.TimerHandle) -> None:
        handle.cancel()
