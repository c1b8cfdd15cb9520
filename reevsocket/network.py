"""Host network reachability signals.

Controllers take a ``NetworkSignals`` implementation instead of reaching into
global state. ``NetworkMonitor`` is a plain in-process implementation that
host code drives by calling ``set_online`` and ``set_offline``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol

from .registry import invoke_callback

_LOGGER = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]


class NetworkSignals(Protocol):
    """Source of "became reachable" / "became unreachable" notifications."""

    def subscribe_online(self, callback: Callable[[], None]) -> Unsubscribe:
        """Call ``callback`` whenever the network becomes reachable."""
        ...

    def subscribe_offline(self, callback: Callable[[], None]) -> Unsubscribe:
        """Call ``callback`` whenever the network becomes unreachable."""
        ...


class NetworkMonitor:
    """Manually driven NetworkSignals implementation."""

    def __init__(self, *, online: bool = True) -> None:
        self._online = online
        self._online_callbacks: list[Callable[[], None]] = []
        self._offline_callbacks: list[Callable[[], None]] = []

    @property
    def is_online(self) -> bool:
        """Last reported reachability."""
        return self._online

    def subscribe_online(self, callback: Callable[[], None]) -> Unsubscribe:
        return self._subscribe(self._online_callbacks, callback)

    def subscribe_offline(self, callback: Callable[[], None]) -> Unsubscribe:
        return self._subscribe(self._offline_callbacks, callback)

    def set_online(self) -> None:
        """Report that the network became reachable."""
        if self._online:
            return
        self._online = True
        _LOGGER.debug("Network online")
        for callback in list(self._online_callbacks):
            invoke_callback(callback)

    def set_offline(self) -> None:
        """Report that the network became unreachable."""
        if not self._online:
            return
        self._online = False
        _LOGGER.debug("Network offline")
        for callback in list(self._offline_callbacks):
            invoke_callback(callback)

    @staticmethod
    def _subscribe(
        callbacks: list[Callable[[], None]], callback: Callable[[], None]
    ) -> Unsubscribe:
        callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe
