"""Action listener registry with isolated dispatch."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

_LOGGER = logging.getLogger(__name__)

Listener = Callable[..., Any]

# Strong references to callback tasks until they finish.
_BACKGROUND_TASKS: set[asyncio.Task[Any]] = set()


def _log_task_failure(task: asyncio.Task[Any]) -> None:
    _BACKGROUND_TASKS.discard(task)
    if task.cancelled():
        return
    err = task.exception()
    if err is not None:
        _LOGGER.error(
            "Callback %s failed: %s", task.get_name(), err, exc_info=err
        )


def invoke_callback(callback: Listener | None, *args: Any) -> bool:
    """Invoke a caller-supplied callback, logging instead of raising.

    Coroutine results are scheduled on the running event loop.

    Returns:
        True if the callback ran without raising, False otherwise.
    """
    if callback is None:
        return True

    try:
        result = callback(*args)
    except Exception as err:
        _LOGGER.exception("Callback %r raised: %s", callback, err)
        return False

    if inspect.iscoroutine(result):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            _LOGGER.error("Callback %r returned a coroutine with no running loop", callback)
            result.close()
            return False
        task = loop.create_task(
            result, name=getattr(callback, "__qualname__", repr(callback))
        )
        _BACKGROUND_TASKS.add(task)
        task.add_done_callback(_log_task_failure)

    return True


class EventRegistry:
    """Map action names to ordered listener lists.

    Listeners are append-only and run in registration order. The same
    callable may be registered more than once and then runs once per
    registration.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def register(self, action: str, listener: Listener) -> None:
        """Append ``listener`` to the listeners for ``action``."""
        if not callable(listener):
            raise TypeError(f"Listener for {action!r} is not callable")
        self._listeners.setdefault(action, []).append(listener)

    def dispatch(self, action: str, payload: Any = None) -> int:
        """Call every listener for ``action`` with ``payload``.

        A failing listener is logged and does not prevent the remaining
        listeners for the same action from running.

        Returns:
            Number of listeners invoked.
        """
        listeners = self._listeners.get(action)
        if not listeners:
            return 0

        # Listeners registered during dispatch run from the next frame on.
        snapshot = list(listeners)
        for listener in snapshot:
            invoke_callback(listener, payload)

        return len(snapshot)

    def listeners(self, action: str) -> tuple[Listener, ...]:
        """Return the listeners registered for ``action``."""
        return tuple(self._listeners.get(action, ()))

    def actions(self) -> tuple[str, ...]:
        """Return the actions that have at least one listener."""
        return tuple(self._listeners)

    def __contains__(self, action: object) -> bool:
        return isinstance(action, str) and bool(self._listeners.get(action))

    def __len__(self) -> int:
        return len(self._listeners)
