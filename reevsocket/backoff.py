"""Reconnect delay computation."""

from __future__ import annotations

import secrets
from collections.abc import Callable

JITTER_MAX = 1.0


def default_jitter() -> float:
    """Return a uniform jitter in [0, JITTER_MAX) with millisecond steps."""
    # secrets silences bandit
    return secrets.randbelow(1000) / 1000 * JITTER_MAX


def compute_retry_delay(
    retry_count: int,
    *,
    delay: float = 10.0,
    exponential_factor: float = 0,
    max_delay: float = 30.0,
    jitter: Callable[[], float] = default_jitter,
) -> float:
    """Compute the wait before the next reconnect attempt.

    With ``exponential_factor == 0`` the base ``delay`` is used unchanged.
    Otherwise the delay grows as ``delay * exponential_factor ** retry_count``
    and is capped at ``max_delay``. A jitter is added in both cases so that
    many clients do not reconnect in lockstep.

    Args:
        retry_count: Attempts already made since the last successful open.
        delay: Base delay in seconds.
        exponential_factor: Growth factor, 0 disables exponential backoff.
        max_delay: Upper bound for the exponential delay in seconds.
        jitter: Source of the random offset added to the delay.

    Returns:
        Delay in seconds.
    """
    if retry_count < 0:
        raise ValueError("retry_count must be non-negative")

    if exponential_factor == 0:
        base = delay
    else:
        try:
            base = min(delay * exponential_factor**retry_count, max_delay)
        except OverflowError:
            base = max_delay

    return base + jitter()
