"""Reconnect backoff policy."""

from __future__ import annotations

import random
from dataclasses import dataclass

DEFAULT_BASE_DELAY = 0.25
DEFAULT_MAX_DELAY = 16.0


@dataclass(frozen=True)
class ReconnectPolicy:
    """Exponential backoff between reconnect attempts.

    ``delay(n) = min(base_delay * 2**n, max_delay)`` where ``n`` is the
    number of reconnect attempts already made since the last successful
    open. With ``jitter`` left at 0 the sequence is deterministic.

    Attributes:
        base_delay: Delay before the first reconnect (seconds).
        max_delay: Upper bound for any delay (seconds).
        jitter: Fraction of the delay to randomise, in [0, 1).
    """

    base_delay: float = DEFAULT_BASE_DELAY
    max_delay: float = DEFAULT_MAX_DELAY
    jitter: float = 0.0

    def __post_init__(self) -> None:
        if self.base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must not be smaller than base_delay")
        if not 0 <= self.jitter < 1:
            raise ValueError("jitter must be in [0, 1)")

    def delay(self, retry_count: int) -> float:
        """Return the wait before the next reconnect attempt."""
        if retry_count < 0:
            raise ValueError("retry_count must not be negative")

        # Any max_delay is reached long before 2**64.
        exponent = min(retry_count, 64)
        delay = min(self.base_delay * (2**exponent), self.max_delay)
        if self.jitter:
            spread = delay * self.jitter
            delay = min(delay + random.uniform(-spread, spread), self.max_delay)
        return delay
