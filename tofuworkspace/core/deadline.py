"""
Deadlines shared by every command of one reconcile pass.

A pass may run a git fetch and several tofu commands. Each of them gets the
time the pass has left rather than a fresh timeout of its own, so a pass as a
whole never runs longer than the configured timeout.
"""

import time
from typing import Callable, Optional


class Deadline:
    """
    A point in time after which no further command may run.

    Args:
        timeout: Seconds from now; None means no deadline
        clock: Monotonic clock, replaceable in tests
    """

    def __init__(self, timeout: Optional[float], clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.timeout = timeout
        self._expires_at = None if timeout is None else clock() + timeout

    def remaining(self) -> Optional[float]:
        """Seconds left, never negative; None when unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def bound(self, timeout: Optional[float]) -> Optional[float]:
        """The shorter of ``timeout`` and the time remaining."""
        remaining = self.remaining()
        if remaining is None:
            return timeout
        if timeout is None:
            return remaining
        return min(timeout, remaining)
