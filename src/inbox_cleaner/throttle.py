"""Request pacing for outbound Gmail calls."""

from __future__ import annotations

import time
from typing import Callable


class RateLimiter:
    """Depth-1 leaky bucket: at most ``rate`` calls per second.

    Every call to :meth:`wait` sleeps out whatever is left of the minimum
    interval since the previous call. A ``cost`` above one reserves that many
    intervals (used for HTTP batches that carry several sub-requests).
    """

    def __init__(
        self,
        rate_per_second: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if rate_per_second <= 0:
            raise ValueError("rate_per_second must be positive")
        self.min_interval = 1.0 / rate_per_second
        self._clock = clock
        self._sleep = sleep
        self._last_request: float | None = None
        self._last_cost = 1

    def wait(self, cost: int = 1) -> float:
        """Block until the next call may go out; return the time slept."""
        slept = 0.0
        now = self._clock()
        if self._last_request is not None:
            remaining = self._last_request + self.min_interval * self._last_cost - now
            if remaining > 0:
                self._sleep(remaining)
                slept = remaining
                now = self._clock()
        self._last_request = now
        self._last_cost = max(1, cost)
        return slept
