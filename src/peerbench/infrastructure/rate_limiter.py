"""Thread-safe sliding window rate limiter."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Callable, Deque, Optional

LOGGER = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    """Admits at most ``rate_limit`` calls per ``time_window`` seconds.

    Callers over the limit are suspended until the oldest admission leaves the
    window, never rejected. Only the start of calls is limited; how many admitted
    calls are still running is not tracked here.
    """

    def __init__(
        self,
        rate_limit: int = 20,
        time_window: float = 3.0,
        *,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        if rate_limit <= 0:
            raise ValueError("rate_limit must be positive")
        if time_window <= 0:
            raise ValueError("time_window must be positive")
        self.rate_limit = rate_limit
        self.time_window = time_window
        self._clock = clock or time.monotonic
        self._sleep = sleep or time.sleep
        self._timestamps: Deque[float] = deque()
        self._lock = threading.Lock()

    def _evict(self, now: float) -> None:
        while self._timestamps and now - self._timestamps[0] >= self.time_window:
            self._timestamps.popleft()

    def try_acquire(self) -> Optional[float]:
        """Record an admission if there is room; otherwise return the seconds to wait."""
        with self._lock:
            now = self._clock()
            self._evict(now)
            if len(self._timestamps) < self.rate_limit:
                self._timestamps.append(now)
                return None
            return self.time_window - (now - self._timestamps[0])

    def acquire(self) -> float:
        """Block until a call may start; return the total seconds spent waiting."""
        waited = 0.0
        while True:
            wait = self.try_acquire()
            if wait is None:
                return waited
            LOGGER.debug("Rate limit of %d calls per %.2fs reached; waiting %.3fs", self.rate_limit, self.time_window, wait)
            self._sleep(wait)
            waited += wait

    @property
    def pending(self) -> int:
        """Admissions still inside the current window."""
        with self._lock:
            self._evict(self._clock())
            return len(self._timestamps)


__all__ = ["SlidingWindowRateLimiter"]
