"""Token-bucket pacing for outbound requests."""
from __future__ import annotations

import time
from threading import Lock
from typing import Callable


class TokenBucket:
    """Classic token bucket.

    ``acquire`` blocks until a token is available. With ``capacity=1`` and
    ``rate=1/interval`` the bucket spaces calls at least ``interval`` seconds
    apart while letting the first call through immediately.
    """

    def __init__(
        self,
        rate: float,
        capacity: float = 1.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        if capacity < 1:
            raise ValueError("capacity must be at least one token")
        self.rate = rate
        self.capacity = capacity
        self._clock = clock
        self._sleep = sleep
        self._tokens = capacity
        self._updated = clock()
        self._lock = Lock()

    @classmethod
    def every(cls, interval_seconds: float, **kwargs) -> "TokenBucket | None":
        """Bucket releasing one token per ``interval_seconds``; ``None`` disables pacing."""

        if interval_seconds <= 0:
            return None
        return cls(rate=1.0 / interval_seconds, capacity=1.0, **kwargs)

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._updated = now

    def try_acquire(self, tokens: float = 1.0) -> bool:
        with self._lock:
            self._refill()
            if self._tokens >= tokens:
                self._tokens -= tokens
                return True
            return False

    def acquire(self, tokens: float = 1.0) -> float:
        """Take ``tokens``, sleeping as needed. Returns the seconds waited."""

        if tokens > self.capacity:
            raise ValueError("cannot acquire more tokens than the bucket holds")
        waited = 0.0
        with self._lock:
            while True:
                self._refill()
                if self._tokens >= tokens:
                    self._tokens -= tokens
                    return waited
                delay = (tokens - self._tokens) / self.rate
                self._sleep(delay)
                waited += delay
