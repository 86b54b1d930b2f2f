"""Request pacing for the remote catalog API."""

from __future__ import annotations

import asyncio
import time


class RateLimiter:
    """Leaky bucket: ``capacity`` requests may burst, refilled at ``rate`` per second."""

    def __init__(self, *, rate: float = 2.0, capacity: int = 40) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.rate = rate
        self.capacity = capacity
        self._tokens = float(capacity)
        self._updated = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        self._tokens = min(self.capacity, self._tokens + (now - self._updated) * self.rate)
        self._updated = now

    async def acquire(self) -> None:
        async with self._lock:
            self._refill()
            if self._tokens < 1:
                await asyncio.sleep((1 - self._tokens) / self.rate)
                self._refill()
            self._tokens -= 1

    def penalize(self) -> None:
        """Drain the bucket after the server reports throttling."""
        self._tokens = 0.0
        self._updated = time.monotonic()
