"""Token bucket rate limiter shared by every outbound call.

Tokens are added at a constant rate up to a burst capacity. Each admitted
attempt consumes one token; when the bucket is empty the caller waits until
the next token is due. Work is never dropped.

Defaults match the Google API client setup this dashboard talks to:
10 requests per second with a burst of 20.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class TokenBucket:
    """Token bucket with injectable clock and sleep.

    The bucket is touched from the event loop and from worker threads, so
    token arithmetic happens under a lock. Waiting happens outside it.

    Example:
        bucket = TokenBucket(rate=10, capacity=20)
        await bucket.acquire()  # returns once a token was taken
    """

    def __init__(
        self,
        rate: float = 10.0,
        capacity: float = 20.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if rate <= 0:
            raise ValueError("rate must be positive")
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.rate = float(rate)
        self.capacity = float(capacity)
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(capacity)
        self._last_refill = clock()
        self._lock = threading.Lock()

    @property
    def tokens(self) -> float:
        """Tokens currently available (after refilling)."""
        with self._lock:
            self._refill(self._clock())
            return self._tokens

    def _refill(self, now: float) -> None:
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._last_refill = now

    def _reserve(self) -> float:
        """Take a token if one is available.

        Returns:
            0.0 when a token was taken, otherwise seconds until one is due.
        """
        with self._lock:
            self._refill(self._clock())
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return 0.0
            return (1.0 - self._tokens) / self.rate

    def try_acquire(self) -> bool:
        """Take a token without waiting.

        Returns:
            True if a token was taken.
        """
        return self._reserve() == 0.0

    async def acquire(self) -> None:
        """Wait until a token is available and take it."""
        while True:
            wait = self._reserve()
            if wait == 0.0:
                return
            logger.debug(f"TokenBucket: empty, waiting {wait:.3f}s")
            await self._sleep(wait)
