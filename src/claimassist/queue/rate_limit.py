"""Token bucket limiting how many jobs a worker starts per time window."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable


class TokenBucket:
    """Allows ``max_tokens`` acquisitions per ``duration`` seconds, refilled continuously."""

    def __init__(
        self,
        max_tokens: int,
        duration: float = 1.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_tokens < 1 or duration <= 0:
            raise ValueError("TokenBucket needs max_tokens >= 1 and duration > 0")
        self._capacity = float(max_tokens)
        self._rate = max_tokens / duration
        self._tokens = float(max_tokens)
        self._clock = clock
        self._sleep = sleep
        self._updated = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
        self._updated = now

    @property
    def available(self) -> float:
        self._refill()
        return self._tokens

    def try_acquire(self) -> bool:
        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            return True
        return False

    def time_until_available(self) -> float:
        self._refill()
        if self._tokens >= 1:
            return 0.0
        return (1 - self._tokens) / self._rate

    async def acquire(self) -> None:
        """Wait until a token is available and take it."""
        async with self._lock:
            while not self.try_acquire():
                await self._sleep(self.time_until_available())
