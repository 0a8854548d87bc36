from __future__ import annotations
import asyncio
import logging
import random
import time
from typing import Awaitable, Callable

log = logging.getLogger(__name__)

DEFAULT_JITTER = (0.5, 1.5)


class TokenBucketRateLimiter:
    """
    In-process token bucket shared by every fetch task.

    One instance is created at the composition root and passed by
    reference to the client, so concurrent workers draw from the same
    budget. The asyncio.Lock makes refill + take one atomic step: two
    coroutines can never spend the same token.

    Before queueing for a token each caller sleeps a random jitter, so
    workers released together do not hit the API in lockstep.
    """

    def __init__(
        self,
        rate_per_minute: float,
        burst: int = 1,
        jitter: tuple[float, float] = DEFAULT_JITTER,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        if rate_per_minute <= 0:
            raise ValueError("rate_per_minute must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1")
        low, high = jitter
        if low < 0 or high < low:
            raise ValueError(f"invalid jitter range {jitter!r}")

        self._rate      = rate_per_minute / 60.0   # tokens per second
        self._capacity  = float(burst)
        self._tokens    = float(burst)
        self._jitter    = (low, high)
        self._clock     = clock
        self._sleep     = sleep
        self._rng       = rng or random.Random()
        self._updated   = clock()
        self._lock      = asyncio.Lock()

    @property
    def available_tokens(self) -> float:
        return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._updated
        if elapsed > 0:
            self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
        self._updated = now

    async def acquire(self) -> float:
        """
        Block until one request is admitted. Returns the total seconds
        spent waiting (jitter included).
        """
        waited = self._rng.uniform(*self._jitter)
        if waited > 0:
            await self._sleep(waited)

        async with self._lock:
            self._refill()
            while self._tokens < 1.0:
                delay = (1.0 - self._tokens) / self._rate
                log.debug("Rate limiter empty - waiting %.2fs for a token", delay)
                await self._sleep(delay)
                waited += delay
                self._refill()
            self._tokens -= 1.0

        return waited
