# src/source/rate_limiter.py — v1
"""Budget-to-interval rate limiter for one sequential worker.

A budget of N requests per fixed window becomes a minimum spacing of
window / N seconds between granted slots. Callers suspend on acquire()
until their slot arrives; nothing spins.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """Grants slots no closer together than ``interval`` seconds.

    Safe for sequential use inside one worker. Concurrent acquirers on the
    same instance are served in call order through an asyncio lock; the
    limiter does not coordinate across processes.
    """

    def __init__(
        self,
        budget: int,
        window_s: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        name: str = "api",
    ) -> None:
        if budget <= 0:
            raise ValueError("budget must be greater than 0")
        if window_s <= 0:
            raise ValueError("window_s must be greater than 0")
        self._interval = window_s / budget
        self._clock = clock
        self._sleep = sleep
        self._name = name
        self._last_grant: float | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_interval(
        cls,
        interval_s: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        name: str = "api",
    ) -> RateLimiter:
        """Build a limiter from a fixed spacing instead of a budget."""
        return cls(1, interval_s, clock=clock, sleep=sleep, name=name)

    @property
    def interval(self) -> float:
        """Minimum seconds between two granted slots."""
        return self._interval

    async def acquire(self) -> None:
        """Suspend until ``last_grant + interval`` has elapsed, then grant."""
        async with self._lock:
            if self._last_grant is not None:
                wait = self._last_grant + self._interval - self._clock()
                if wait > 0:
                    logger.debug("Rate limiter '%s' waiting %.2fs", self._name, wait)
                    await self._sleep(wait)
            self._last_grant = self._clock()
