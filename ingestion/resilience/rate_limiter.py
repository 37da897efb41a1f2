"""Per-source concurrency ceiling with minimum call spacing."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Optional


class RateLimiter:
    """Bounds in-flight calls and spaces call starts by ``min_interval`` seconds.

    Usage::

        async with limiter:
            await client.get(url)
    """

    def __init__(
        self,
        name: str,
        *,
        max_concurrent: int = 3,
        min_interval: float = 1.5,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self.name = name
        self.max_concurrent = max_concurrent
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._next_start: Optional[float] = None
        self._in_flight = 0
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._spacing_lock: Optional[asyncio.Lock] = None

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def _primitives(self) -> tuple[asyncio.Semaphore, asyncio.Lock]:
        loop = asyncio.get_running_loop()
        if self._loop is not loop or self._semaphore is None or self._spacing_lock is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrent)
            self._spacing_lock = asyncio.Lock()
            self._loop = loop
        return self._semaphore, self._spacing_lock

    async def acquire(self) -> None:
        semaphore, spacing_lock = self._primitives()
        await semaphore.acquire()
        try:
            async with spacing_lock:
                now = self._clock()
                if self._next_start is not None and now < self._next_start:
                    await self._sleep(self._next_start - now)
                    now = self._clock()
                self._next_start = max(now, self._next_start or now) + self.min_interval
        except BaseException:
            semaphore.release()
            raise
        self._in_flight += 1

    def release(self) -> None:
        assert self._semaphore is not None
        self._in_flight -= 1
        self._semaphore.release()

    async def __aenter__(self) -> "RateLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.release()
