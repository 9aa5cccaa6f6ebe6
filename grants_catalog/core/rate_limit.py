"""
Concurrency controls for the refresh cycle.

- RateLimiter: one call in flight, call starts spaced by a fixed interval
- BoundedExecutor: semaphore-bounded fan-out for independent coroutines
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class RateLimiter:
    """
    Leaky-bucket limiter with a bucket size of one.

    The lock is held for the whole call, so calls never overlap, and
    consecutive calls start at least ``interval`` seconds apart.
    """
    interval: float = 1.0
    last_call: Optional[float] = None
    calls: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def throttle(self) -> None:
        """
        Sleep until the next slot opens and claim it.

        Callers must hold ``lock``; work done under the lock before this
        call does not use up a slot.
        """
        if self.last_call is not None:
            elapsed = time.monotonic() - self.last_call
            if elapsed < self.interval:
                wait = self.interval - elapsed
                logger.debug("rate_limit_wait", seconds=round(wait, 3))
                await asyncio.sleep(wait)

        self.last_call = time.monotonic()
        self.calls += 1

    async def run(self, func: Callable[..., Awaitable[R]], *args: Any, **kwargs: Any) -> R:
        """Wait for a slot, then await ``func(*args, **kwargs)``."""
        async with self.lock:
            await self.throttle()
            return await func(*args, **kwargs)

    def wrap(self, func: Callable[..., Awaitable[R]]) -> Callable[..., Awaitable[R]]:
        """Return a throttled version of ``func`` sharing this limiter."""
        async def throttled(*args: Any, **kwargs: Any) -> R:
            return await self.run(func, *args, **kwargs)

        throttled.__name__ = getattr(func, "__name__", "throttled")
        return throttled


class BoundedExecutor:
    """
    Runs coroutines concurrently with at most ``max_concurrency`` in flight.

    Usage:
        executor = BoundedExecutor(max_concurrency=4)
        results = await executor.map(fetch_round, refs)
    """

    def __init__(self, max_concurrency: int = 9):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.max_concurrency = max_concurrency
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def submit(self, func: Callable[..., Awaitable[R]], *args: Any, **kwargs: Any) -> R:
        async with self._semaphore:
            return await func(*args, **kwargs)

    async def map(
        self,
        func: Callable[[T], Awaitable[R]],
        items: Iterable[T],
    ) -> list:
        """
        Apply ``func`` to every item concurrently.

        Exceptions are returned in place of results so one failing
        item never cancels its siblings.
        """
        return await asyncio.gather(
            *(self.submit(func, item) for item in items),
            return_exceptions=True,
        )
