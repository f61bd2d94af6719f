"""
throttle.py — Outbound rate limiting for third-party APIs.

Nominatim's usage policy allows at most one request per second from a
client. OutboundRateLimiter queues callers (FIFO) and only lets a call
through when the moving window has room.

Built on the `limits` library — the same engine slowapi uses for the
inbound limiter in core/rate_limit.py — with its async in-memory storage.

Usage:
    limiter = OutboundRateLimiter("1/second")
    data = await limiter.run(lambda: client.get(url))
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, TypeVar

from limits import parse
from limits.aio.storage import MemoryStorage
from limits.aio.strategies import MovingWindowRateLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")

_QUEUE_WARNING_SIZE = 10
_MIN_SLEEP = 0.01


class OutboundRateLimiter:
    def __init__(self, rate: str = "1/second", key: str = "outbound") -> None:
        self.rate = parse(rate)
        self._key = key
        self._window = MovingWindowRateLimiter(MemoryStorage())
        self._lock = asyncio.Lock()

        self.queue_size = 0
        self.total_processed = 0
        self.total_errors = 0

        logger.info("Outbound rate limiter initialised (%s, key=%s)", rate, key)

    async def acquire(self) -> None:
        """Block until the window has room, then consume one slot."""
        async with self._lock:
            while not await self._window.hit(self.rate, self._key):
                reset_time, _remaining = await self._window.get_window_stats(
                    self.rate, self._key
                )
                wait = max(reset_time - time.time(), _MIN_SLEEP)
                logger.debug("Rate limit reached for %s, waiting %.2fs", self._key, wait)
                await asyncio.sleep(wait)

    async def run(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Await `fn()` once the limiter lets us through."""
        self.queue_size += 1
        if self.queue_size > _QUEUE_WARNING_SIZE:
            logger.warning(
                "Outbound queue for %s is large (%d waiting) — consider fewer requests",
                self._key,
                self.queue_size,
            )
        try:
            await self.acquire()
        finally:
            self.queue_size -= 1

        try:
            result = await fn()
        except Exception:
            self.total_errors += 1
            raise
        self.total_processed += 1
        return result

    def metrics(self) -> dict[str, int]:
        return {
            "queue_size": self.queue_size,
            "total_processed": self.total_processed,
            "total_errors": self.total_errors,
        }
