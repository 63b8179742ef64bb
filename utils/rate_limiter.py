"""
Request pacing for the Google Sheets API.

Sheets enforces a per-user quota (60 read requests per minute by default).
Pacing requests locally keeps bursts, like the health check reading every
tab at once, from tripping 429s. This is pacing only: a request that still
fails is not retried.

Usage:
    from utils.rate_limiter import get_rate_limiter

    limiter = get_rate_limiter("sheets")
    await limiter.acquire()
    response = await client.get(url)
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


class AsyncRateLimiter:
    """
    Token bucket limiter for coroutines sharing one event loop.

    Args:
        rate: Requests allowed per period (None = unlimited)
        period: Period length in seconds
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        rate: Optional[int] = None,
        period: float = 60,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.rate = rate
        self.period = period
        self._clock = clock or time.monotonic
        self._lock = asyncio.Lock()
        self._tokens: float = float(rate) if rate else float("inf")
        self._last_refill: Optional[float] = None

    async def acquire(self) -> None:
        """Wait until a request may be sent. Returns immediately when unlimited."""
        if not self.rate:
            return

        async with self._lock:
            now = self._clock()
            if self._last_refill is None:
                self._last_refill = now

            elapsed = now - self._last_refill
            self._tokens = min(float(self.rate), self._tokens + elapsed * (self.rate / self.period))
            self._last_refill = now

            if self._tokens < 1:
                wait_time = (1 - self._tokens) * (self.period / self.rate)
                logger.debug(f"Sheets quota pacing: waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)
                self._tokens = 1
                self._last_refill = self._clock()

            self._tokens -= 1


class RateLimiterPool:
    """Named limiters shared by every transport in the process."""

    DEFAULT_LIMITS: Dict[str, Dict[str, Optional[float]]] = {
        "sheets": {"rate": 60, "period": 60},
    }

    def __init__(self):
        self._limiters: Dict[str, AsyncRateLimiter] = {}

    def get(self, name: str) -> AsyncRateLimiter:
        if name not in self._limiters:
            limits = self.DEFAULT_LIMITS.get(name, {"rate": None, "period": 60})
            self.configure(name, limits["rate"], limits["period"])
        return self._limiters[name]

    def configure(self, name: str, rate: Optional[int], period: float = 60) -> AsyncRateLimiter:
        """Replace the limiter for name (rate None or 0 disables pacing)."""
        limiter = AsyncRateLimiter(rate=rate or None, period=period)
        self._limiters[name] = limiter
        if rate:
            logger.info(f"Rate limiter for {name}: {rate} requests per {period}s")
        else:
            logger.debug(f"Rate limiter for {name}: unlimited")
        return limiter

    def ensure(self, name: str, rate: Optional[int], period: float = 60) -> AsyncRateLimiter:
        """Pooled limiter for name, replaced only when rate or period changed."""
        limiter = self._limiters.get(name)
        if limiter is not None and limiter.rate == (rate or None) and limiter.period == period:
            return limiter
        return self.configure(name, rate, period)

    def reset(self) -> None:
        self._limiters.clear()


_global_pool = RateLimiterPool()


def get_rate_limiter(name: str) -> AsyncRateLimiter:
    return _global_pool.get(name)


def configure_rate_limiter(name: str, rate: Optional[int], period: float = 60) -> AsyncRateLimiter:
    return _global_pool.configure(name, rate, period)


def ensure_rate_limiter(name: str, rate: Optional[int], period: float = 60) -> AsyncRateLimiter:
    return _global_pool.ensure(name, rate, period)


def reset_limiters() -> None:
    """Drop every pooled limiter (tests)."""
    _global_pool.reset()
