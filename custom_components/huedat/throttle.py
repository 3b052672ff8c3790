"""Shared throttling helpers for the Hue Dat integration."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
import time
from typing import Any

SleepCallable = Callable[[float], Awaitable[Any]]
MonotonicCallable = Callable[[], float]


@dataclass(slots=True)
class MonotonicRateLimiter:
    """Enforce a minimum interval between asynchronous calls."""

    lock: asyncio.Lock
    monotonic: MonotonicCallable
    sleep: SleepCallable
    min_interval: float
    _last_monotonic: float | None = None

    async def async_throttle(
        self, *, on_wait: Callable[[float], None] | None = None
    ) -> float:
        """Sleep if required to honour ``min_interval`` seconds between calls.

        The timestamp is taken once the wait resolves, so concurrent callers
        are spaced by at least ``min_interval`` after each other.
        """

        async with self.lock:
            now = self.monotonic()
            wait = 0.0
            if self._last_monotonic is not None:
                wait = self.min_interval - (now - self._last_monotonic)
            if wait > 0:
                if on_wait is not None:
                    on_wait(wait)
                await self.sleep(wait)
                now = self.monotonic()
            self._last_monotonic = now
            return max(wait, 0.0)

    def reset(self) -> None:
        """Reset the stored timestamp so the next call executes immediately."""

        self._last_monotonic = None

    def last_timestamp(self) -> float | None:
        """Return the timestamp of the most recent throttled call."""

        return self._last_monotonic


@dataclass(slots=True)
class KeyedRateLimiter:
    """Hold one :class:`MonotonicRateLimiter` per key.

    Keys never wait on each other; limiters are created on first use and kept
    for the lifetime of the owner.
    """

    min_interval: float
    monotonic: MonotonicCallable = time.monotonic
    sleep: SleepCallable = asyncio.sleep
    _limiters: dict[str, MonotonicRateLimiter] = field(default_factory=dict)

    def limiter(self, key: str) -> MonotonicRateLimiter:
        """Return the limiter for ``key``, creating it if needed."""

        limiter = self._limiters.get(key)
        if limiter is None:
            limiter = MonotonicRateLimiter(
                lock=asyncio.Lock(),
                monotonic=self.monotonic,
                sleep=self.sleep,
                min_interval=self.min_interval,
            )
            self._limiters[key] = limiter
        return limiter

    async def async_throttle(
        self, key: str, *, on_wait: Callable[[float], None] | None = None
    ) -> float:
        """Wait until ``key`` may be used again and return the delay applied."""

        return await self.limiter(key).async_throttle(on_wait=on_wait)

    def last_timestamp(self, key: str) -> float | None:
        """Return the last dispatch timestamp for ``key``."""

        limiter = self._limiters.get(key)
        return limiter.last_timestamp() if limiter else None

    def __len__(self) -> int:
        return len(self._limiters)


__all__ = ["KeyedRateLimiter", "MonotonicRateLimiter"]
