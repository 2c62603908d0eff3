"""Per-client sliding-window limiter for checkout submissions.

State is process-local; run a single worker or put the limit in front of the
app (load balancer, API gateway) when scaling out.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from threading import Lock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    """Limits applied when a caller does not pass its own."""

    max_requests: int = 10
    window_seconds: int = 60
    cleanup_interval_seconds: int = 300

    @classmethod
    def from_settings(cls) -> "RateLimitConfig":
        from storefront.core.config import get_settings

        settings = get_settings()
        return cls(
            max_requests=settings.checkout_rate_limit_requests,
            window_seconds=settings.checkout_rate_limit_window_seconds,
        )


class SlidingWindow:
    """Timestamps of one client's accepted requests, oldest first."""

    __slots__ = ("hits",)

    def __init__(self) -> None:
        self.hits: deque[float] = deque()

    def expire(self, now: float, window_seconds: int) -> None:
        cutoff = now - window_seconds
        while self.hits and self.hits[0] <= cutoff:
            self.hits.popleft()

    def retry_after(self, now: float, window_seconds: int, max_requests: int) -> int:
        """Whole seconds until the request that frees a slot leaves the window."""
        if len(self.hits) < max_requests:
            return 0
        freeing = self.hits[len(self.hits) - max_requests]
        return max(1, int(freeing + window_seconds - now) + 1)


class InMemoryRateLimitStorage:
    """Thread-safe limiter keyed by caller, with a background sweep of idle keys."""

    def __init__(self, config: RateLimitConfig | None = None) -> None:
        self.config = config or RateLimitConfig()
        self._windows: dict[str, SlidingWindow] = {}
        self._lock = Lock()
        self._cleanup_task: asyncio.Task | None = None

    async def start_cleanup_task(self) -> None:
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._sweep_forever())
            logger.info("Rate limiter cleanup task started")

    async def stop_cleanup_task(self) -> None:
        if self._cleanup_task is None:
            return
        self._cleanup_task.cancel()
        try:
            await self._cleanup_task
        except asyncio.CancelledError:
            pass
        self._cleanup_task = None
        logger.info("Rate limiter cleanup task stopped")

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.config.cleanup_interval_seconds)
            removed = await self.cleanup()
            if removed:
                logger.debug("Rate limiter dropped %d idle client(s)", removed)

    async def check_and_increment(
        self,
        key: str,
        max_requests: int | None = None,
        window_seconds: int | None = None,
    ) -> tuple[bool, int, int]:
        """Count a request against ``key`` if it fits in the window.

        Args:
            key: Caller identity, e.g. ``checkout:<client ip>``.
            max_requests: Override of the configured limit.
            window_seconds: Override of the configured window.

        Returns:
            Tuple of (allowed, remaining_requests, retry_after_seconds).
            A refused request is not counted.
        """
        limit = max_requests or self.config.max_requests
        window_seconds = window_seconds or self.config.window_seconds
        now = time.time()

        with self._lock:
            window = self._windows.setdefault(key, SlidingWindow())
            window.expire(now, window_seconds)
            if len(window.hits) >= limit:
                return (False, 0, window.retry_after(now, window_seconds, limit))
            window.hits.append(now)
            return (True, limit - len(window.hits), 0)

    async def cleanup(self) -> int:
        """Forget callers with nothing left in the configured window."""
        now = time.time()
        with self._lock:
            idle = []
            for key, window in self._windows.items():
                window.expire(now, self.config.window_seconds)
                if not window.hits:
                    idle.append(key)
            for key in idle:
                del self._windows[key]
        return len(idle)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


_rate_limiter: InMemoryRateLimitStorage | None = None


def get_rate_limiter() -> InMemoryRateLimitStorage:
    """Process-wide limiter, built from settings on first use."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = InMemoryRateLimitStorage(RateLimitConfig.from_settings())
    return _rate_limiter


async def init_rate_limiter() -> InMemoryRateLimitStorage:
    limiter = get_rate_limiter()
    await limiter.start_cleanup_task()
    return limiter


async def shutdown_rate_limiter() -> None:
    if _rate_limiter is not None:
        await _rate_limiter.stop_cleanup_task()
