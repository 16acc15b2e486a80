"""
In-process fixed-window rate limiter.

State lives in this object only: it is reset when the process restarts and is
not shared between instances.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict

from .base import RateLimiter, RateLimitResult

logger = logging.getLogger(__name__)


@dataclass
class RateLimitEntry:
    """Request count for one address in the current window."""
    count: int
    window_start: float


class InMemoryRateLimiter(RateLimiter):
    """
    Fixed-window counter with one independent store per endpoint.

    Stale entries (older than two windows) are evicted lazily, at most once per
    window for each endpoint.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        """
        Args:
            clock: Wall-clock source in epoch seconds (injectable for tests)
        """
        self.clock = clock
        self._stores: Dict[str, Dict[str, RateLimitEntry]] = {}
        self._last_purge: Dict[str, float] = {}
        self._lock = threading.Lock()

    async def check(self, address: str, endpoint: str, limit: int, window: float) -> RateLimitResult:
        return self.check_sync(address, endpoint, limit, window)

    def check_sync(self, address: str, endpoint: str, limit: int, window: float) -> RateLimitResult:
        """Synchronous core of ``check``; the whole read-modify-write runs under the lock."""
        with self._lock:
            now = self.clock()
            store = self._stores.setdefault(endpoint, {})
            self._maybe_purge(endpoint, store, now, window)

            entry = store.get(address)
            if entry is None or now - entry.window_start >= window:
                store[address] = RateLimitEntry(count=1, window_start=now)
                return RateLimitResult(allowed=limit > 0, remaining=max(limit - 1, 0), reset_at=now + window)

            reset_at = entry.window_start + window
            if entry.count >= limit:
                return RateLimitResult(allowed=False, remaining=0, reset_at=reset_at)

            entry.count += 1
            return RateLimitResult(allowed=True, remaining=limit - entry.count, reset_at=reset_at)

    def _maybe_purge(self, endpoint: str, store: Dict[str, RateLimitEntry], now: float, window: float) -> None:
        last = self._last_purge.get(endpoint)
        if last is not None and now - last < window:
            return
        self._last_purge[endpoint] = now

        cutoff = window * 2
        stale = [address for address, entry in store.items() if now - entry.window_start >= cutoff]
        for address in stale:
            del store[address]
        if stale:
            logger.debug(f"Purged {len(stale)} stale rate limit entries for endpoint={endpoint}")

    def entry_count(self, endpoint: str) -> int:
        """Number of tracked addresses for an endpoint."""
        with self._lock:
            return len(self._stores.get(endpoint, {}))

    def reset(self) -> None:
        """Drop all counters."""
        with self._lock:
            self._stores.clear()
            self._last_purge.clear()
