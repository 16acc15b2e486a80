"""
Distributed fixed-window rate limiter backed by Upstash Redis (REST API).

Counters are shared by every instance pointing at the same database. Limit and
window are fixed when the limiter is built; values passed to ``check`` are
ignored, so callers must keep them consistent with the configured rule.
"""

import httpx
import logging
import time
from typing import Any, Callable, List, Optional

from .base import RateLimiter, RateLimitResult, RateLimitRule

logger = logging.getLogger(__name__)


class UpstashRateLimiter(RateLimiter):
    """
    One limiter per endpoint. Each check runs a single MULTI/EXEC transaction:
    INCR the counter, start its expiry only if none is set (first request of a
    window), then read the remaining TTL.
    """

    def __init__(
        self,
        url: str,
        token: str,
        rule: RateLimitRule,
        prefix: str = "proveit:ratelimit",
        timeout: float = 5.0,
        clock: Callable[[], float] = time.time,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url.rstrip("/")
        self.token = token
        self.rule = rule
        self.prefix = prefix
        self.timeout = timeout
        self.clock = clock
        self._transport = transport

    def _key(self, endpoint: str, address: str) -> str:
        return f"{self.prefix}:{endpoint}:{address}"

    async def check(self, address: str, endpoint: str, limit: int, window: float) -> RateLimitResult:
        limit = self.rule.limit
        window_ms = int(self.rule.window * 1000)
        key = self._key(endpoint, address)
        now = self.clock()

        commands = [
            ["INCR", key],
            ["PEXPIRE", key, str(window_ms), "NX"],
            ["PTTL", key],
        ]
        try:
            results = await self._multi_exec(commands)
            count = int(results[0])
            ttl_ms = int(results[2])
        except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
            # Fail open: an unreachable limiter must not take the service down
            logger.error(
                f"Upstash rate limit check failed, admitting request: {e!r}",
                extra={"extra_fields": {"endpoint": endpoint, "client": address}}
            )
            return RateLimitResult(allowed=True, remaining=limit, reset_at=now + self.rule.window)

        reset_at = now + (ttl_ms / 1000 if ttl_ms > 0 else self.rule.window)
        if count > limit:
            return RateLimitResult(allowed=False, remaining=0, reset_at=reset_at)
        return RateLimitResult(allowed=True, remaining=limit - count, reset_at=reset_at)

    async def _multi_exec(self, commands: List[List[str]]) -> List[Any]:
        """Run commands atomically and return their results in order."""
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.post(
                f"{self.url}/multi-exec",
                json=commands,
                headers={"Authorization": f"Bearer {self.token}"},
            )
            resp.raise_for_status()
            data = resp.json()

        results = []
        for item in data:
            if "error" in item:
                raise ValueError(f"Upstash command failed: {item['error']}")
            results.append(item["result"])
        return results
