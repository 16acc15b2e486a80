"""
RateGovernor - admission control per client address and logical endpoint.

Uses the Upstash limiter when credentials are configured, the in-process
limiter otherwise. Both honour the same allowed / remaining / reset_at
contract.
"""

import logging
from typing import Any, Dict, Optional

from .base import RateLimiter, RateLimitResult, RateLimitRule
from .memory import InMemoryRateLimiter
from .upstash import UpstashRateLimiter

logger = logging.getLogger(__name__)

DEFAULT_ADDRESS = "127.0.0.1"


class RateGovernor:
    """
    Owns the limiter backends and the per-endpoint rules.
    """

    def __init__(
        self,
        rules: Dict[str, RateLimitRule],
        local: Optional[InMemoryRateLimiter] = None,
        upstash_url: Optional[str] = None,
        upstash_token: Optional[str] = None,
    ):
        self.rules = dict(rules)
        self.local = local or InMemoryRateLimiter()
        self.upstash_url = upstash_url
        self.upstash_token = upstash_token
        self._distributed: Dict[str, UpstashRateLimiter] = {}

    @classmethod
    def from_settings(cls, config: Any) -> "RateGovernor":
        """Build the governor from application settings."""
        rules = {
            "chat": RateLimitRule(config.chat_rate_limit, config.chat_rate_window_seconds),
            "fast": RateLimitRule(config.fast_rate_limit, config.fast_rate_window_seconds),
        }
        return cls(
            rules,
            upstash_url=config.upstash_redis_rest_url,
            upstash_token=config.upstash_redis_rest_token,
        )

    @property
    def distributed(self) -> bool:
        return bool(self.upstash_url and self.upstash_token)

    def rule_for(self, endpoint: str) -> RateLimitRule:
        try:
            return self.rules[endpoint]
        except KeyError:
            raise ValueError(f"No rate limit configured for endpoint: {endpoint}")

    def _limiter_for(self, endpoint: str) -> RateLimiter:
        if not self.distributed:
            return self.local
        limiter = self._distributed.get(endpoint)
        if limiter is None:
            limiter = UpstashRateLimiter(self.upstash_url, self.upstash_token, self.rule_for(endpoint))
            self._distributed[endpoint] = limiter
            logger.info(f"Distributed rate limiter initialized for endpoint={endpoint}")
        return limiter

    async def check(self, address: str, endpoint: str, limit: int, window: float) -> RateLimitResult:
        """
        Count one request for (endpoint, address).

        ``limit`` and ``window`` only drive the in-memory backend; the
        distributed backend uses the rule it was built with.
        """
        return await self._limiter_for(endpoint).check(address, endpoint, limit, window)

    async def check_endpoint(self, address: str, endpoint: str) -> RateLimitResult:
        """Check using the configured rule for the endpoint."""
        rule = self.rule_for(endpoint)
        return await self.check(address, endpoint, rule.limit, rule.window)

    def reset(self) -> None:
        """Clear local counters and drop cached distributed limiters (remote counters persist)."""
        self.local.reset()
        self._distributed.clear()


def get_client_ip(request: Any) -> str:
    """
    Best-effort client address for a Starlette request.

    The first ``X-Forwarded-For`` hop wins, then the socket peer.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return DEFAULT_ADDRESS
