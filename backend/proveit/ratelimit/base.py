"""
Rate Limiter Interface - contract shared by the local and distributed backends.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of one admission check."""
    allowed: bool
    remaining: int
    reset_at: float  # epoch seconds at which the current window ends


@dataclass(frozen=True)
class RateLimitRule:
    """Limit and window for one logical endpoint."""
    limit: int
    window: float  # seconds


class RateLimiter(ABC):
    """
    Fixed-window admission control keyed by (endpoint, client address).
    Rejection is a normal return value, never an exception.
    """

    @abstractmethod
    async def check(self, address: str, endpoint: str, limit: int, window: float) -> RateLimitResult:
        """
        Count one request and decide whether it is admitted.

        Args:
            address: Client address
            endpoint: Logical endpoint name ("chat", "fast")
            limit: Requests allowed per window
            window: Window length in seconds

        Returns:
            RateLimitResult for this request
        """
        pass
