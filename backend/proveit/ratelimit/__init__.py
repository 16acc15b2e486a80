"""Rate limiting module - admission control for the model-backed endpoints."""

from .base import RateLimiter, RateLimitResult, RateLimitRule
from .memory import InMemoryRateLimiter, RateLimitEntry
from .upstash import UpstashRateLimiter
from .governor import RateGovernor, get_client_ip

__all__ = [
    'RateLimiter', 'RateLimitResult', 'RateLimitRule',
    'InMemoryRateLimiter', 'RateLimitEntry',
    'UpstashRateLimiter',
    'RateGovernor', 'get_client_ip',
]
