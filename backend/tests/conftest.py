"""
Shared test fixtures and configuration.
"""

import pytest
import os

# Set test environment variables before importing app modules
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOG_FILE_ENABLED", "false")
os.environ.setdefault("LOG_API_REQUESTS", "true")
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["UPSTASH_REDIS_REST_URL"] = ""
os.environ["UPSTASH_REDIS_REST_TOKEN"] = ""

from fastapi.testclient import TestClient  # noqa: E402

from proveit.api.deps import get_llm_provider  # noqa: E402
from proveit.main import app  # noqa: E402
from proveit.ratelimit import InMemoryRateLimiter, RateGovernor, RateLimitRule  # noqa: E402

from fakes import ScriptedProvider, text_events  # noqa: E402


class FakeClock:
    """Manually advanced wall clock in epoch seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def governor():
    """Fresh in-memory governor installed on the app for each test."""
    rules = {
        "chat": RateLimitRule(limit=20, window=60),
        "fast": RateLimitRule(limit=10, window=60),
    }
    gov = RateGovernor(rules, local=InMemoryRateLimiter())
    app.state.rate_governor = gov
    yield gov
    app.state.rate_governor = None


@pytest.fixture
def provider():
    """Scripted provider injected in place of the Anthropic client."""
    fake = ScriptedProvider(text_events("Solid start.\n"))
    app.dependency_overrides[get_llm_provider] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_llm_provider, None)


@pytest.fixture
def client(governor, provider):
    """TestClient with a fresh governor and a scripted provider."""
    return TestClient(app)
