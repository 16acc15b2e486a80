"""
Integration tests for the HTTP surface.
"""

import pytest
from fastapi.testclient import TestClient

from fakes import text_events
from proveit.api.deps import get_llm_provider
from proveit.main import app
from proveit.ratelimit import RateLimitRule
from proveit.llm.base import UpstreamError
from proveit.streaming import ErrorEvent, NarrativeText, StreamReader
from proveit.streaming.relay import (
    CONFIGURATION_ERROR_MESSAGE,
    CONTEXT_TOO_LONG_MESSAGE,
    OVERLOADED_MESSAGE,
    RATE_LIMITED_MESSAGE,
)

RATE_LIMIT_MESSAGE = "Too many requests. Please wait a moment and try again."


def decode(body: bytes):
    reader = StreamReader()
    return reader.feed(body) + reader.finish()


def chat_body(**overrides):
    body = {
        "sessionId": "abc_DEF-123",
        "messages": [{"role": "user", "content": "A marketplace for dog walkers"}],
        "phase": "brain_dump",
        "scores": {"desirability": None, "viability": None, "feasibility": None},
    }
    body.update(overrides)
    return body


class TestHealth:
    """Tests for the service endpoints."""

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["app"] == "ProveIt"

    def test_health(self, client):
        response = client.get("/health")
        data = response.json()
        assert data["status"] == "healthy"
        assert data["rate_limiter"] == "in-memory"


class TestFastEndpoint:
    """Tests for POST /api/fast."""

    def test_streams_text_and_done(self, client, provider):
        response = client.post("/api/fast", json={"idea": "An app that validates startup ideas"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.headers["cache-control"] == "no-cache"
        assert response.headers["x-ratelimit-limit"] == "10"
        assert response.headers["x-ratelimit-remaining"] == "9"
        assert response.text == 'Solid start.\ndata: {"type":"done"}\n'

        call = provider.calls[0]
        assert call["messages"][0].content == "An app that validates startup ideas"
        assert call["tools"] is None

    @pytest.mark.parametrize("idea,status", [
        ("x" * 9, 400),
        ("x" * 10, 200),
        ("x" * 2000, 200),
        ("x" * 2001, 400),
        ("   short   ", 400),
    ])
    def test_idea_length_bounds(self, client, idea, status):
        response = client.post("/api/fast", json={"idea": idea})
        assert response.status_code == status

    def test_short_idea_message(self, client, provider):
        response = client.post("/api/fast", json={"idea": "tiny"})
        assert response.json() == {"error": "Tell us a bit more about the idea"}
        assert provider.calls == []

    def test_long_idea_message(self, client):
        response = client.post("/api/fast", json={"idea": "x" * 2001})
        assert response.json() == {"error": "Please keep your idea under 2000 characters"}

    def test_malformed_json(self, client, provider):
        response = client.post(
            "/api/fast", content=b"{not json", headers={"content-type": "application/json"}
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request body"}
        assert provider.calls == []

    def test_missing_idea(self, client):
        response = client.post("/api/fast", json={})
        assert response.status_code == 400
        assert "idea" in response.json()["error"]

    def test_missing_api_key_streams_error(self, governor):
        app.dependency_overrides[get_llm_provider] = lambda: None
        try:
            response = TestClient(app).post("/api/fast", json={"idea": "An app that validates startup ideas"})
        finally:
            app.dependency_overrides.pop(get_llm_provider, None)

        assert response.status_code == 200
        assert decode(response.content) == [ErrorEvent(message=CONFIGURATION_ERROR_MESSAGE)]


class TestRateLimiting:
    """Tests for admission control on the streaming endpoints."""

    def test_rejects_after_limit(self, client, governor, provider):
        governor.rules["fast"] = RateLimitRule(limit=2, window=60)
        body = {"idea": "An app that validates startup ideas"}

        assert client.post("/api/fast", json=body).status_code == 200
        assert client.post("/api/fast", json=body).status_code == 200
        response = client.post("/api/fast", json=body)

        assert response.status_code == 429
        assert response.json() == {"error": RATE_LIMIT_MESSAGE}
        assert response.headers["x-ratelimit-remaining"] == "0"
        assert int(response.headers["retry-after"]) >= 1
        assert len(provider.calls) == 2

    def test_admission_before_validation(self, client, governor, provider):
        governor.rules["fast"] = RateLimitRule(limit=1, window=60)
        client.post("/api/fast", json={"idea": "tiny"})
        response = client.post("/api/fast", json={"idea": "tiny"})
        assert response.status_code == 429

    def test_endpoints_limited_separately(self, client, governor):
        governor.rules["fast"] = RateLimitRule(limit=1, window=60)
        client.post("/api/fast", json={"idea": "An app that validates startup ideas"})

        assert client.post("/api/fast", json={"idea": "An app that validates startup ideas"}).status_code == 429
        assert client.post("/api/chat", json=chat_body()).status_code == 200

    def test_forwarded_addresses_limited_separately(self, client, governor):
        governor.rules["fast"] = RateLimitRule(limit=1, window=60)
        body = {"idea": "An app that validates startup ideas"}

        assert client.post("/api/fast", json=body, headers={"x-forwarded-for": "198.51.100.1"}).status_code == 200
        assert client.post("/api/fast", json=body, headers={"x-forwarded-for": "198.51.100.2"}).status_code == 200
        assert client.post("/api/fast", json=body, headers={"x-forwarded-for": "198.51.100.1"}).status_code == 429


class TestChatEndpoint:
    """Tests for POST /api/chat."""

    def test_streams_reply(self, client, provider):
        response = client.post("/api/chat", json=chat_body())

        assert response.status_code == 200
        assert response.headers["x-ratelimit-limit"] == "20"
        items = decode(response.content)
        assert items[0] == NarrativeText("Solid start.\n")

        call = provider.calls[0]
        assert call["tools"] is None
        assert "Phase: brain_dump" in call["system"]

    def test_research_phase_offers_web_search(self, client, provider):
        client.post("/api/chat", json=chat_body(phase="research"))
        tools = provider.calls[0]["tools"]
        assert [t["name"] for t in tools] == ["web_search"]

    @pytest.mark.parametrize("phase", ["brain_dump", "discovery", "findings", "complete"])
    def test_other_phases_have_no_tools(self, client, provider, phase):
        client.post("/api/chat", json=chat_body(phase=phase))
        assert provider.calls[0]["tools"] is None

    def test_history_truncated_to_most_recent(self, client, provider):
        messages = [
            {"role": "user" if i % 2 == 0 else "assistant", "content": f"message {i}"}
            for i in range(50)
        ]
        response = client.post("/api/chat", json=chat_body(messages=messages))

        assert response.status_code == 200
        sent = provider.calls[0]["messages"]
        assert len(sent) == 48
        assert sent[0].content == "message 2"
        assert sent[-1].content == "message 49"

    @pytest.mark.parametrize("session_id", ["", "has space", "semi;colon", "x" * 101])
    def test_invalid_session_id(self, client, provider, session_id):
        response = client.post("/api/chat", json=chat_body(sessionId=session_id))
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid session ID"}
        assert provider.calls == []

    def test_too_many_messages(self, client):
        messages = [{"role": "user", "content": "hi"}] * 51
        assert client.post("/api/chat", json=chat_body(messages=messages)).status_code == 400

    def test_empty_messages(self, client):
        assert client.post("/api/chat", json=chat_body(messages=[])).status_code == 400

    def test_message_too_long(self, client):
        messages = [{"role": "user", "content": "x" * 10001}]
        assert client.post("/api/chat", json=chat_body(messages=messages)).status_code == 400

    def test_unknown_phase(self, client):
        assert client.post("/api/chat", json=chat_body(phase="launch")).status_code == 400

    @pytest.mark.parametrize("scores", [
        {"desirability": 0},
        {"viability": 11},
        {"feasibility": 5.5},
        {"desirability": "7"},
    ])
    def test_invalid_scores(self, client, scores):
        assert client.post("/api/chat", json=chat_body(scores=scores)).status_code == 400

    @pytest.mark.parametrize("error,message", [
        (UpstreamError("invalid x-api-key", status=401), CONFIGURATION_ERROR_MESSAGE),
        (UpstreamError("too many requests", status=429), RATE_LIMITED_MESSAGE),
        (UpstreamError("Overloaded", status=529), OVERLOADED_MESSAGE),
        (UpstreamError("prompt is too long: 210000 tokens > 200000 maximum", status=400),
         CONTEXT_TOO_LONG_MESSAGE),
    ])
    def test_upstream_errors_become_error_events(self, client, provider, error, message):
        provider.events = []
        provider.error = error
        response = client.post("/api/chat", json=chat_body())

        assert response.status_code == 200
        assert decode(response.content) == [ErrorEvent(message=message)]

    def test_model_authored_control_lines_pass_through(self, client, provider):
        provider.events = text_events(
            "Great, I have what I need.\n",
            'data: {"type":"phase_change","phase":"discovery"}\n',
        )
        response = client.post("/api/chat", json=chat_body())
        assert b'data: {"type":"phase_change","phase":"discovery"}\n' in response.content
