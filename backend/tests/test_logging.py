"""
Tests for logging configuration and request logging.
"""

import json
import logging
from types import SimpleNamespace

from proveit.core.logging_config import (
    JSONFormatter,
    filter_sensitive_data,
    setup_logging,
    truncate_large_data,
)


class TestSensitiveData:
    """Tests for credential masking."""

    def test_nested_keys_masked(self):
        data = {"idea": "x", "headers": {"Authorization": "Bearer abc", "x-api-key": "sk"}, "items": [{"token": "t"}]}
        filtered = filter_sensitive_data(data)

        assert filtered["idea"] == "x"
        assert filtered["headers"]["Authorization"] == "***FILTERED***"
        assert filtered["headers"]["x-api-key"] == "***FILTERED***"
        assert filtered["items"][0]["token"] == "***FILTERED***"
        assert data["headers"]["Authorization"] == "Bearer abc"

    def test_truncate(self):
        assert truncate_large_data("short", max_length=10) == "short"
        truncated = truncate_large_data("x" * 20, max_length=10)
        assert truncated.startswith("x" * 10)
        assert "total length: 20" in truncated


class TestJSONFormatter:
    """Tests for the structured file formatter."""

    def test_extra_fields_merged_and_filtered(self):
        record = logging.LogRecord("proveit.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        record.extra_fields = {"endpoint": "chat", "upstash_token": "secret"}

        data = json.loads(JSONFormatter().format(record))

        assert data["message"] == "hello world"
        assert data["level"] == "INFO"
        assert data["endpoint"] == "chat"
        assert data["upstash_token"] == "***FILTERED***"


class TestSetupLogging:
    """Tests for handler configuration."""

    def test_file_handler_writes_json(self, tmp_path):
        log_file = tmp_path / "logs" / "proveit.log"
        config = SimpleNamespace(
            log_level="debug",
            log_console_enabled=False,
            log_file_enabled=True,
            log_file_path=str(log_file),
            log_json_format=True,
        )
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            setup_logging(config)
            logging.getLogger("proveit.test").info("turn done", extra={"extra_fields": {"phase": "research"}})
            for handler in root.handlers:
                handler.flush()

            lines = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
            assert lines[-1]["message"] == "turn done"
            assert lines[-1]["phase"] == "research"
            assert logging.getLogger("httpx").level == logging.WARNING
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers = saved_handlers
            root.setLevel(saved_level)


class TestRequestLogging:
    """The request logging middleware records outcomes without altering responses."""

    def test_rejection_logged_with_reason(self, client, caplog):
        with caplog.at_level(logging.WARNING, logger="proveit.middleware.logging_middleware"):
            response = client.post("/api/fast", json={"idea": "tiny"})

        assert response.status_code == 400
        records = [r for r in caplog.records if r.name == "proveit.middleware.logging_middleware"]
        assert records
        assert "error_reason=Tell us a bit more about the idea" in records[-1].getMessage()

    def test_stream_logged_with_byte_count(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="proveit.middleware.logging_middleware"):
            response = client.post("/api/fast", json={"idea": "An app that validates startup ideas"})

        records = [r for r in caplog.records if r.name == "proveit.middleware.logging_middleware"]
        assert f"streamed {len(response.content)} bytes" in records[-1].getMessage()
        assert records[-1].extra_fields["rate_limit_remaining"] == "9"
