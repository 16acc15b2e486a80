"""
Request logging middleware.

Pure ASGI (not BaseHTTPMiddleware) so hybrid streaming responses pass through
chunk by chunk. Logs method, path, client, status and duration; JSON request
bodies are sanitized and truncated, streamed response bodies are only counted.
"""

import json
import logging
import time
from typing import Dict, List, Optional
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..core.logging_config import filter_sensitive_data, truncate_large_data

logger = logging.getLogger(__name__)

MAX_LOGGED_BODY = 2000


def _sanitize_body(data: bytes) -> Optional[str]:
    """Render a request body for logging with credentials masked."""
    if not data:
        return None
    text = data.decode("utf-8", errors="ignore")
    try:
        payload = filter_sensitive_data(json.loads(text))
        text = json.dumps(payload, ensure_ascii=False)
    except json.JSONDecodeError:
        pass
    return truncate_large_data(text, max_length=MAX_LOGGED_BODY)


def _error_reason(data: bytes) -> Optional[str]:
    """Pull the ``error`` string out of a JSON error body."""
    try:
        payload = json.loads(data.decode("utf-8", errors="ignore"))
    except json.JSONDecodeError:
        return None
    if isinstance(payload, dict):
        reason = payload.get("error") or payload.get("detail")
        return truncate_large_data(str(reason), max_length=500) if reason else None
    return None


def _client_address(headers: Dict[str, str], scope: Scope) -> Optional[str]:
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    client = scope.get("client")
    return client[0] if client else None


class RequestLoggingMiddleware:
    """Pure ASGI middleware to log API requests and their outcome."""

    def __init__(self, app: ASGIApp, exclude_paths: Optional[List[str]] = None):
        """
        Args:
            app: The ASGI application
            exclude_paths: Paths logged without detail (defaults to health probes)
        """
        self.app = app
        self.exclude_paths = exclude_paths or ["/health", "/"]

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope.get("path", "") in self.exclude_paths:
            await self.app(scope, receive, send)
            return

        start_time = time.time()
        method = scope.get("method", "UNKNOWN")
        path = scope.get("path", "")
        headers = {
            k.decode("latin-1"): v.decode("latin-1")
            for k, v in scope.get("headers", [])
        }
        client = _client_address(headers, scope)

        request_body = bytearray()

        async def logging_receive() -> Message:
            message = await receive()
            if message["type"] == "http.request":
                request_body.extend(message.get("body", b""))
            return message

        status_code = 0
        streamed = False
        response_bytes = 0
        error_body = bytearray()
        remaining: Optional[str] = None

        async def logging_send(message: Message) -> None:
            nonlocal status_code, streamed, response_bytes, remaining
            if message["type"] == "http.response.start":
                status_code = message.get("status", 0)
                response_headers = {
                    k.decode("latin-1").lower(): v.decode("latin-1")
                    for k, v in message.get("headers", [])
                }
                streamed = response_headers.get("content-type", "").startswith("text/plain")
                remaining = response_headers.get("x-ratelimit-remaining")
            elif message["type"] == "http.response.body":
                body = message.get("body", b"")
                response_bytes += len(body)
                if status_code >= 400 and not streamed:
                    error_body.extend(body)
            await send(message)

        logger.debug(f"Request started: {method} {path}", extra={"extra_fields": {
            "method": method, "path": path, "client": client,
        }})

        try:
            await self.app(scope, logging_receive, logging_send)
        except Exception as e:
            logger.error(
                f"Request failed: {method} {path} - {e}",
                exc_info=True,
                extra={"extra_fields": {
                    "method": method,
                    "path": path,
                    "client": client,
                    "duration_ms": round((time.time() - start_time) * 1000, 2),
                }}
            )
            raise

        duration_ms = (time.time() - start_time) * 1000
        error_reason = _error_reason(bytes(error_body)) if error_body else None

        if status_code < 400:
            log_level = logging.INFO
        elif status_code < 500:
            log_level = logging.WARNING
        else:
            log_level = logging.ERROR

        message = f"Request completed: {method} {path} - {status_code} ({duration_ms:.2f}ms)"
        if streamed:
            message += f" | streamed {response_bytes} bytes"
        if error_reason:
            message += f" | error_reason={error_reason}"

        logger.log(log_level, message, extra={"extra_fields": {
            "method": method,
            "path": path,
            "client": client,
            "status_code": status_code,
            "duration_ms": round(duration_ms, 2),
            "request_body": _sanitize_body(bytes(request_body)),
            "response_bytes": response_bytes,
            "rate_limit_remaining": remaining,
            "error_reason": error_reason,
        }})
