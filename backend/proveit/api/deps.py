"""
Shared request plumbing for the streaming endpoints: admission control,
body validation and the model provider dependency.
"""

import json
import logging
import math
import time
from typing import AsyncIterator, Dict, Optional, Type, TypeVar

from fastapi import Request
from pydantic import BaseModel, ValidationError

from ..config import settings
from ..llm.base import LLMProvider, ModelEvent, UpstreamError
from ..llm.factory import create_llm_provider
from ..models.requests import first_error_message
from ..ratelimit import RateGovernor, RateLimitResult, get_client_ip

logger = logging.getLogger(__name__)

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}

ModelT = TypeVar("ModelT", bound=BaseModel)


class RequestRejected(Exception):
    """A request refused before any model work; rendered as ``{"error": message}``."""

    def __init__(self, status_code: int, message: str, headers: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.headers = headers or {}


def get_rate_governor(request: Request) -> RateGovernor:
    """The governor owned by the running application."""
    governor = getattr(request.app.state, "rate_governor", None)
    if governor is None:
        governor = RateGovernor.from_settings(settings)
        request.app.state.rate_governor = governor
    return governor


def get_llm_provider() -> Optional[LLMProvider]:
    """Configured model provider, or None when no API key is set."""
    return create_llm_provider(
        provider="anthropic",
        api_key=settings.anthropic_api_key,
        model=settings.llm_model,
        base_url=settings.llm_base_url,
        api_version=settings.llm_api_version,
        default_max_tokens=settings.llm_max_tokens,
        timeout=settings.llm_timeout,
    )


def rate_limit_headers(result: RateLimitResult, limit: int) -> Dict[str, str]:
    return {
        "X-RateLimit-Limit": str(limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(math.ceil(result.reset_at)),
    }


async def admit(request: Request, governor: RateGovernor, endpoint: str) -> Dict[str, str]:
    """
    Run admission control for one request.

    Returns:
        Rate limit headers to attach to the successful response

    Raises:
        RequestRejected: 429 when the client has exhausted its window
    """
    address = get_client_ip(request)
    rule = governor.rule_for(endpoint)
    result = await governor.check(address, endpoint, rule.limit, rule.window)
    headers = rate_limit_headers(result, rule.limit)
    if not result.allowed:
        retry_after = max(1, math.ceil(result.reset_at - time.time()))
        headers["Retry-After"] = str(retry_after)
        logger.warning(
            f"Rate limit exceeded: endpoint={endpoint}",
            extra={"extra_fields": {"endpoint": endpoint, "client": address, "retry_after": retry_after}}
        )
        raise RequestRejected(429, "Too many requests. Please wait a moment and try again.", headers)
    return headers


async def parse_body(request: Request, schema: Type[ModelT]) -> ModelT:
    """
    Decode and validate the JSON body.

    Raises:
        RequestRejected: 400 for malformed JSON or schema violations
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise RequestRejected(400, "Invalid request body")

    try:
        return schema.model_validate(body)
    except ValidationError as e:
        raise RequestRejected(400, first_error_message(e))


async def missing_provider_stream() -> AsyncIterator[ModelEvent]:
    """Upstream stand-in when no API key is configured; fails on first advance."""
    raise UpstreamError("Anthropic API key is not configured", status=401)
    yield  # pragma: no cover
