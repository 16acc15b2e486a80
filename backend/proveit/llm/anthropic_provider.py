"""
Anthropic Messages API provider.
Streams the Messages endpoint over httpx and maps its server-sent events onto
the provider-neutral BlockStart / BlockDelta / BlockStop events.
"""

import httpx
import json
import logging
import time
from typing import Optional, List, Dict, Any, AsyncIterator

from .base import LLMProvider, LLMMessage, ModelEvent, BlockStart, BlockDelta, BlockStop, UpstreamError

logger = logging.getLogger(__name__)

# In-stream error types mapped onto the HTTP status the API would have used
ERROR_TYPE_STATUS = {
    "invalid_request_error": 400,
    "authentication_error": 401,
    "permission_error": 403,
    "not_found_error": 404,
    "request_too_large": 413,
    "rate_limit_error": 429,
    "api_error": 500,
    "overloaded_error": 529,
}


class AnthropicProvider(LLMProvider):
    """
    Provider for the Anthropic Messages API with ``stream: true``.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-6",
        base_url: str = "https://api.anthropic.com/v1",
        api_version: str = "2023-06-01",
        default_max_tokens: int = 8096,
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(api_key, model, base_url, default_max_tokens)
        self.api_version = api_version
        self.timeout = timeout
        self._transport = transport

    def _get_headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": self.api_version,
            "content-type": "application/json",
            "accept": "text/event-stream",
        }

    def _build_payload(
        self,
        messages: List[LLMMessage],
        system: str,
        tools: Optional[List[Dict[str, Any]]],
        max_tokens: Optional[int],
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens or self.default_max_tokens,
            "system": system,
            "messages": self._format_messages(messages),
            "stream": True,
        }
        if tools:
            payload["tools"] = tools
        return payload

    async def stream_events(
        self,
        messages: List[LLMMessage],
        system: str,
        tools: Optional[List[Dict[str, Any]]] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[ModelEvent]:
        """Stream content events from the Messages endpoint."""
        start_time = time.time()
        url = f"{self.base_url}/messages"
        payload = self._build_payload(messages, system, tools, max_tokens)

        logger.debug(
            f"LLM API stream starting: provider=anthropic, model={payload['model']}, "
            f"{len(messages)} messages, tools={[t.get('name') for t in tools or []]}"
        )

        usage: Dict[str, int] = {}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                async with client.stream("POST", url, json=payload, headers=self._get_headers()) as response:
                    if response.status_code != 200:
                        await response.aread()
                        raise self._error_from_response(response)

                    async for line in response.aiter_lines():
                        # SSE format: "event: <name>" followed by "data: {json}"
                        if not line.startswith("data:"):
                            continue
                        try:
                            data = json.loads(line[5:].strip())
                        except json.JSONDecodeError:
                            logger.debug(f"Skipping malformed SSE data line: {line[:200]}")
                            continue

                        event_type = data.get("type")
                        if event_type == "error":
                            error = data.get("error") or {}
                            error_type = error.get("type")
                            raise UpstreamError(
                                error.get("message", "Upstream stream error"),
                                status=ERROR_TYPE_STATUS.get(error_type),
                                error_type=error_type,
                            )
                        if event_type == "message_start":
                            usage.update((data.get("message") or {}).get("usage") or {})
                        elif event_type == "message_delta":
                            usage.update(data.get("usage") or {})

                        event = self._to_model_event(data)
                        if event is not None:
                            yield event
        except httpx.HTTPError as e:
            logger.error(
                f"LLM API stream failed: {e}",
                extra={"extra_fields": {
                    "provider": "anthropic",
                    "model": payload["model"],
                    "duration_ms": round((time.time() - start_time) * 1000, 2),
                }}
            )
            raise UpstreamError(str(e) or e.__class__.__name__) from e

        logger.info(
            "LLM API stream completed",
            extra={"extra_fields": {
                "provider": "anthropic",
                "model": payload["model"],
                "input_tokens": usage.get("input_tokens", 0),
                "output_tokens": usage.get("output_tokens", 0),
                "duration_ms": round((time.time() - start_time) * 1000, 2),
            }}
        )

    @staticmethod
    def _to_model_event(data: Dict[str, Any]) -> Optional[ModelEvent]:
        """Map one decoded SSE payload to a ModelEvent (None for bookkeeping events)."""
        event_type = data.get("type")
        index = data.get("index", 0)

        if event_type == "content_block_start":
            block = data.get("content_block") or {}
            return BlockStart(index=index, block_type=block.get("type", ""), name=block.get("name"))

        if event_type == "content_block_delta":
            delta = data.get("delta") or {}
            return BlockDelta(
                index=index,
                delta_type=delta.get("type", ""),
                text=delta.get("text", ""),
                partial_json=delta.get("partial_json", ""),
            )

        if event_type == "content_block_stop":
            return BlockStop(index=index)

        return None

    @staticmethod
    def _error_from_response(response: httpx.Response) -> UpstreamError:
        """Build an UpstreamError from a non-200 response body."""
        error_type = None
        message = response.text or f"HTTP {response.status_code}"
        try:
            error = response.json().get("error") or {}
            error_type = error.get("type")
            message = error.get("message") or message
        except (json.JSONDecodeError, AttributeError):
            pass
        return UpstreamError(message, status=response.status_code, error_type=error_type)
