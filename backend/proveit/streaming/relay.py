"""
StreamRelay - re-encodes the model's content events into the hybrid wire format.

Text deltas pass through untouched as narrative bytes. Web search tool calls
are turned into ``searching`` / ``search_query`` control lines, the end of the
stream into ``done``, and any upstream failure into a single ``error`` line.
"""

import json
import logging
from typing import AsyncIterable, AsyncIterator, Optional

from pydantic import BaseModel

from ..llm.base import BlockDelta, BlockStart, BlockStop, ModelEvent, UpstreamError
from .protocol import (
    DoneEvent,
    ErrorEvent,
    LINE_TERMINATOR,
    SearchQueryEvent,
    SearchingEvent,
    encode_event,
)

logger = logging.getLogger(__name__)

WEB_SEARCH_TOOL = "web_search"
TOOL_BLOCK_TYPES = ("tool_use", "server_tool_use")

CONTEXT_TOO_LONG_MESSAGE = "Conversation too long. Please start a new session."
CONFIGURATION_ERROR_MESSAGE = "Service configuration error. Contact support."
RATE_LIMITED_MESSAGE = "Rate limit reached. Please wait a moment and try again."
OVERLOADED_MESSAGE = "AI service is under high load. Please try again in a few seconds."
GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again."

_CONTEXT_MARKERS = ("context_window_exceeded", "prompt is too long", "context length")


def classify_error(exc: BaseException) -> Optional[str]:
    """
    Map an upstream failure to a user-safe message.

    Returns:
        The message for a recognized failure class, or None when unrecognized
    """
    if not isinstance(exc, UpstreamError):
        return None

    status = exc.status
    text = (exc.message or "").lower()
    if status == 400 and any(marker in text for marker in _CONTEXT_MARKERS):
        return CONTEXT_TOO_LONG_MESSAGE
    if status in (401, 403) or exc.error_type == "authentication_error":
        return CONFIGURATION_ERROR_MESSAGE
    if status == 429 or exc.error_type == "rate_limit_error":
        return RATE_LIMITED_MESSAGE
    if status == 529 or exc.error_type == "overloaded_error":
        return OVERLOADED_MESSAGE
    return None


class StreamRelay:
    """
    Single-pass encoder from an upstream ModelEvent sequence to wire bytes.

    Usage:
        relay = StreamRelay(provider.stream_events(...), label="chat")
        return StreamingResponse(relay, media_type="text/plain; charset=utf-8")
    """

    def __init__(self, upstream: AsyncIterable[ModelEvent], label: str = "stream",
                 search_tool: str = WEB_SEARCH_TOOL):
        self.upstream = upstream
        self.label = label
        self.search_tool = search_tool

        self._searching = False
        self._search_block: Optional[int] = None
        self._search_buffer = ""
        self._at_line_start = True
        self._consumed = False

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self.stream()

    async def stream(self) -> AsyncIterator[bytes]:
        """Yield encoded chunks until the upstream completes or fails."""
        if self._consumed:
            raise RuntimeError("StreamRelay can only be consumed once")
        self._consumed = True

        iterator = self.upstream.__aiter__()
        try:
            try:
                async for event in iterator:
                    for chunk in self._handle(event):
                        yield chunk
            except Exception as exc:
                message = classify_error(exc)
                if message is None:
                    logger.error(f"[{self.label}] Upstream model error: {exc!r}", exc_info=True)
                    message = GENERIC_ERROR_MESSAGE
                else:
                    logger.warning(f"[{self.label}] Upstream model error: {exc!r}")
                for chunk in self._end_search():
                    yield chunk
                yield self._control(ErrorEvent(message=message))
                return

            for chunk in self._end_search():
                yield chunk
            yield self._control(DoneEvent())
        finally:
            await self._close_upstream(iterator)

    def _handle(self, event: ModelEvent):
        if isinstance(event, BlockStart):
            if event.block_type in TOOL_BLOCK_TYPES and event.name == self.search_tool:
                self._searching = True
                self._search_block = event.index
                self._search_buffer = ""
                yield self._control(SearchingEvent(active=True))
            elif event.block_type == "text" and self._searching:
                self._searching = False
                yield self._control(SearchingEvent(active=False))

        elif isinstance(event, BlockDelta):
            if event.delta_type == "text_delta" and event.text:
                yield self._text(event.text)
            elif event.delta_type == "input_json_delta" and event.index == self._search_block:
                self._search_buffer += event.partial_json

        elif isinstance(event, BlockStop):
            if event.index == self._search_block:
                query = self._parse_query(self._search_buffer)
                self._search_block = None
                self._search_buffer = ""
                if query:
                    yield self._control(SearchQueryEvent(query=query))

    def _end_search(self):
        """Switch off an indicator left on by an unfinished search block."""
        if self._searching:
            self._searching = False
            yield self._control(SearchingEvent(active=False))

    @staticmethod
    def _parse_query(buffer: str) -> Optional[str]:
        """Extract ``query`` from buffered tool input; malformed input yields None."""
        try:
            arguments = json.loads(buffer)
        except (json.JSONDecodeError, TypeError):
            return None
        if isinstance(arguments, dict):
            query = arguments.get("query")
            if isinstance(query, str) and query.strip():
                return query
        return None

    def _text(self, text: str) -> bytes:
        self._at_line_start = text.endswith(LINE_TERMINATOR)
        return text.encode("utf-8")

    def _control(self, event: BaseModel) -> bytes:
        """Encode a control line, first terminating any open narrative line."""
        line = encode_event(event)
        if not self._at_line_start:
            line = LINE_TERMINATOR + line
        self._at_line_start = True
        return line.encode("utf-8")

    async def _close_upstream(self, iterator) -> None:
        aclose = getattr(iterator, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as exc:
            logger.debug(f"[{self.label}] Ignoring error while closing upstream: {exc!r}")
