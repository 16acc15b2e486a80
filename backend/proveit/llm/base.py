"""
LLM Provider Base - Abstract base for streaming model providers.

A provider turns (messages, system prompt, tool declarations) into an ordered,
single-pass async sequence of typed content events. The relay only ever sees
these events, never the vendor transport.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, List, AsyncIterator, Union
from dataclasses import dataclass


@dataclass
class LLMMessage:
    """A text message in a conversation."""
    role: str  # "user" or "assistant"
    content: str

    @staticmethod
    def text(role: str, text: str) -> "LLMMessage":
        """Create a text-only message."""
        return LLMMessage(role=role, content=text)


@dataclass
class BlockStart:
    """A content block begins (``text``, ``tool_use``, ``server_tool_use``, ...)."""
    index: int
    block_type: str
    name: Optional[str] = None  # tool name for tool blocks


@dataclass
class BlockDelta:
    """Incremental content for an open block."""
    index: int
    delta_type: str  # "text_delta" or "input_json_delta"
    text: str = ""
    partial_json: str = ""


@dataclass
class BlockStop:
    """The block at ``index`` is complete."""
    index: int


ModelEvent = Union[BlockStart, BlockDelta, BlockStop]


class UpstreamError(Exception):
    """Error reported by the model provider (HTTP status or in-stream error event)."""

    def __init__(self, message: str, status: Optional[int] = None, error_type: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.error_type = error_type

    def __repr__(self) -> str:
        return f"UpstreamError(status={self.status!r}, error_type={self.error_type!r}, message={self.message!r})"


class LLMProvider(ABC):
    """
    Abstract base class for streaming LLM providers.
    """

    def __init__(self, api_key: str, model: str, base_url: Optional[str] = None,
                 default_max_tokens: int = 8096):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.default_max_tokens = default_max_tokens

    @abstractmethod
    def stream_events(
        self,
        messages: List[LLMMessage],
        system: str,
        tools: Optional[List[Dict[str, Any]]] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[ModelEvent]:
        """
        Stream typed content events for one completion.

        Creating the iterator never performs I/O; connection and HTTP errors
        surface as ``UpstreamError`` when the iterator is first advanced.

        Args:
            messages: Conversation history, oldest first
            system: System prompt
            tools: Optional tool declarations in the vendor's format
            max_tokens: Max tokens override

        Yields:
            BlockStart / BlockDelta / BlockStop events in upstream order
        """

    def _format_messages(self, messages: List[LLMMessage]) -> List[Dict[str, Any]]:
        """Convert LLMMessage list to API-compatible format."""
        return [{"role": m.role, "content": m.content} for m in messages]
