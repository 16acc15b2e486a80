"""LLM module - streaming interface for model providers."""

from .base import LLMProvider, LLMMessage, ModelEvent, BlockStart, BlockDelta, BlockStop, UpstreamError
from .anthropic_provider import AnthropicProvider
from .factory import create_llm_provider

__all__ = [
    'LLMProvider',
    'LLMMessage',
    'ModelEvent',
    'BlockStart',
    'BlockDelta',
    'BlockStop',
    'UpstreamError',
    'AnthropicProvider',
    'create_llm_provider',
]
