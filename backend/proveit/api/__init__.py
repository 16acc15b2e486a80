"""API module."""

from .chat import router as chat_router
from .fast import router as fast_router
from .deps import RequestRejected

__all__ = ['chat_router', 'fast_router', 'RequestRejected']
