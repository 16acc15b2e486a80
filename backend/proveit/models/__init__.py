"""Models module."""

from .session import (
    SCHEMA_VERSION, PHASE_ORDER, Phase, KillSignalType, ConfidenceScores,
    Message, KillSignal, Session, StoredSession, now_ms, generate_id,
)
from .requests import (
    FastCheckRequest, ChatMessage, ChatRequest, first_error_message,
    MAX_REQUEST_MESSAGES,
)

__all__ = [
    'SCHEMA_VERSION', 'PHASE_ORDER', 'Phase', 'KillSignalType', 'ConfidenceScores',
    'Message', 'KillSignal', 'Session', 'StoredSession', 'now_ms', 'generate_id',
    'FastCheckRequest', 'ChatMessage', 'ChatRequest', 'first_error_message',
    'MAX_REQUEST_MESSAGES',
]
