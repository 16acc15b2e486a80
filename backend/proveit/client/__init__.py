"""Client module - drives validation sessions against the ProveIt API."""

from .api_client import ApiError, FastCheckResult, ProveItClient
from .conversation import Conversation, TurnResult
from .fast_result import (
    AssumptionCategory, AssumptionResult, EvidenceItem, Verdict, parse_assumptions, parse_quick_verdict,
)
from .session_store import SessionStore, serialize_session
from .state import apply_event, append_message, can_transition, new_session
from .storage import FileStorage, KeyValueStorage, MemoryStorage, StorageError, StorageQuotaExceeded

__all__ = [
    'ApiError', 'FastCheckResult', 'ProveItClient',
    'Conversation', 'TurnResult',
    'AssumptionCategory', 'AssumptionResult', 'EvidenceItem', 'Verdict',
    'parse_assumptions', 'parse_quick_verdict',
    'SessionStore', 'serialize_session',
    'apply_event', 'append_message', 'can_transition', 'new_session',
    'FileStorage', 'KeyValueStorage', 'MemoryStorage', 'StorageError', 'StorageQuotaExceeded',
]
