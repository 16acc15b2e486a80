"""Streaming module - hybrid text/event wire protocol (relay and reader)."""

from .protocol import (
    EVENT_PREFIX, StreamEvent, PhaseChangeEvent, ScoresEvent, KillSignalEvent,
    KillSignalFinding, SearchingEvent, SearchQueryEvent, DoneEvent, ErrorEvent,
    encode_event, parse_event_line,
)
from .relay import StreamRelay, classify_error
from .reader import StreamReader, NarrativeText, read_stream

__all__ = [
    'EVENT_PREFIX', 'StreamEvent', 'PhaseChangeEvent', 'ScoresEvent', 'KillSignalEvent',
    'KillSignalFinding', 'SearchingEvent', 'SearchQueryEvent', 'DoneEvent', 'ErrorEvent',
    'encode_event', 'parse_event_line',
    'StreamRelay', 'classify_error',
    'StreamReader', 'NarrativeText', 'read_stream',
]
