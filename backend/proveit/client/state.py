"""
Session state machine as a pure reducer over decoded control events.

    session = apply_event(session, event)

Phase progression is driven entirely by ``phase_change`` events; the reducer
only enforces that a session never moves backwards.
"""

import logging
from typing import Optional

from pydantic import BaseModel

from ..models.session import IDEA_SUMMARY_MAX_LENGTH, KillSignal, Message, Phase, Session, now_ms
from ..streaming.protocol import KillSignalEvent, PhaseChangeEvent, ScoresEvent

logger = logging.getLogger(__name__)

RESEARCH_DONE_PHASES = (Phase.FINDINGS, Phase.COMPLETE)


def can_transition(current: Phase, target: Phase) -> bool:
    """True when ``target`` lies strictly after ``current`` in the lifecycle."""
    return target.rank > current.rank


def new_session(idea: str, now: Optional[int] = None) -> Session:
    """Fresh brain-dump session for an idea; the summary keeps its first 100 characters."""
    timestamp = now if now is not None else now_ms()
    return Session(
        idea_summary=idea[:IDEA_SUMMARY_MAX_LENGTH],
        created_at=timestamp,
        updated_at=timestamp,
    )


def apply_event(session: Session, event: BaseModel, now: Optional[int] = None) -> Session:
    """
    Fold one control event into the session.

    Args:
        session: Current session (not modified)
        event: Decoded stream event
        now: Timestamp for ``updated_at`` (epoch ms), defaults to the clock

    Returns:
        The next session; the same object when the event changes nothing
    """
    timestamp = now if now is not None else now_ms()

    if isinstance(event, PhaseChangeEvent):
        if not can_transition(session.phase, event.phase):
            logger.info(f"Ignoring phase change {session.phase.value} -> {event.phase.value}")
            return session
        return session.model_copy(update={
            "phase": event.phase,
            "research_complete": session.research_complete or event.phase in RESEARCH_DONE_PHASES,
            "updated_at": timestamp,
        })

    if isinstance(event, ScoresEvent):
        return session.model_copy(update={
            "scores": event.scores.model_copy(),
            "updated_at": timestamp,
        })

    if isinstance(event, KillSignalEvent):
        signal = KillSignal(
            type=event.signal.type,
            evidence=event.signal.evidence,
            detected_at=len(session.messages),
        )
        return session.model_copy(update={
            "kill_signals": [*session.kill_signals, signal],
            "updated_at": timestamp,
        })

    return session


def append_message(session: Session, message: Message, now: Optional[int] = None) -> Session:
    """Return a session with one more message at the end of the history."""
    return session.model_copy(update={
        "messages": [*session.messages, message],
        "updated_at": now if now is not None else now_ms(),
    })
