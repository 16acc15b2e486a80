"""
Session Models - Validation session state shared by the API and the client.

Field names serialize in camelCase (``ideaSummary``, ``killSignals``...) so the
persisted record and the wire payloads keep one JSON shape.
"""

import secrets
import time
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


SCHEMA_VERSION = 1
IDEA_SUMMARY_MAX_LENGTH = 100
MESSAGE_MAX_LENGTH = 10000


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def generate_id() -> str:
    """URL-safe random identifier (alphabet ``[A-Za-z0-9_-]``)."""
    return secrets.token_urlsafe(16)


class Phase(str, Enum):
    """Stages of a validation conversation, in lifecycle order."""
    BRAIN_DUMP = "brain_dump"
    DISCOVERY = "discovery"
    RESEARCH = "research"
    FINDINGS = "findings"
    COMPLETE = "complete"

    @property
    def rank(self) -> int:
        return PHASE_ORDER.index(self)


PHASE_ORDER: List[Phase] = [
    Phase.BRAIN_DUMP,
    Phase.DISCOVERY,
    Phase.RESEARCH,
    Phase.FINDINGS,
    Phase.COMPLETE,
]


class KillSignalType(str, Enum):
    """Closed set of structural reasons an idea may not be viable."""
    TARPIT = "tarpit"
    SATURATION = "saturation"
    NO_SWITCHING = "no_switching"
    NO_WILLINGNESS_TO_PAY = "no_willingness_to_pay"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


Score = Optional[int]


class ConfidenceScores(CamelModel):
    """Desirability / viability / feasibility, each 1-10 or None (unscored)."""
    desirability: Score = Field(default=None, ge=1, le=10, strict=True)
    viability: Score = Field(default=None, ge=1, le=10, strict=True)
    feasibility: Score = Field(default=None, ge=1, le=10, strict=True)


class Message(CamelModel):
    """One conversation message."""
    id: str = Field(default_factory=generate_id)
    role: Literal["user", "assistant"]
    content: str = Field(min_length=1)
    timestamp: int = Field(default_factory=now_ms)
    # True only while the assistant text is still arriving; never persisted
    is_streaming: bool = False


class KillSignal(CamelModel):
    """A kill signal flagged during the conversation."""
    type: KillSignalType
    evidence: str
    detected_at: int  # message index when first flagged


class Session(CamelModel):
    """One validation run, owned by the client."""
    id: str = Field(default_factory=generate_id)
    idea_summary: str = Field(default="", max_length=IDEA_SUMMARY_MAX_LENGTH)
    phase: Phase = Phase.BRAIN_DUMP
    messages: List[Message] = Field(default_factory=list)
    scores: ConfidenceScores = Field(default_factory=ConfidenceScores)
    kill_signals: List[KillSignal] = Field(default_factory=list)
    research_complete: bool = False
    created_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)


class StoredSession(CamelModel):
    """Versioned local storage record."""
    version: int = SCHEMA_VERSION
    session: Session
