"""
Hybrid text/event wire protocol.

The stream is UTF-8 text. A line of the form ``data: <json>`` is a control
event; every other byte is narrative text. Each event is a complete JSON
object on a single line.
"""

import json
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from ..models.session import ConfidenceScores, KillSignalType, Phase


EVENT_PREFIX = "data: "
LINE_TERMINATOR = "\n"


class PhaseChangeEvent(BaseModel):
    type: Literal["phase_change"] = "phase_change"
    phase: Phase


class ScoresEvent(BaseModel):
    type: Literal["scores"] = "scores"
    scores: ConfidenceScores


class KillSignalFinding(BaseModel):
    """Kill signal as carried on the wire; the detection index is assigned client-side."""
    type: KillSignalType
    evidence: str


class KillSignalEvent(BaseModel):
    type: Literal["kill_signal"] = "kill_signal"
    signal: KillSignalFinding


class SearchingEvent(BaseModel):
    type: Literal["searching"] = "searching"
    active: bool


class SearchQueryEvent(BaseModel):
    type: Literal["search_query"] = "search_query"
    query: str


class DoneEvent(BaseModel):
    type: Literal["done"] = "done"


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str


StreamEvent = Annotated[
    Union[
        PhaseChangeEvent,
        ScoresEvent,
        KillSignalEvent,
        SearchingEvent,
        SearchQueryEvent,
        DoneEvent,
        ErrorEvent,
    ],
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter = TypeAdapter(StreamEvent)


def encode_event(event: BaseModel) -> str:
    """Render an event as one control line, terminator included."""
    return f"{EVENT_PREFIX}{event.model_dump_json(by_alias=True)}{LINE_TERMINATOR}"


def parse_event_line(line: str) -> Optional[BaseModel]:
    """
    Parse a control line (prefix included, terminator excluded).

    Returns:
        The decoded event, or None if the line is not a well-formed event
    """
    if not line.startswith(EVENT_PREFIX):
        return None
    try:
        return _event_adapter.validate_python(json.loads(line[len(EVENT_PREFIX):]))
    except (json.JSONDecodeError, ValidationError, TypeError):
        return None
