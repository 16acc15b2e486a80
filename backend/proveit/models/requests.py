"""
Request schemas for the streaming endpoints.

Both are validated before the model is invoked; the first failure message is
returned to the caller as a 400.
"""

import re
from typing import List, Literal

from pydantic import Field, ValidationError, field_validator

from .session import CamelModel, ConfidenceScores, MESSAGE_MAX_LENGTH, Phase


IDEA_MIN_LENGTH = 10
IDEA_MAX_LENGTH = 2000
SESSION_ID_MAX_LENGTH = 100
MAX_REQUEST_MESSAGES = 50

_SESSION_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")


class FastCheckRequest(CamelModel):
    """Single-shot rapid check of an idea."""
    idea: str

    @field_validator("idea")
    @classmethod
    def _validate_idea(cls, value: str) -> str:
        idea = value.strip()
        if len(idea) < IDEA_MIN_LENGTH:
            raise ValueError("Tell us a bit more about the idea")
        if len(idea) > IDEA_MAX_LENGTH:
            raise ValueError(f"Please keep your idea under {IDEA_MAX_LENGTH} characters")
        return idea


class ChatMessage(CamelModel):
    """Message as sent over the wire (client-only fields stripped)."""
    role: Literal["user", "assistant"]
    content: str = Field(min_length=1, max_length=MESSAGE_MAX_LENGTH)


class ChatRequest(CamelModel):
    """One conversational turn."""
    session_id: str
    messages: List[ChatMessage] = Field(min_length=1, max_length=MAX_REQUEST_MESSAGES)
    phase: Phase
    scores: ConfidenceScores

    @field_validator("session_id")
    @classmethod
    def _validate_session_id(cls, value: str) -> str:
        if not value or len(value) > SESSION_ID_MAX_LENGTH or not _SESSION_ID_PATTERN.match(value):
            raise ValueError("Invalid session ID")
        return value


def first_error_message(exc: ValidationError) -> str:
    """
    Human-readable message for the first validation error.

    Messages raised by our own validators are returned as written; built-in
    constraint failures are prefixed with the offending field path.
    """
    errors = exc.errors()
    if not errors:
        return "Invalid input"
    error = errors[0]
    if error.get("type") == "value_error" and "error" in error.get("ctx", {}):
        return str(error["ctx"]["error"])
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {error['msg']}" if location else error["msg"]
