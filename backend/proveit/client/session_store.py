"""
Versioned persistence of the validation session.

The record is ``{"version": 1, "session": {...}}``. There is no field-level
migration: a record with any other version (or none, or unreadable JSON) is
deleted and treated as no session.
"""

import json
import logging
from typing import Optional

from pydantic import ValidationError

from ..models.session import (
    SCHEMA_VERSION,
    Session,
    StoredSession,
    now_ms,
)
from .state import new_session
from .storage import KeyValueStorage, StorageError

logger = logging.getLogger(__name__)

STORAGE_KEY = "proveit_session"

# Storage failures are absorbed: the session keeps running in memory
STORAGE_FAILURES = (StorageError, OSError)


def serialize_session(session: Session) -> str:
    """Render the stored record; streaming flags are always stripped."""
    record = {
        "version": SCHEMA_VERSION,
        "session": session.model_dump(
            mode="json",
            by_alias=True,
            exclude={"messages": {"__all__": {"is_streaming"}}},
        ),
    }
    return json.dumps(record, ensure_ascii=False)


class SessionStore:
    """
    Loads, saves and clears the single persisted session.
    """

    def __init__(self, storage: KeyValueStorage, key: str = STORAGE_KEY):
        self.storage = storage
        self.key = key

    async def create(self, idea: str) -> Session:
        """Start a new session for an idea and persist it."""
        session = new_session(idea)
        try:
            await self.storage.set(self.key, serialize_session(session))
        except STORAGE_FAILURES as e:
            logger.warning(f"Session storage unavailable, running in memory only: {e!r}")
        return session

    async def load(self) -> Optional[Session]:
        """
        Restore the persisted session.

        Returns:
            The session, or None when nothing valid is stored
        """
        try:
            raw = await self.storage.get(self.key)
        except STORAGE_FAILURES as e:
            logger.warning(f"Could not read stored session: {e!r}")
            return None
        if not raw:
            return None

        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.info("Stored session is not valid JSON, discarding")
            await self.clear()
            return None

        version = data.get("version") if isinstance(data, dict) else None
        if type(version) is not int or version != SCHEMA_VERSION:
            logger.info(f"Stored session schema version {version!r} != {SCHEMA_VERSION}, discarding")
            await self.clear()
            return None

        try:
            return StoredSession.model_validate(data).session
        except ValidationError as e:
            logger.info(f"Stored session failed validation, discarding: {e.error_count()} errors")
            await self.clear()
            return None

    async def save(self, session: Session) -> Session:
        """
        Persist the session with ``updated_at`` advanced.

        Returns:
            The session as persisted (streaming flags cleared), even when the
            write itself failed
        """
        stored = session.model_copy(update={
            "updated_at": max(now_ms(), session.updated_at),
            "messages": [
                m.model_copy(update={"is_streaming": False}) if m.is_streaming else m
                for m in session.messages
            ],
        })
        try:
            await self.storage.set(self.key, serialize_session(stored))
        except STORAGE_FAILURES as e:
            logger.warning(f"Could not persist session {session.id}, continuing in memory: {e!r}")
        return stored

    async def clear(self) -> None:
        """Remove the persisted session."""
        try:
            await self.storage.remove(self.key)
        except STORAGE_FAILURES as e:
            logger.warning(f"Could not clear stored session: {e!r}")
