"""
Conversation - drives one validation session turn by turn.

Each turn appends the user's message, streams the assistant reply, applies the
decoded control events to the session as they arrive and commits the reply
when the stream ends. A stopped or cancelled turn keeps whatever text had
already arrived.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, List, Optional

from ..models.requests import ChatMessage, ChatRequest, MAX_REQUEST_MESSAGES
from ..models.session import MESSAGE_MAX_LENGTH, Message, Session, now_ms
from ..streaming.protocol import DoneEvent, ErrorEvent, SearchQueryEvent, SearchingEvent
from ..streaming.reader import NarrativeText, StreamReader
from .api_client import ApiError, ProveItClient
from .session_store import SessionStore
from .state import append_message, apply_event

logger = logging.getLogger(__name__)

DEFAULT_IDLE_TIMEOUT = 60.0
IDLE_TIMEOUT_MESSAGE = "Search is taking too long. Please try again."


@dataclass
class TurnResult:
    """Outcome of one turn."""
    session: Session
    text: str = ""
    committed: bool = False
    completed: bool = False  # the stream delivered ``done``
    error: Optional[str] = None
    search_queries: List[str] = field(default_factory=list)


class Conversation:
    """
    Client-side owner of one Session.

    ``session`` always holds the latest state, including phase and score
    changes applied mid-stream; ``streaming_message`` is the provisional
    assistant reply while a turn is in flight.
    """

    def __init__(
        self,
        client: ProveItClient,
        store: SessionStore,
        session: Session,
        history_limit: int = MAX_REQUEST_MESSAGES,
        idle_timeout: Optional[float] = DEFAULT_IDLE_TIMEOUT,
    ):
        self.client = client
        self.store = store
        self.session = session
        self.history_limit = history_limit
        self.idle_timeout = idle_timeout

        self.streaming_message: Optional[Message] = None
        self.is_searching = False
        self._turn_task: Optional[asyncio.Task] = None

    @classmethod
    async def start(cls, client: ProveItClient, store: SessionStore, idea: str, **kwargs) -> "Conversation":
        """Create a session for the idea and run the opening turn."""
        session = await store.create(idea)
        conversation = cls(client, store, session, **kwargs)
        await conversation.send_message(idea)
        return conversation

    @classmethod
    async def resume(cls, client: ProveItClient, store: SessionStore, **kwargs) -> Optional["Conversation"]:
        """Reopen the persisted session, if any."""
        session = await store.load()
        if session is None:
            return None
        return cls(client, store, session, **kwargs)

    async def start_fresh(self, idea: str) -> Session:
        """Discard the current session and begin a new one (the only way to leave a late phase)."""
        await self.store.clear()
        self.session = await self.store.create(idea)
        self.streaming_message = None
        self.is_searching = False
        return self.session

    @property
    def is_streaming(self) -> bool:
        return self._turn_task is not None

    def stop(self) -> None:
        """Cancel the in-flight turn; its partial reply is still committed."""
        if self._turn_task is not None and not self._turn_task.done():
            self._turn_task.cancel()

    def build_request(self) -> ChatRequest:
        """Request for the current state, limited to the most recent messages."""
        recent = self.session.messages[-self.history_limit:]
        return ChatRequest(
            session_id=self.session.id,
            messages=[ChatMessage(role=m.role, content=m.content[:MESSAGE_MAX_LENGTH]) for m in recent],
            phase=self.session.phase,
            scores=self.session.scores,
        )

    async def send_message(self, text: str) -> TurnResult:
        """
        Run one turn.

        Raises:
            asyncio.CancelledError: when the turn was stopped; the partial
                reply has been committed and persisted before re-raising
            pydantic.ValidationError: when ``text`` is not a valid message;
                no turn is started
        """
        if self._turn_task is not None:
            raise RuntimeError("A turn is already in progress")
        # Validated before the turn is claimed
        message = Message(role="user", content=text)
        self._turn_task = asyncio.current_task()

        self.session = append_message(self.session, message)
        self.is_searching = False
        result = TurnResult(session=self.session)

        try:
            await self._stream_turn(result)
        except asyncio.CancelledError:
            logger.info(f"Turn cancelled for session {self.session.id}, keeping partial reply")
            await self._commit(result)
            raise
        except ApiError as e:
            # Refused before streaming began; nothing to commit
            result.error = e.message
            result.session = self.session
            return result
        finally:
            self._turn_task = None
            self.streaming_message = None
            self.is_searching = False

        await self._commit(result)
        return result

    async def _stream_turn(self, result: TurnResult) -> None:
        reader = StreamReader()
        source = self.client.stream_chat(self.build_request())
        try:
            while True:
                try:
                    chunk = await self._next_chunk(source)
                except StopAsyncIteration:
                    break
                for item in reader.feed(chunk):
                    self._apply(item, result)
        except asyncio.TimeoutError:
            logger.warning(f"No stream activity for {self.idle_timeout}s, aborting turn")
            result.error = IDLE_TIMEOUT_MESSAGE
        finally:
            await source.aclose()
            for item in reader.finish():
                self._apply(item, result)

    async def _next_chunk(self, source: AsyncIterator[bytes]) -> bytes:
        """Next chunk from the response; the idle timeout is a client-side heuristic only."""
        if self.idle_timeout is None:
            return await source.__anext__()
        return await asyncio.wait_for(source.__anext__(), self.idle_timeout)

    def _apply(self, item, result: TurnResult) -> None:
        if isinstance(item, NarrativeText):
            result.text += item.text
            self.streaming_message = Message(
                role="assistant",
                content=result.text,
                is_streaming=True,
            ) if result.text else None
        elif isinstance(item, SearchingEvent):
            self.is_searching = item.active
        elif isinstance(item, SearchQueryEvent):
            result.search_queries.append(item.query)
        elif isinstance(item, ErrorEvent):
            result.error = item.message
        elif isinstance(item, DoneEvent):
            result.completed = True
            self.is_searching = False
        else:
            self.session = apply_event(self.session, item)
        result.session = self.session

    async def _commit(self, result: TurnResult) -> None:
        """Append the reply (if any) and persist the session."""
        if result.text.strip():
            reply = Message(role="assistant", content=result.text, timestamp=now_ms())
            self.session = append_message(self.session, reply)
            result.committed = True
        self.session = await self.store.save(self.session)
        result.session = self.session
