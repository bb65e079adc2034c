"""Session registry - per-user single-flight generation sessions.

The registry is the only owner of the user -> active session mapping.
Sessions are never handed out by reference; callers interact through
session ids and receive event iterators.

Lifecycle: processing -> completed | error. After the terminal transition the
user's slot is released at once and the session itself is removed after a
grace period, so late subscribers can still read its outcome.
"""

import asyncio
import logging
import threading
import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from backend.app.generation.chunk_generator import CancelToken, GenerationMetrics
from backend.app.generation.errors import (
    ConcurrentGenerationConflict,
    GenerationCancelled,
    SessionNotFound,
    UnauthorizedSessionAccess,
)
from backend.app.models.events import (
    CompleteEvent,
    ErrorEvent,
    GenerationEvent,
    is_terminal,
)

logger = logging.getLogger(__name__)

EventSink = Callable[[GenerationEvent], Awaitable[None]]

# Runs the pipeline, publishes non-terminal events, returns the question count.
GenerationJob = Callable[[EventSink, CancelToken], Awaitable[int]]


class SessionState(str, Enum):
    """Generation session lifecycle state."""

    processing = "processing"
    completed = "completed"
    error = "error"


class StreamClosedError(Exception):
    """Event published after the terminal event."""

    pass


class EventChannel:
    """Append-only event log with closure after the terminal event.

    Every subscriber replays from the first event, so a subscriber that
    connects late (or reconnects) still observes the whole stream.
    """

    def __init__(self) -> None:
        self._events: list[GenerationEvent] = []
        self._closed = False
        self._condition = asyncio.Condition()

    @property
    def closed(self) -> bool:
        return self._closed

    async def publish(self, event: GenerationEvent) -> None:
        """Append an event; a terminal event closes the channel."""
        async with self._condition:
            if self._closed:
                raise StreamClosedError(f"Cannot publish {event.type} event to a closed stream")
            self._events.append(event)
            if is_terminal(event):
                self._closed = True
            self._condition.notify_all()

    async def stream(self) -> AsyncIterator[GenerationEvent]:
        """Yield events in emission order until the terminal event."""
        index = 0
        while True:
            async with self._condition:
                await self._condition.wait_for(lambda: index < len(self._events) or self._closed)
                pending = self._events[index:]
                closed = self._closed
            for event in pending:
                yield event
            index += len(pending)
            if closed:
                return


@dataclass
class GenerationSession:
    """One tracked generation."""

    session_id: str
    user_id: str
    state: SessionState = SessionState.processing
    channel: EventChannel = field(default_factory=EventChannel)
    cancel_token: CancelToken = field(default_factory=CancelToken)
    created_at: datetime = field(default_factory=datetime.now)
    task: asyncio.Task[None] | None = None


class SessionRegistry:
    """Registry of generation sessions, enforcing one in flight per user."""

    def __init__(
        self,
        grace_seconds: float = 60,
        metrics: GenerationMetrics | None = None,
    ) -> None:
        """Initialize registry.

        Args:
            grace_seconds: Delay between terminal state and removal
            metrics: Metrics recorder (optional, defaults to no-op)
        """
        self._grace_seconds = grace_seconds
        self._metrics = metrics or GenerationMetrics()
        self._lock = threading.Lock()
        self._sessions: dict[str, GenerationSession] = {}
        self._active_by_user: dict[str, str] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    def create(self, user_id: str) -> str:
        """Allocate a processing session for a user.

        Raises:
            ConcurrentGenerationConflict: User already owns a processing session
        """
        with self._lock:
            if user_id in self._active_by_user:
                raise ConcurrentGenerationConflict(user_id)
            session_id = str(uuid.uuid4())
            self._sessions[session_id] = GenerationSession(session_id=session_id, user_id=user_id)
            self._active_by_user[user_id] = session_id

        logger.info(f"[{session_id}] Session created for user {user_id}")
        return session_id

    def _owned(self, session_id: str, user_id: str) -> GenerationSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        if session.user_id != user_id:
            raise UnauthorizedSessionAccess(session_id)
        return session

    def subscribe(self, session_id: str, user_id: str) -> AsyncIterator[GenerationEvent]:
        """Return the session's event stream.

        Raises:
            SessionNotFound: Unknown or reaped session
            UnauthorizedSessionAccess: Session belongs to another user
        """
        with self._lock:
            session = self._owned(session_id, user_id)
        return session.channel.stream()

    def get_state(self, session_id: str, user_id: str) -> SessionState:
        """Return the lifecycle state of a session owned by ``user_id``."""
        with self._lock:
            return self._owned(session_id, user_id).state

    def active_session(self, user_id: str) -> str | None:
        """Return the user's processing session id, if any."""
        with self._lock:
            return self._active_by_user.get(user_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def run(self, session_id: str, job: GenerationJob) -> asyncio.Task[None]:
        """Schedule a job for a processing session on the running loop.

        The task is independent of any subscriber; disconnecting from the
        stream does not stop it.
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFound(session_id)
            if session.state != SessionState.processing or session.task is not None:
                raise RuntimeError(f"Session {session_id} is not awaiting a job")
            task = asyncio.create_task(self._drive(session, job), name=f"generation-{session_id}")
            session.task = task
            self._tasks.add(task)

        task.add_done_callback(self._tasks.discard)
        return task

    def cancel(self, session_id: str, user_id: str) -> bool:
        """Request cancellation of a processing session.

        Returns:
            True if the session was still processing
        """
        with self._lock:
            session = self._owned(session_id, user_id)
            if session.state != SessionState.processing:
                return False
            session.cancel_token.cancel()

        logger.info(f"[{session_id}] Cancellation requested")
        return True

    async def _drive(self, session: GenerationSession, job: GenerationJob) -> None:
        async def emit(event: GenerationEvent) -> None:
            if is_terminal(event):
                raise ValueError("Terminal events are emitted by the registry")
            await session.channel.publish(event)

        start = time.monotonic()
        try:
            total = await job(emit, session.cancel_token)
        except asyncio.CancelledError:
            await self._terminate(session, ErrorEvent(message="Generation cancelled"))
            raise
        except GenerationCancelled as e:
            logger.info(f"[{session.session_id}] {e}")
            await self._terminate(session, ErrorEvent(message=str(e)))
        except Exception as e:
            logger.error(f"[{session.session_id}] Generation failed: {e}", exc_info=True)
            await self._terminate(session, ErrorEvent(message=str(e) or type(e).__name__))
        else:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.info(f"[{session.session_id}] Completed with {total} question(s) in {elapsed_ms}ms")
            await self._terminate(
                session,
                CompleteEvent(
                    total_questions=total,
                    elapsed_ms=elapsed_ms,
                    message=f"Successfully generated {total} questions",
                ),
            )

    async def _terminate(
        self, session: GenerationSession, event: CompleteEvent | ErrorEvent
    ) -> None:
        state = SessionState.completed if isinstance(event, CompleteEvent) else SessionState.error
        await session.channel.publish(event)

        with self._lock:
            session.state = state
            if self._active_by_user.get(session.user_id) == session.session_id:
                del self._active_by_user[session.user_id]

        self._metrics.inc_session(state.value)
        asyncio.get_running_loop().call_later(self._grace_seconds, self._reap, session.session_id)

    def _reap(self, session_id: str) -> None:
        with self._lock:
            removed = self._sessions.pop(session_id, None)
        if removed is not None:
            logger.info(f"[{session_id}] Cleaned up generation session")

    async def shutdown(self) -> None:
        """Cancel every running job and wait for their terminal events."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
