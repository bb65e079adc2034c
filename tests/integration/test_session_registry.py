"""Integration tests for generation sessions and their event streams."""

import asyncio

import pytest

from backend.app.generation.chunk_generator import CancelToken
from backend.app.generation.errors import (
    ConcurrentGenerationConflict,
    NoQuestionsGenerated,
    SessionNotFound,
    UnauthorizedSessionAccess,
)
from backend.app.generation.sessions import EventChannel, SessionRegistry, SessionState, StreamClosedError
from backend.app.models.events import CompleteEvent, ErrorEvent, ProgressEvent


def _job(total: int = 3, gate: asyncio.Event | None = None):
    async def job(emit, cancel_token: CancelToken) -> int:
        await emit(ProgressEvent(progress=10, message="started"))
        if gate is not None:
            await gate.wait()
        cancel_token.throw_if_cancelled()
        await emit(ProgressEvent(progress=60, message="generated"))
        return total

    return job


@pytest.mark.asyncio
async def test_completed_session_streams_progress_then_complete(drain) -> None:
    registry = SessionRegistry(grace_seconds=60)
    session_id = registry.create("u1")

    await registry.run(session_id, _job(total=3))
    events = await drain(registry.subscribe(session_id, "u1"))

    assert [e.type for e in events] == ["progress", "progress", "complete"]
    complete = events[-1]
    assert isinstance(complete, CompleteEvent)
    assert complete.total_questions == 3
    assert complete.progress == 100
    assert registry.get_state(session_id, "u1") == SessionState.completed


@pytest.mark.asyncio
async def test_second_generation_for_same_user_conflicts() -> None:
    registry = SessionRegistry()
    gate = asyncio.Event()
    session_id = registry.create("u1")
    task = registry.run(session_id, _job(gate=gate))

    with pytest.raises(ConcurrentGenerationConflict):
        registry.create("u1")
    # Other users are independent
    other = registry.create("u2")

    gate.set()
    await task
    assert registry.active_session("u1") is None
    assert registry.active_session("u2") == other
    # Slot is free again once the first session is terminal
    assert registry.create("u1") != session_id


@pytest.mark.asyncio
async def test_failed_job_emits_single_error_and_releases_slot(drain) -> None:
    registry = SessionRegistry()

    async def failing(emit, cancel_token) -> int:
        await emit(ProgressEvent(progress=20, message="working"))
        raise NoQuestionsGenerated("No questions could be generated from this document")

    session_id = registry.create("u1")
    await registry.run(session_id, failing)
    events = await drain(registry.subscribe(session_id, "u1"))

    assert [e.type for e in events] == ["progress", "error"]
    assert events[-1].message == "No questions could be generated from this document"
    assert registry.get_state(session_id, "u1") == SessionState.error
    assert registry.active_session("u1") is None


@pytest.mark.asyncio
async def test_live_and_late_subscribers_see_the_same_stream(drain) -> None:
    registry = SessionRegistry()
    gate = asyncio.Event()
    session_id = registry.create("u1")
    task = registry.run(session_id, _job(gate=gate))

    live = asyncio.create_task(drain(registry.subscribe(session_id, "u1")))
    await asyncio.sleep(0)
    gate.set()
    await task
    late = await drain(registry.subscribe(session_id, "u1"))

    assert await live == late
    assert late[-1].type == "complete"


@pytest.mark.asyncio
async def test_subscribe_checks_existence_and_ownership() -> None:
    registry = SessionRegistry()
    session_id = registry.create("u1")

    with pytest.raises(SessionNotFound):
        registry.subscribe("no-such-session", "u1")
    with pytest.raises(UnauthorizedSessionAccess):
        registry.subscribe(session_id, "intruder")
    with pytest.raises(UnauthorizedSessionAccess):
        registry.cancel(session_id, "intruder")


@pytest.mark.asyncio
async def test_cancel_terminates_with_error(drain) -> None:
    registry = SessionRegistry()
    gate = asyncio.Event()
    session_id = registry.create("u1")
    task = registry.run(session_id, _job(gate=gate))
    await asyncio.sleep(0)

    assert registry.cancel(session_id, "u1") is True
    gate.set()
    await task
    events = await drain(registry.subscribe(session_id, "u1"))

    assert [e.type for e in events] == ["progress", "error"]
    assert events[-1].message == "Generation cancelled"
    assert registry.cancel(session_id, "u1") is False
    assert registry.active_session("u1") is None


@pytest.mark.asyncio
async def test_session_is_reaped_after_grace_period() -> None:
    registry = SessionRegistry(grace_seconds=0.01)
    session_id = registry.create("u1")

    await registry.run(session_id, _job())
    await asyncio.sleep(0.05)

    assert len(registry) == 0
    with pytest.raises(SessionNotFound):
        registry.subscribe(session_id, "u1")


@pytest.mark.asyncio
async def test_jobs_cannot_emit_terminal_events(drain) -> None:
    registry = SessionRegistry()

    async def sneaky(emit, cancel_token) -> int:
        await emit(CompleteEvent(total_questions=1, elapsed_ms=0, message="done"))
        return 1

    session_id = registry.create("u1")
    await registry.run(session_id, sneaky)
    events = await drain(registry.subscribe(session_id, "u1"))

    assert [e.type for e in events] == ["error"]


@pytest.mark.asyncio
async def test_shutdown_cancels_running_jobs(drain) -> None:
    registry = SessionRegistry()
    session_id = registry.create("u1")
    registry.run(session_id, _job(gate=asyncio.Event()))
    await asyncio.sleep(0)

    await registry.shutdown()
    events = await drain(registry.subscribe(session_id, "u1"))

    assert events[-1] == ErrorEvent(message="Generation cancelled")
    assert registry.active_session("u1") is None


@pytest.mark.asyncio
async def test_channel_rejects_events_after_close() -> None:
    channel = EventChannel()
    await channel.publish(ErrorEvent(message="boom"))

    assert channel.closed
    with pytest.raises(StreamClosedError):
        await channel.publish(ProgressEvent(progress=5, message="late"))
