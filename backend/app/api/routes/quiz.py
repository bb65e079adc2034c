"""Quiz endpoints - upload, SSE generation stream, questions, answers, progress."""

import asyncio
import logging
from collections.abc import AsyncGenerator, AsyncIterator
from typing import Annotated

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    Request,
    Response,
    UploadFile,
    status,
)
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from backend.app.api.auth import get_current_context
from backend.app.config import get_settings
from backend.app.db.context import RequestContext
from backend.app.db.repositories import QuestionNotFound
from backend.app.documents.extract import (
    DocumentTooLarge,
    EmptyDocument,
    UnsupportedDocumentType,
    extract_text,
)
from backend.app.generation.errors import (
    ConcurrentGenerationConflict,
    SessionNotFound,
    UnauthorizedSessionAccess,
)
from backend.app.generation.service import QuizGenerationService, get_quiz_service
from backend.app.middleware.ratelimit import RateLimitMiddleware, get_rate_limit_middleware
from backend.app.models.events import GenerationEvent, QuestionPayload, to_sse
from backend.app.models.questions import Difficulty

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quiz", tags=["quiz"])


class UploadResponse(BaseModel):
    """Response for POST /quiz/upload."""

    generation_id: str
    status: str


class CancelResponse(BaseModel):
    """Response for DELETE /quiz/generations/{generation_id}."""

    generation_id: str
    cancelled: bool


class QuestionsResponse(BaseModel):
    """Response for GET /quiz/questions."""

    questions: list[QuestionPayload]


class SubmitAnswerRequest(BaseModel):
    """Request body for POST /quiz/submit."""

    question_id: str = Field(..., min_length=1)
    selected_answer: int = Field(..., ge=0, le=3)


class ProgressResponse(BaseModel):
    """Answer statistics for the current user."""

    total_questions: int
    correct_answers: int
    accuracy: float


class SubmitAnswerResponse(BaseModel):
    """Response for POST /quiz/submit."""

    correct: bool
    correct_answer: int
    explanation: str
    progress: ProgressResponse


def parse_difficulty(raw: str | None) -> Difficulty:
    """Parse a difficulty label, falling back to medium."""
    if raw:
        try:
            return Difficulty(raw.strip().lower())
        except ValueError:
            logger.info(f"Unknown difficulty '{raw}', using medium")
    return Difficulty.medium


def clamp_question_count(raw: int | None, default: int, maximum: int) -> int:
    """Clamp a requested question count to [1, maximum]."""
    if raw is None:
        return default
    return max(1, min(raw, maximum))


def _session_error(e: Exception) -> HTTPException:
    if isinstance(e, UnauthorizedSessionAccess):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/upload", response_model=UploadResponse, status_code=status.HTTP_202_ACCEPTED)
async def upload_document(
    request: Request,
    response: Response,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    service: Annotated[QuizGenerationService, Depends(get_quiz_service)],
    limiter: Annotated[RateLimitMiddleware, Depends(get_rate_limit_middleware)],
    file: Annotated[UploadFile, File()],
    topic: Annotated[str | None, Form()] = None,
    question_count: Annotated[int | None, Form()] = None,
    difficulty: Annotated[str | None, Form()] = None,
) -> UploadResponse:
    """Accept a document and start generating questions from it.

    Args:
        request: Incoming request (path used for rate limit bucketing)
        response: Outgoing response
        ctx: Request context (user_id)
        service: Generation service
        limiter: Upload rate limiter
        file: PDF or plain text document
        topic: Topic label for the generated questions
        question_count: Number of questions to generate
        difficulty: easy, medium or hard (anything else means medium)

    Returns:
        Generation id to stream events from
    """
    allowed, retry_after = limiter.check_rate_limit(request.url.path, ctx)
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many uploads, please retry later",
            headers={"Retry-After": str(retry_after)},
        )

    settings = get_settings()
    if file.size is not None and file.size > settings.max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds the {settings.max_upload_bytes // (1024 * 1024)}MB upload limit",
        )

    data = await file.read()
    filename = file.filename or "upload"

    # PDF parsing is CPU bound; keep it off the event loop
    try:
        content = await run_in_threadpool(
            extract_text,
            filename,
            file.content_type,
            data,
            max_bytes=settings.max_upload_bytes,
            allowed_types=settings.allowed_upload_types,
        )
    except DocumentTooLarge as e:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=str(e)) from e
    except UnsupportedDocumentType as e:
        raise HTTPException(status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, detail=str(e)) from e
    except EmptyDocument as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e

    try:
        generation_id = service.start_generation(
            user_id=ctx.user_id,
            content=content,
            topic=(topic or "").strip() or "General",
            question_count=clamp_question_count(
                question_count, settings.default_question_count, settings.max_question_count
            ),
            difficulty=parse_difficulty(difficulty),
            source_file=filename,
        )
    except ConcurrentGenerationConflict as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e

    response.headers["Location"] = f"/quiz/generations/{generation_id}/stream"
    return UploadResponse(generation_id=generation_id, status="accepted")


async def _next_event(events: AsyncIterator[GenerationEvent]) -> GenerationEvent:
    return await anext(events)


async def _with_heartbeats(
    events: AsyncIterator[GenerationEvent], interval: float
) -> AsyncGenerator[str, None]:
    """Render events as SSE frames, with a comment line after each idle interval."""
    pending: asyncio.Task[GenerationEvent] | None = None
    try:
        while True:
            if pending is None:
                pending = asyncio.create_task(_next_event(events))
            done, _ = await asyncio.wait({pending}, timeout=interval)
            if not done:
                yield ": heartbeat\n\n"
                continue
            try:
                event = pending.result()
            except StopAsyncIteration:
                return
            pending = None
            yield to_sse(event)
    finally:
        if pending is not None and not pending.done():
            pending.cancel()


@router.get("/generations/{generation_id}/stream")
async def stream_generation(
    generation_id: str,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    service: Annotated[QuizGenerationService, Depends(get_quiz_service)],
) -> StreamingResponse:
    """Stream generation events via SSE.

    The stream replays every event from the start and closes after the
    terminal complete or error event.

    Args:
        generation_id: Generation id returned by the upload
        ctx: Request context (enforces ownership)
        service: Generation service

    Returns:
        SSE stream
    """
    try:
        events = service.registry.subscribe(generation_id, ctx.user_id)
    except (SessionNotFound, UnauthorizedSessionAccess) as e:
        raise _session_error(e) from e

    return StreamingResponse(
        _with_heartbeats(events, get_settings().stream_heartbeat_seconds),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.delete("/generations/{generation_id}", response_model=CancelResponse)
async def cancel_generation(
    generation_id: str,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    service: Annotated[QuizGenerationService, Depends(get_quiz_service)],
) -> CancelResponse:
    """Request cancellation of a running generation.

    Returns:
        Whether the generation was still running
    """
    try:
        cancelled = service.registry.cancel(generation_id, ctx.user_id)
    except (SessionNotFound, UnauthorizedSessionAccess) as e:
        raise _session_error(e) from e
    return CancelResponse(generation_id=generation_id, cancelled=cancelled)


@router.get("/questions", response_model=QuestionsResponse)
async def list_questions(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    service: Annotated[QuizGenerationService, Depends(get_quiz_service)],
    limit: Annotated[int | None, Query(ge=1, le=200)] = None,
) -> QuestionsResponse:
    """List the current user's active questions, newest first."""
    stored = await service.store.find_active_questions(ctx.user_id, limit=limit)
    return QuestionsResponse(questions=[QuestionPayload.from_stored(q) for q in stored])


@router.post("/submit", response_model=SubmitAnswerResponse)
async def submit_answer(
    body: SubmitAnswerRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    service: Annotated[QuizGenerationService, Depends(get_quiz_service)],
) -> SubmitAnswerResponse:
    """Check an answer and update progress."""
    try:
        result = await service.store.record_answer(
            ctx.user_id, body.question_id, body.selected_answer
        )
    except QuestionNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e

    return SubmitAnswerResponse(
        correct=result.correct,
        correct_answer=result.correct_answer,
        explanation=result.explanation,
        progress=ProgressResponse(
            total_questions=result.progress.total_questions,
            correct_answers=result.progress.correct_answers,
            accuracy=result.progress.accuracy,
        ),
    )


@router.get("/progress", response_model=ProgressResponse)
async def get_progress(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    service: Annotated[QuizGenerationService, Depends(get_quiz_service)],
) -> ProgressResponse:
    """Get answer statistics for the current user."""
    stats = await service.store.get_progress(ctx.user_id)
    return ProgressResponse(
        total_questions=stats.total_questions,
        correct_answers=stats.correct_answers,
        accuracy=stats.accuracy,
    )
