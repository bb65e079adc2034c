"""Generation orchestrator - drives chunker and chunk generator over a document.

Chunks are processed sequentially with a short delay in between to ease
provider rate limits. A failed chunk is logged and skipped; the run only
fails when nothing at all was produced. The returned count is best-effort
and may fall short of the request when chunks fail.
"""

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable

from backend.app.generation.chunk_generator import CancelToken, ChunkGenerator
from backend.app.generation.chunker import chunk_content
from backend.app.generation.errors import (
    AllCredentialsExhausted,
    ChunkGenerationFailed,
    NoQuestionsGenerated,
)
from backend.app.models.events import GenerationEvent, ProgressEvent
from backend.app.models.questions import Difficulty, Question

logger = logging.getLogger(__name__)

EventSink = Callable[[GenerationEvent], Awaitable[None]]


async def _discard(event: GenerationEvent) -> None:
    return None


def plan_chunk_targets(total_count: int, chunk_count: int) -> list[int]:
    """Split a requested question count across chunks.

    Each chunk asks for ``ceil(remaining / chunks_left)``; the last chunk
    takes whatever is left so the plan sums to ``total_count``. Targets are
    never negative and a zero target means the chunk is skipped.

    >>> plan_chunk_targets(10, 3)
    [4, 3, 3]
    >>> plan_chunk_targets(2, 3)
    [1, 1, 0]
    """
    targets: list[int] = []
    planned = 0
    for position in range(chunk_count):
        remaining = max(total_count - planned, 0)
        chunks_left = chunk_count - position
        if chunks_left == 1:
            target = remaining
        else:
            target = min(math.ceil(remaining / chunks_left), remaining)
        targets.append(target)
        planned += target
    return targets


class GenerationOrchestrator:
    """Turns one document into a list of questions."""

    def __init__(
        self,
        chunk_generator: ChunkGenerator,
        *,
        max_chunk_chars: int,
        inter_chunk_delay_ms: int,
        progress_span: tuple[int, int] = (20, 60),
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize orchestrator.

        Args:
            chunk_generator: Per-chunk generator
            max_chunk_chars: Maximum chunk size after whitespace normalization
            inter_chunk_delay_ms: Pause between consecutive chunks
            progress_span: Progress percentages reported at start and end of the run
            sleep_fn: Injectable sleep function (default: asyncio.sleep)
        """
        self._chunk_generator = chunk_generator
        self._max_chunk_chars = max_chunk_chars
        self._delay_seconds = inter_chunk_delay_ms / 1000
        self._progress_start, self._progress_end = progress_span
        self._sleep = sleep_fn or asyncio.sleep

    def _progress(self, done: int, total: int) -> int:
        span = self._progress_end - self._progress_start
        return self._progress_start + round(span * done / total)

    async def run(
        self,
        content: str,
        total_count: int,
        difficulty: Difficulty,
        *,
        sink: EventSink | None = None,
        generation_id: str = "",
        cancel_token: CancelToken | None = None,
    ) -> list[Question]:
        """Generate ``total_count`` questions (best effort) from content.

        Args:
            content: Extracted document text
            total_count: Requested number of questions
            difficulty: Difficulty for every question
            sink: Receives progress events (optional)
            generation_id: Session id for log correlation
            cancel_token: Cancellation token (optional)

        Returns:
            Accumulated questions, possibly fewer than requested

        Raises:
            ChunkingError: Content is empty
            ChunkGenerationFailed: The last chunk failed and nothing was produced
            AllCredentialsExhausted: As above, when the pool was already empty
            NoQuestionsGenerated: Every chunk failed or was skipped
            GenerationCancelled: Cancelled between chunks or attempts
        """
        if sink is None:
            sink = _discard
        if cancel_token is None:
            cancel_token = CancelToken()

        chunks = chunk_content(content, self._max_chunk_chars)
        targets = plan_chunk_targets(total_count, len(chunks))
        logger.info(
            f"[{generation_id}] Generating {total_count} {difficulty.value} question(s) "
            f"from {len(content)} chars in {len(chunks)} chunk(s), targets={targets}"
        )

        questions: list[Question] = []
        for chunk, target in zip(chunks, targets, strict=True):
            cancel_token.throw_if_cancelled()
            is_last = chunk.index == chunk.total

            if target <= 0:
                logger.info(f"[{generation_id}] Skipping chunk {chunk.index}: nothing left to request")
                continue

            await sink(
                ProgressEvent(
                    progress=self._progress(chunk.index - 1, chunk.total),
                    message=f"Generating questions from part {chunk.index} of {chunk.total}...",
                )
            )

            try:
                produced = await self._chunk_generator.generate(
                    chunk,
                    target,
                    difficulty,
                    chunk.section,
                    generation_id=generation_id,
                    cancel_token=cancel_token,
                )
            except (ChunkGenerationFailed, AllCredentialsExhausted) as e:
                if is_last and not questions:
                    logger.error(f"[{generation_id}] Last chunk failed with nothing produced: {e}")
                    raise
                logger.warning(f"[{generation_id}] Chunk {chunk.index} skipped: {e}")
            else:
                questions.extend(produced)
                logger.info(
                    f"[{generation_id}] Chunk {chunk.index}/{chunk.total}: "
                    f"{len(produced)}/{target} question(s), {len(questions)} total"
                )

            await sink(
                ProgressEvent(
                    progress=self._progress(chunk.index, chunk.total),
                    message=f"Processed part {chunk.index} of {chunk.total} "
                    f"({len(questions)} question(s) so far)",
                )
            )

            if not is_last:
                await self._sleep(self._delay_seconds)

        if not questions:
            raise NoQuestionsGenerated("No questions could be generated from this document")

        return questions
