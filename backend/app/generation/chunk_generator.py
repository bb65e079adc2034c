"""Per-chunk question generation with credential rotation.

Each chunk gets at most one attempt per configured credential:
- authentication failure -> credential invalidated, next attempt immediately
- rate/quota failure     -> next attempt immediately, credential kept
- anything else          -> fixed backoff, then next attempt

Attempts report explicit outcomes tagged with a FailureKind; only the
exhausted state raises.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from backend.app.config import Settings
from backend.app.generation.chunker import Chunk
from backend.app.generation.credentials import Credential, CredentialPool
from backend.app.generation.errors import (
    AllCredentialsExhausted,
    ChunkGenerationFailed,
    FailureKind,
    GenerationCancelled,
    MalformedResponse,
)
from backend.app.generation.normalizer import normalize_question
from backend.app.generation.prompts import build_chunk_prompt
from backend.app.generation.recovery import recover_candidates
from backend.app.llm.client import (
    GenerationConfig,
    ProviderAuthenticationError,
    ProviderRateLimitError,
    QuestionProvider,
    translate_provider_error,
)
from backend.app.models.questions import Difficulty, Question, Section


@dataclass(frozen=True)
class AttemptContext:
    """Context for provider attempts with tracing."""

    generation_id: str
    chunk_index: int
    chunk_total: int


@dataclass
class CancelToken:
    """Token for cancellation signaling."""

    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True

    def throw_if_cancelled(self) -> None:
        """Raise GenerationCancelled if cancelled."""
        if self.cancelled:
            raise GenerationCancelled("Generation cancelled")


@dataclass(frozen=True)
class AttemptOutcome:
    """Result of a single provider attempt."""

    questions: list[Question] | None = None
    kind: FailureKind | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.questions is not None


@dataclass(frozen=True)
class ChunkGeneratorConfig:
    """Configuration for chunk generation."""

    model: str
    generation: GenerationConfig
    timeout_ms: int
    backoff_ms: int

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChunkGeneratorConfig":
        return cls(
            model=settings.provider_model,
            generation=GenerationConfig.from_settings(settings),
            timeout_ms=settings.provider_timeout_ms,
            backoff_ms=settings.retry_backoff_ms,
        )


# Metrics interface (implemented by utils.metrics)
class GenerationMetrics:
    """Interface for generation metrics."""

    def record_latency(self, outcome: str, latency_ms: float) -> None:
        pass

    def inc_error(self, kind: str) -> None:
        pass

    def inc_invalidation(self) -> None:
        pass

    def add_questions(self, difficulty: str, count: int) -> None:
        pass

    def inc_session(self, status: str) -> None:
        pass


# Logging interface (implemented by utils.logging)
class AttemptLogger:
    """Interface for structured attempt logging."""

    def log_attempt(
        self,
        ctx: AttemptContext,
        attempt: int,
        outcome: str,
        latency_ms: float,
        credential_position: int | None = None,
        error_kind: str | None = None,
    ) -> None:
        pass


def classify_failure(exc: Exception) -> FailureKind:
    """Classify a failed attempt."""
    if isinstance(exc, MalformedResponse):
        return FailureKind.MALFORMED
    if isinstance(exc, TimeoutError | asyncio.TimeoutError):
        return FailureKind.TIMEOUT

    translated = translate_provider_error(exc)
    if isinstance(translated, ProviderAuthenticationError):
        return FailureKind.AUTHENTICATION
    if isinstance(translated, ProviderRateLimitError):
        return FailureKind.RATE_LIMIT
    return FailureKind.PROVIDER


class ChunkGenerator:
    """Generates normalized questions for one chunk at a time."""

    def __init__(
        self,
        pool: CredentialPool,
        provider: QuestionProvider,
        config: ChunkGeneratorConfig,
        metrics: GenerationMetrics | None = None,
        logger: AttemptLogger | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize generator.

        Args:
            pool: Shared credential pool
            provider: Provider client
            config: Model, sampling, timeout and backoff configuration
            metrics: Metrics recorder (optional, defaults to no-op)
            logger: Structured logger (optional, defaults to no-op)
            sleep_fn: Injectable sleep function (default: asyncio.sleep)
        """
        self._pool = pool
        self._provider = provider
        self._config = config
        self._metrics = metrics or GenerationMetrics()
        self._logger = logger or AttemptLogger()
        self._sleep = sleep_fn or asyncio.sleep

    async def generate(
        self,
        chunk: Chunk,
        desired_count: int,
        difficulty: Difficulty,
        section: Section | None = None,
        *,
        generation_id: str = "",
        cancel_token: CancelToken | None = None,
    ) -> list[Question]:
        """Generate up to ``desired_count`` questions from one chunk.

        Args:
            chunk: Content chunk
            desired_count: Number of questions to request
            difficulty: Requested difficulty
            section: Position band (defaults to the chunk's own band)
            generation_id: Session id for log correlation
            cancel_token: Cancellation token (optional)

        Returns:
            Normalized questions, at most ``desired_count``

        Raises:
            AllCredentialsExhausted: Pool had no valid credential to start with
            ChunkGenerationFailed: Every attempt failed
            GenerationCancelled: Cancelled between attempts
        """
        if cancel_token is None:
            cancel_token = CancelToken()
        section = section or chunk.section

        max_attempts = len(self._pool)
        if max_attempts == 0 or self._pool.is_exhausted():
            raise AllCredentialsExhausted("No valid provider credentials available")

        ctx = AttemptContext(
            generation_id=generation_id,
            chunk_index=chunk.index,
            chunk_total=chunk.total,
        )
        prompt = build_chunk_prompt(chunk, desired_count, difficulty, section)

        last: AttemptOutcome | None = None
        attempts_made = 0
        for attempt in range(1, max_attempts + 1):
            cancel_token.throw_if_cancelled()

            credential = self._pool.next()
            if credential is None:
                if last is None:
                    raise AllCredentialsExhausted("No valid provider credentials available")
                break

            attempts_made = attempt
            outcome = await self._attempt(
                ctx, attempt, credential, prompt, desired_count, difficulty, section
            )
            if outcome.ok:
                assert outcome.questions is not None
                return outcome.questions

            last = outcome
            if outcome.kind == FailureKind.AUTHENTICATION:
                if self._pool.invalidate(credential):
                    self._metrics.inc_invalidation()
                continue
            if outcome.kind == FailureKind.RATE_LIMIT:
                continue
            if attempt < max_attempts:
                await self._sleep(self._config.backoff_ms / 1000)

        assert last is not None and last.kind is not None
        raise ChunkGenerationFailed(chunk.index, attempts_made, last.kind, last.error)

    async def _attempt(
        self,
        ctx: AttemptContext,
        attempt: int,
        credential: Credential,
        prompt: str,
        desired_count: int,
        difficulty: Difficulty,
        section: Section,
    ) -> AttemptOutcome:
        start = time.monotonic()
        try:
            raw = await asyncio.wait_for(
                self._provider.generate(
                    credential, self._config.model, prompt, self._config.generation
                ),
                timeout=self._config.timeout_ms / 1000,
            )
            candidates = recover_candidates(raw)
        except Exception as e:
            elapsed_ms = (time.monotonic() - start) * 1000
            kind = classify_failure(e)
            self._metrics.record_latency(kind.value, elapsed_ms)
            self._metrics.inc_error(kind.value)
            self._logger.log_attempt(
                ctx, attempt, "error", elapsed_ms, credential.position, kind.value
            )
            return AttemptOutcome(kind=kind, error=e)

        elapsed_ms = (time.monotonic() - start) * 1000
        questions = [
            normalize_question(c, difficulty, ordinal=i + 1, default_section=section)
            for i, c in enumerate(candidates[:desired_count])
        ]
        self._metrics.record_latency("success", elapsed_ms)
        self._metrics.add_questions(difficulty.value, len(questions))
        self._logger.log_attempt(ctx, attempt, "success", elapsed_ms, credential.position)
        return AttemptOutcome(questions=questions)
