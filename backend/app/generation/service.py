"""Quiz generation service - wires pool, provider, registry and store."""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncEngine

from backend.app.config import Settings, get_settings
from backend.app.db.engine import create_async_engine_from_settings, create_session_factory
from backend.app.db.inmemory import InMemoryQuestionStore
from backend.app.db.models import Base
from backend.app.db.repositories import QuestionStore
from backend.app.db.sql_repositories import SqlQuestionStore
from backend.app.generation.chunk_generator import (
    AttemptLogger,
    ChunkGenerator,
    ChunkGeneratorConfig,
    GenerationMetrics,
)
from backend.app.generation.credentials import CredentialPool, PoolStatus
from backend.app.generation.job import QuizGenerationJob
from backend.app.generation.orchestrator import GenerationOrchestrator
from backend.app.generation.sessions import SessionRegistry
from backend.app.llm.client import DeterministicStubProvider, QuestionProvider, get_question_provider
from backend.app.models.questions import Difficulty
from backend.app.utils.logging import StructuredAttemptLogger
from backend.app.utils.metrics import PrometheusGenerationMetrics

logger = logging.getLogger(__name__)

STUB_CREDENTIAL = "stub-credential"


class QuizGenerationService:
    """Entry point used by the HTTP layer to start and observe generations."""

    def __init__(
        self,
        settings: Settings,
        pool: CredentialPool,
        provider: QuestionProvider,
        registry: SessionRegistry,
        store: QuestionStore,
        *,
        metrics: GenerationMetrics | None = None,
        attempt_logger: AttemptLogger | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
        engine: AsyncEngine | None = None,
    ) -> None:
        self.settings = settings
        self.pool = pool
        self.provider = provider
        self.registry = registry
        self.store = store
        self._metrics = metrics
        self._attempt_logger = attempt_logger
        self._sleep = sleep_fn
        self._engine = engine

    def build_orchestrator(self) -> GenerationOrchestrator:
        """Create an orchestrator sharing this service's pool and provider."""
        chunk_generator = ChunkGenerator(
            self.pool,
            self.provider,
            ChunkGeneratorConfig.from_settings(self.settings),
            metrics=self._metrics,
            logger=self._attempt_logger,
            sleep_fn=self._sleep,
        )
        return GenerationOrchestrator(
            chunk_generator,
            max_chunk_chars=self.settings.max_chunk_chars,
            inter_chunk_delay_ms=self.settings.inter_chunk_delay_ms,
            sleep_fn=self._sleep,
        )

    def start_generation(
        self,
        *,
        user_id: str,
        content: str,
        topic: str,
        question_count: int,
        difficulty: Difficulty,
        source_file: str | None = None,
    ) -> str:
        """Allocate a session and schedule its job.

        Returns:
            Generation (session) id

        Raises:
            ConcurrentGenerationConflict: User already has a generation running
        """
        generation_id = self.registry.create(user_id)
        job = QuizGenerationJob(
            generation_id=generation_id,
            user_id=user_id,
            content=content,
            topic=topic,
            question_count=question_count,
            difficulty=difficulty,
            source_file=source_file,
            orchestrator=self.build_orchestrator(),
            store=self.store,
        )
        self.registry.run(generation_id, job)
        logger.info(
            f"[{generation_id}] Scheduled {question_count} {difficulty.value} question(s) "
            f"on '{topic}' for user {user_id}"
        )
        return generation_id

    def pool_status(self) -> PoolStatus:
        return self.pool.status()

    async def cleanup_inactive_questions(self) -> int:
        """Delete questions deactivated longer ago than the retention period."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=self.settings.inactive_retention_days)
        deleted = await self.store.cleanup_inactive(cutoff)
        logger.info(f"Cleaned up {deleted} old inactive questions")
        return deleted

    async def startup(self) -> None:
        """Create tables when a database is configured."""
        if self._engine is not None:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

    async def shutdown(self) -> None:
        """Stop running generations and release the database engine."""
        await self.registry.shutdown()
        if self._engine is not None:
            await self._engine.dispose()


def build_credential_pool(settings: Settings, provider: QuestionProvider) -> CredentialPool:
    """Create the shared pool; the stub provider gets a placeholder credential."""
    secrets = settings.credential_secrets()
    if not secrets and isinstance(provider, DeterministicStubProvider):
        secrets = [STUB_CREDENTIAL]
    return CredentialPool(secrets)


def build_quiz_service(settings: Settings) -> QuizGenerationService:
    """Build the service from settings."""
    provider = get_question_provider(settings)
    pool = build_credential_pool(settings, provider)
    metrics = PrometheusGenerationMetrics()

    engine: AsyncEngine | None = None
    store: QuestionStore
    if settings.database_url:
        engine = create_async_engine_from_settings(settings)
        store = SqlQuestionStore(create_session_factory(engine))
    else:
        logger.warning("DATABASE_URL not set, using in-memory question store")
        store = InMemoryQuestionStore()

    status = pool.status()
    logger.info(f"Credential pool ready: {status.total} credential(s)")

    return QuizGenerationService(
        settings,
        pool,
        provider,
        SessionRegistry(grace_seconds=settings.session_grace_seconds, metrics=metrics),
        store,
        metrics=metrics,
        attempt_logger=StructuredAttemptLogger(),
        engine=engine,
    )


# Global service instance
_quiz_service: QuizGenerationService | None = None


def get_quiz_service() -> QuizGenerationService:
    """Get global service instance (FastAPI dependency)."""
    global _quiz_service
    if _quiz_service is None:
        _quiz_service = build_quiz_service(get_settings())
    return _quiz_service
