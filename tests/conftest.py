"""Shared pytest fixtures for all test suites."""

from collections.abc import AsyncGenerator, AsyncIterator, Callable

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from backend.app.db.engine import create_session_factory
from backend.app.db.models import Base
from backend.app.generation.chunk_generator import ChunkGenerator, ChunkGeneratorConfig
from backend.app.generation.credentials import Credential, CredentialPool
from backend.app.llm.client import GenerationConfig


class ScriptedProvider:
    """Provider double that replays a script of responses.

    Each script entry is either a string (returned as the response body) or
    an exception (raised). Once the script runs out, ``default`` is used.
    """

    def __init__(
        self, script: list[str | Exception] | None = None, default: str | Exception = "[]"
    ) -> None:
        self.script = list(script or [])
        self.default = default
        self.calls: list[tuple[Credential, str]] = []

    async def generate(
        self,
        credential: Credential,
        model: str,
        prompt: str,
        config: GenerationConfig,
    ) -> str:
        self.calls.append((credential, prompt))
        item = self.script.pop(0) if self.script else self.default
        if isinstance(item, Exception):
            raise item
        return item


class RecordingSleep:
    """Sleep double that records requested delays and returns immediately."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def scripted_provider() -> type[ScriptedProvider]:
    """ScriptedProvider class, for building per-test scripts."""
    return ScriptedProvider


@pytest.fixture
def generator_config() -> ChunkGeneratorConfig:
    return ChunkGeneratorConfig(
        model="test-model",
        generation=GenerationConfig(),
        timeout_ms=1_000,
        backoff_ms=2_000,
    )


@pytest.fixture
def make_chunk_generator(
    generator_config: ChunkGeneratorConfig, recording_sleep: RecordingSleep
) -> Callable[..., ChunkGenerator]:
    """Factory building a ChunkGenerator over a fresh pool."""

    def _make(
        provider: object, secrets: list[str] | None = None, **kwargs: object
    ) -> ChunkGenerator:
        pool = CredentialPool(secrets if secrets is not None else ["key-a", "key-b", "key-c"])
        return ChunkGenerator(
            pool,
            provider,  # type: ignore[arg-type]
            generator_config,
            sleep_fn=recording_sleep,
            **kwargs,  # type: ignore[arg-type]
        )

    return _make


@pytest_asyncio.fixture
async def sqlite_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(sqlite_engine)


async def _collect(stream: AsyncIterator[object]) -> list[object]:
    return [event async for event in stream]


@pytest.fixture
def drain() -> Callable[[AsyncIterator[object]], object]:
    """Collect every item of an async iterator."""
    return _collect
