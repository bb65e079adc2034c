"""Generation pipeline error taxonomy."""

from enum import Enum


class FailureKind(str, Enum):
    """Classification of a failed provider attempt."""

    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    MALFORMED = "malformed"
    PROVIDER = "provider"


class GenerationError(Exception):
    """Base class for generation pipeline errors."""

    pass


class ChunkingError(GenerationError):
    """Content is empty or cannot be chunked."""

    pass


class AllCredentialsExhausted(GenerationError):
    """No valid provider credential remains in the pool."""

    pass


class MalformedResponse(GenerationError):
    """No question candidate could be salvaged from provider output."""

    def __init__(self, message: str, raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text


class ChunkGenerationFailed(GenerationError):
    """Every attempt for one chunk failed."""

    def __init__(
        self,
        chunk_index: int,
        attempts: int,
        kind: FailureKind,
        last_error: BaseException | None,
    ) -> None:
        detail = f"{type(last_error).__name__}: {last_error}" if last_error else kind.value
        super().__init__(f"Chunk {chunk_index} failed after {attempts} attempt(s) ({detail})")
        self.chunk_index = chunk_index
        self.attempts = attempts
        self.kind = kind
        self.last_error = last_error


class NoQuestionsGenerated(GenerationError):
    """Every chunk failed; nothing to return."""

    pass


class GenerationCancelled(GenerationError):
    """The owning session was cancelled."""

    pass


class ConcurrentGenerationConflict(GenerationError):
    """User already owns a processing session."""

    def __init__(self, user_id: str) -> None:
        super().__init__(
            "You already have a quiz generation in progress. Please wait for it to complete."
        )
        self.user_id = user_id


class SessionNotFound(GenerationError):
    """Session id is unknown or has been reaped."""

    def __init__(self, session_id: str) -> None:
        super().__init__("Generation not found or expired")
        self.session_id = session_id


class UnauthorizedSessionAccess(GenerationError):
    """Session belongs to another user."""

    def __init__(self, session_id: str) -> None:
        super().__init__("This generation belongs to another user")
        self.session_id = session_id
