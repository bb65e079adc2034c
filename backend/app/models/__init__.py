"""Models package - re-exports for convenience."""

from backend.app.models.events import (
    CompleteEvent,
    ErrorEvent,
    GenerationEvent,
    ProgressEvent,
    QuestionEvent,
    QuestionPayload,
)
from backend.app.models.questions import (
    Difficulty,
    Question,
    QuestionCandidate,
    Section,
    StoredQuestion,
)

__all__ = [
    # Questions
    "Difficulty",
    "Section",
    "Question",
    "StoredQuestion",
    "QuestionCandidate",
    # Events
    "ProgressEvent",
    "QuestionPayload",
    "QuestionEvent",
    "CompleteEvent",
    "ErrorEvent",
    "GenerationEvent",
]
