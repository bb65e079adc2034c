"""Generation event models - what a session streams to its subscribers."""

from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter

from backend.app.models.questions import StoredQuestion


class ProgressEvent(BaseModel):
    """Pipeline progress update."""

    type: Literal["progress"] = "progress"
    progress: int = Field(..., ge=0, le=100)
    message: str


class QuestionPayload(BaseModel):
    """Question as streamed to the client."""

    id: str
    question: str
    options: list[str]
    correct_answer: int
    explanation: str
    topic: str
    difficulty: str
    section: str | None = None

    @classmethod
    def from_stored(cls, stored: StoredQuestion) -> "QuestionPayload":
        """Convert a persisted question to its wire form."""
        return cls(
            id=stored.id,
            question=stored.question,
            options=stored.options,
            correct_answer=stored.correct_answer,
            explanation=stored.explanation,
            topic=stored.topic,
            difficulty=stored.difficulty.value,
            section=stored.section.value if stored.section else None,
        )


class QuestionEvent(BaseModel):
    """One generated question, delivered after it has been persisted."""

    type: Literal["question"] = "question"
    question: QuestionPayload
    question_number: int = Field(..., ge=1)
    total_questions: int = Field(..., ge=1)
    progress: int = Field(..., ge=0, le=100)


class CompleteEvent(BaseModel):
    """Terminal success event."""

    type: Literal["complete"] = "complete"
    total_questions: int = Field(..., ge=0)
    elapsed_ms: int = Field(..., ge=0)
    message: str
    progress: int = 100


class ErrorEvent(BaseModel):
    """Terminal failure event."""

    type: Literal["error"] = "error"
    message: str


GenerationEvent = Annotated[
    ProgressEvent | QuestionEvent | CompleteEvent | ErrorEvent,
    Field(discriminator="type"),
]

generation_event_adapter: TypeAdapter[GenerationEvent] = TypeAdapter(GenerationEvent)


def is_terminal(event: GenerationEvent) -> bool:
    """Return True for the event that closes a session stream."""
    return isinstance(event, CompleteEvent | ErrorEvent)


def to_sse(event: GenerationEvent) -> str:
    """Format an event as a Server-Sent Events frame."""
    return f"event: {event.type}\ndata: {event.model_dump_json()}\n\n"
