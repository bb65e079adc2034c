"""Question models - provider candidates and normalized questions."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

# Raw provider object prior to normalization; any field may be missing or malformed.
QuestionCandidate = dict[str, Any]

OPTION_COUNT = 4


class Difficulty(str, Enum):
    """Requested question difficulty."""

    easy = "easy"
    medium = "medium"
    hard = "hard"


class Section(str, Enum):
    """Position band of a chunk within the source document."""

    beginning = "beginning"
    early_middle = "early-middle"
    middle = "middle"
    late_middle = "late-middle"
    end = "end"


class Question(BaseModel):
    """Normalized multiple-choice question.

    Guarantees exactly four options, a correct index in [0, 3], a non-empty
    explanation and a difficulty from the fixed set.
    """

    question: str = Field(..., min_length=1)
    options: list[str] = Field(..., min_length=OPTION_COUNT, max_length=OPTION_COUNT)
    correct_answer: int = Field(..., ge=0, le=OPTION_COUNT - 1)
    explanation: str = Field(..., min_length=1)
    topic: str = "General"
    difficulty: Difficulty
    section: Section | None = None

    @field_validator("explanation")
    @classmethod
    def _explanation_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("explanation must not be blank")
        return value


class StoredQuestion(Question):
    """Question as persisted for a user."""

    id: str
    user_id: str
    generation_id: str
    source_file: str | None = None
    is_active: bool = True
