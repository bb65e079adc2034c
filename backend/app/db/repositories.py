"""Repository protocol interfaces for data access."""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from backend.app.models.questions import Question, StoredQuestion


class QuestionNotFound(Exception):
    """Question does not exist or belongs to another user."""

    pass


@dataclass
class ProgressStats:
    """Per-user answer statistics."""

    total_questions: int
    correct_answers: int

    @property
    def accuracy(self) -> float:
        """Percentage of correct answers (0 when nothing answered)."""
        if self.total_questions == 0:
            return 0.0
        return self.correct_answers / self.total_questions * 100


@dataclass
class AnswerResult:
    """Outcome of answering one question."""

    correct: bool
    correct_answer: int
    explanation: str
    progress: ProgressStats


class QuestionStore(Protocol):
    """Store for generated questions and answer progress."""

    async def replace_prior_questions(self, user_id: str) -> int:
        """Deactivate every active question of a user.

        Args:
            user_id: Owner

        Returns:
            Number of questions deactivated
        """
        ...

    async def save_questions(
        self,
        user_id: str,
        generation_id: str,
        questions: list[Question],
        *,
        topic: str | None = None,
        source_file: str | None = None,
    ) -> list[StoredQuestion]:
        """Persist questions as active.

        Args:
            user_id: Owner
            generation_id: Session that produced the questions
            questions: Normalized questions, in order
            topic: Topic label overriding per-question topics when given
            source_file: Original upload name

        Returns:
            Stored questions with ids, in input order
        """
        ...

    async def find_active_questions(
        self, user_id: str, limit: int | None = None
    ) -> list[StoredQuestion]:
        """List active questions of a user, newest first.

        Args:
            user_id: Owner
            limit: Maximum number of results (None for all)

        Returns:
            Active questions
        """
        ...

    async def record_answer(
        self, user_id: str, question_id: str, selected_index: int
    ) -> AnswerResult:
        """Check an answer and update the user's progress.

        Raises:
            QuestionNotFound: Unknown question or owned by another user
        """
        ...

    async def get_progress(self, user_id: str) -> ProgressStats:
        """Get answer statistics for a user."""
        ...

    async def cleanup_inactive(self, older_than: datetime) -> int:
        """Hard-delete questions deactivated before ``older_than``.

        Returns:
            Number of questions deleted
        """
        ...


@dataclass
class RetryAfter:
    """Rate limit retry-after information."""

    seconds: int


class RateLimiter(Protocol):
    """Rate limiter interface."""

    def check_quota(self, key: str, now: datetime) -> RetryAfter | None:
        """Check if quota is available.

        Args:
            key: Rate limit key
            now: Current timestamp

        Returns:
            RetryAfter if over quota, None if allowed
        """
        ...
