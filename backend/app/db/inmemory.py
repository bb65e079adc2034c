"""In-memory implementations of repository interfaces."""

import uuid
from datetime import datetime, timedelta, timezone

from backend.app.db.repositories import (
    AnswerResult,
    ProgressStats,
    QuestionNotFound,
    RetryAfter,
)
from backend.app.models.questions import Question, StoredQuestion


class InMemoryQuestionStore:
    """In-memory implementation of QuestionStore."""

    def __init__(self) -> None:
        # Insertion order doubles as creation order
        self._questions: dict[str, StoredQuestion] = {}
        self._deactivated_at: dict[str, datetime] = {}
        self._progress: dict[str, ProgressStats] = {}

    async def replace_prior_questions(self, user_id: str) -> int:
        """Deactivate every active question of a user."""
        now = datetime.now(timezone.utc)
        count = 0
        for question_id, stored in self._questions.items():
            if stored.user_id == user_id and stored.is_active:
                self._questions[question_id] = stored.model_copy(update={"is_active": False})
                self._deactivated_at[question_id] = now
                count += 1
        return count

    async def save_questions(
        self,
        user_id: str,
        generation_id: str,
        questions: list[Question],
        *,
        topic: str | None = None,
        source_file: str | None = None,
    ) -> list[StoredQuestion]:
        """Persist questions as active."""
        saved: list[StoredQuestion] = []
        for question in questions:
            data = question.model_dump()
            if topic:
                data["topic"] = topic
            stored = StoredQuestion(
                **data,
                id=str(uuid.uuid4()),
                user_id=user_id,
                generation_id=generation_id,
                source_file=source_file,
                is_active=True,
            )
            self._questions[stored.id] = stored
            saved.append(stored)
        return saved

    async def find_active_questions(
        self, user_id: str, limit: int | None = None
    ) -> list[StoredQuestion]:
        """List active questions of a user, newest first."""
        active = [q for q in self._questions.values() if q.user_id == user_id and q.is_active]
        active.reverse()
        if limit is not None and limit > 0:
            return active[:limit]
        return active

    async def record_answer(
        self, user_id: str, question_id: str, selected_index: int
    ) -> AnswerResult:
        """Check an answer and update the user's progress."""
        stored = self._questions.get(question_id)

        # Enforce ownership
        if stored is None or stored.user_id != user_id:
            raise QuestionNotFound("Question not found")

        correct = selected_index == stored.correct_answer
        current = self._progress.get(user_id, ProgressStats(total_questions=0, correct_answers=0))
        progress = ProgressStats(
            total_questions=current.total_questions + 1,
            correct_answers=current.correct_answers + (1 if correct else 0),
        )
        self._progress[user_id] = progress

        return AnswerResult(
            correct=correct,
            correct_answer=stored.correct_answer,
            explanation=stored.explanation,
            progress=progress,
        )

    async def get_progress(self, user_id: str) -> ProgressStats:
        """Get answer statistics for a user."""
        return self._progress.get(user_id, ProgressStats(total_questions=0, correct_answers=0))

    async def cleanup_inactive(self, older_than: datetime) -> int:
        """Hard-delete questions deactivated before ``older_than``."""
        expired = [qid for qid, at in self._deactivated_at.items() if at < older_than]
        for question_id in expired:
            self._questions.pop(question_id, None)
            del self._deactivated_at[question_id]
        return len(expired)


class InMemoryRateLimiter:
    """In-memory implementation of RateLimiter using fixed window."""

    def __init__(self, max_requests: int, window_seconds: int = 60) -> None:
        """Initialize rate limiter.

        Args:
            max_requests: Maximum requests per window
            window_seconds: Window size in seconds (default 60)
        """
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._windows: dict[str, tuple[datetime, int]] = {}

    def check_quota(self, key: str, now: datetime) -> RetryAfter | None:
        """Check if quota is available."""
        if key in self._windows:
            window_start, count = self._windows[key]
            window_end = window_start + timedelta(seconds=self._window_seconds)

            if now >= window_end:
                self._windows[key] = (now, 1)
                return None

            if count >= self._max_requests:
                return RetryAfter(seconds=max(1, int((window_end - now).total_seconds())))

            self._windows[key] = (window_start, count + 1)
            return None

        self._windows[key] = (now, 1)
        return None
