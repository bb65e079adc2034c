"""SQL implementations of repository interfaces."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.db.models import QuestionRow, UserProgress
from backend.app.db.repositories import AnswerResult, ProgressStats, QuestionNotFound
from backend.app.models.questions import Difficulty, Question, Section, StoredQuestion


def _to_stored(row: QuestionRow) -> StoredQuestion:
    return StoredQuestion(
        id=str(row.question_id),
        user_id=row.user_id,
        generation_id=row.generation_id,
        question=row.question,
        options=list(row.options),
        correct_answer=row.correct_answer,
        explanation=row.explanation,
        topic=row.topic,
        difficulty=Difficulty(row.difficulty),
        section=Section(row.section) if row.section else None,
        source_file=row.source_file,
        is_active=row.is_active,
    )


class SqlQuestionStore:
    """SQL implementation of QuestionStore."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def replace_prior_questions(self, user_id: str) -> int:
        """Deactivate every active question of a user."""
        async with self._session_factory() as session:
            result = await session.execute(
                update(QuestionRow)
                .where(QuestionRow.user_id == user_id, QuestionRow.is_active.is_(True))
                .values(is_active=False, updated_at=datetime.now(timezone.utc))
            )
            await session.commit()
            return result.rowcount or 0

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
        created_at = datetime.now(timezone.utc)
        rows = [
            QuestionRow(
                question_id=uuid.uuid4(),
                user_id=user_id,
                generation_id=generation_id,
                question=q.question,
                options=q.options,
                correct_answer=q.correct_answer,
                explanation=q.explanation,
                topic=topic or q.topic,
                difficulty=q.difficulty.value,
                section=q.section.value if q.section else None,
                source_file=source_file,
                position=position,
                is_active=True,
                created_at=created_at,
                updated_at=created_at,
            )
            for position, q in enumerate(questions)
        ]

        async with self._session_factory() as session:
            session.add_all(rows)
            await session.commit()

        return [_to_stored(row) for row in rows]

    async def find_active_questions(
        self, user_id: str, limit: int | None = None
    ) -> list[StoredQuestion]:
        """List active questions of a user, newest first."""
        query = (
            select(QuestionRow)
            .where(QuestionRow.user_id == user_id, QuestionRow.is_active.is_(True))
            .order_by(QuestionRow.created_at.desc(), QuestionRow.position.desc())
        )
        if limit is not None and limit > 0:
            query = query.limit(limit)

        async with self._session_factory() as session:
            result = await session.execute(query)
            return [_to_stored(row) for row in result.scalars().all()]

    async def record_answer(
        self, user_id: str, question_id: str, selected_index: int
    ) -> AnswerResult:
        """Check an answer and update the user's progress."""
        try:
            question_uuid = uuid.UUID(question_id)
        except ValueError as e:
            raise QuestionNotFound("Question not found") from e

        async with self._session_factory() as session:
            row = await session.get(QuestionRow, question_uuid)

            # Enforce ownership
            if row is None or row.user_id != user_id:
                raise QuestionNotFound("Question not found")

            correct = selected_index == row.correct_answer

            progress = await session.get(UserProgress, user_id)
            if progress is None:
                progress = UserProgress(user_id=user_id, total_questions=0, correct_answers=0)
                session.add(progress)
            progress.total_questions += 1
            if correct:
                progress.correct_answers += 1

            answer = AnswerResult(
                correct=correct,
                correct_answer=row.correct_answer,
                explanation=row.explanation,
                progress=ProgressStats(
                    total_questions=progress.total_questions,
                    correct_answers=progress.correct_answers,
                ),
            )
            await session.commit()
            return answer

    async def get_progress(self, user_id: str) -> ProgressStats:
        """Get answer statistics for a user."""
        async with self._session_factory() as session:
            progress = await session.get(UserProgress, user_id)
            if progress is None:
                return ProgressStats(total_questions=0, correct_answers=0)
            return ProgressStats(
                total_questions=progress.total_questions,
                correct_answers=progress.correct_answers,
            )

    async def cleanup_inactive(self, older_than: datetime) -> int:
        """Hard-delete questions deactivated before ``older_than``."""
        async with self._session_factory() as session:
            result = await session.execute(
                delete(QuestionRow).where(
                    QuestionRow.is_active.is_(False),
                    QuestionRow.updated_at < older_than,
                )
            )
            await session.commit()
            return result.rowcount or 0
