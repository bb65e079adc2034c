"""Tests for the in-memory question store."""

from datetime import datetime, timedelta, timezone

import pytest

from backend.app.db.inmemory import InMemoryQuestionStore
from backend.app.db.repositories import QuestionNotFound
from backend.app.models.questions import Difficulty, Question, Section


def _question(text: str, correct: int = 0) -> Question:
    return Question(
        question=text,
        options=["a", "b", "c", "d"],
        correct_answer=correct,
        explanation="Because.",
        topic="Biology",
        difficulty=Difficulty.medium,
        section=Section.middle,
    )


@pytest.mark.asyncio
async def test_save_and_find_newest_first() -> None:
    store = InMemoryQuestionStore()

    saved = await store.save_questions("u1", "gen-1", [_question("Q1"), _question("Q2")])
    found = await store.find_active_questions("u1")

    assert [q.question for q in saved] == ["Q1", "Q2"]
    assert [q.question for q in found] == ["Q2", "Q1"]
    assert all(q.generation_id == "gen-1" and q.is_active for q in saved)
    assert len({q.id for q in saved}) == 2


@pytest.mark.asyncio
async def test_topic_and_source_file_override() -> None:
    store = InMemoryQuestionStore()

    saved = await store.save_questions(
        "u1", "gen-1", [_question("Q1")], topic="Cells", source_file="notes.pdf"
    )

    assert saved[0].topic == "Cells"
    assert saved[0].source_file == "notes.pdf"


@pytest.mark.asyncio
async def test_limit() -> None:
    store = InMemoryQuestionStore()
    await store.save_questions("u1", "gen-1", [_question(f"Q{i}") for i in range(5)])

    found = await store.find_active_questions("u1", limit=2)

    assert [q.question for q in found] == ["Q4", "Q3"]


@pytest.mark.asyncio
async def test_replace_prior_questions_deactivates_only_owner() -> None:
    store = InMemoryQuestionStore()
    await store.save_questions("u1", "gen-1", [_question("Old1"), _question("Old2")])
    await store.save_questions("u2", "gen-2", [_question("Other")])

    deactivated = await store.replace_prior_questions("u1")
    await store.save_questions("u1", "gen-3", [_question("New")])

    assert deactivated == 2
    assert [q.question for q in await store.find_active_questions("u1")] == ["New"]
    assert [q.question for q in await store.find_active_questions("u2")] == ["Other"]


@pytest.mark.asyncio
async def test_record_answer_updates_progress() -> None:
    store = InMemoryQuestionStore()
    saved = await store.save_questions("u1", "gen-1", [_question("Q1", correct=2), _question("Q2", correct=1)])

    first = await store.record_answer("u1", saved[0].id, 2)
    second = await store.record_answer("u1", saved[1].id, 3)

    assert first.correct is True
    assert second.correct is False
    assert second.correct_answer == 1
    assert second.explanation == "Because."
    assert second.progress.total_questions == 2
    assert second.progress.correct_answers == 1
    assert second.progress.accuracy == 50.0

    progress = await store.get_progress("u1")
    assert (progress.total_questions, progress.correct_answers) == (2, 1)


@pytest.mark.asyncio
async def test_record_answer_enforces_ownership() -> None:
    store = InMemoryQuestionStore()
    saved = await store.save_questions("u1", "gen-1", [_question("Q1")])

    with pytest.raises(QuestionNotFound):
        await store.record_answer("u2", saved[0].id, 0)
    with pytest.raises(QuestionNotFound):
        await store.record_answer("u1", "missing", 0)


@pytest.mark.asyncio
async def test_progress_for_new_user_is_zero() -> None:
    progress = await InMemoryQuestionStore().get_progress("nobody")

    assert progress.total_questions == 0
    assert progress.accuracy == 0.0


@pytest.mark.asyncio
async def test_cleanup_inactive_deletes_only_old_deactivated() -> None:
    store = InMemoryQuestionStore()
    await store.save_questions("u1", "gen-1", [_question("Old")])
    await store.replace_prior_questions("u1")
    await store.save_questions("u1", "gen-2", [_question("Active")])

    kept = await store.cleanup_inactive(datetime.now(timezone.utc) - timedelta(days=7))
    deleted = await store.cleanup_inactive(datetime.now(timezone.utc) + timedelta(seconds=1))

    assert kept == 0
    assert deleted == 1
    assert [q.question for q in await store.find_active_questions("u1")] == ["Active"]
