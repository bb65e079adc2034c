"""Tests for question normalization."""

import pytest

from backend.app.generation.normalizer import normalize_question, placeholder_option
from backend.app.models.questions import Difficulty, Section


def test_complete_candidate_is_preserved() -> None:
    candidate = {
        "question": "What is 2 + 2?",
        "options": ["3", "4", "5", "6"],
        "correctAnswer": 1,
        "explanation": "Basic arithmetic.",
        "topic": "Math",
        "difficulty": "easy",
        "section": "middle",
    }

    question = normalize_question(candidate, Difficulty.hard)

    assert question.question == "What is 2 + 2?"
    assert question.options == ["3", "4", "5", "6"]
    assert question.correct_answer == 1
    assert question.explanation == "Basic arithmetic."
    assert question.topic == "Math"
    assert question.difficulty == Difficulty.hard
    assert question.section == Section.middle


def test_missing_fields_get_defaults() -> None:
    question = normalize_question({}, Difficulty.medium, ordinal=3, default_section=Section.end)

    assert question.question == "Question 3"
    assert question.options == ["Option A", "Option B", "Option C", "Option D"]
    assert question.correct_answer == 0
    assert question.explanation == "The correct answer is A."
    assert question.topic == "General"
    assert question.difficulty == Difficulty.medium
    assert question.section == Section.end


def test_short_option_list_is_padded() -> None:
    question = normalize_question({"options": ["Yes", "No"]}, Difficulty.easy)

    assert question.options == ["Yes", "No", "Option C", "Option D"]


def test_long_option_list_is_truncated() -> None:
    question = normalize_question({"options": ["a", "b", "c", "d", "e", "f"]}, Difficulty.easy)

    assert question.options == ["a", "b", "c", "d"]


def test_blank_options_become_placeholders() -> None:
    question = normalize_question({"options": ["a", "", None, "  "]}, Difficulty.easy)

    assert question.options == ["a", "Option B", "Option C", "Option D"]


def test_non_list_options_become_placeholders() -> None:
    question = normalize_question({"options": "a, b, c, d"}, Difficulty.easy)

    assert question.options == [placeholder_option(i) for i in range(4)]


@pytest.mark.parametrize(
    "raw,expected",
    [
        (3, 3),
        (2.0, 2),
        (4, 0),
        (-1, 0),
        (1.5, 0),
        ("2", 0),
        (True, 0),
        (None, 0),
    ],
)
def test_correct_answer_is_clamped_to_valid_index(raw: object, expected: int) -> None:
    question = normalize_question({"correctAnswer": raw}, Difficulty.easy)

    assert question.correct_answer == expected


def test_snake_case_correct_answer_is_accepted() -> None:
    question = normalize_question({"correct_answer": 2}, Difficulty.easy)

    assert question.correct_answer == 2
    assert question.explanation == "The correct answer is C."


@pytest.mark.parametrize("raw", ["easy", " Medium ", "extreme", None, 3])
def test_requested_difficulty_always_wins(raw: object) -> None:
    question = normalize_question({"question": "Q", "difficulty": raw}, Difficulty.hard)

    assert question.difficulty == Difficulty.hard


def test_invalid_section_falls_back_to_default() -> None:
    question = normalize_question({"section": "appendix"}, Difficulty.easy, default_section=Section.beginning)

    assert question.section == Section.beginning


def test_blank_question_and_explanation_are_replaced() -> None:
    question = normalize_question(
        {"question": "   ", "explanation": "", "correctAnswer": 3}, Difficulty.easy, ordinal=7
    )

    assert question.question == "Question 7"
    assert question.explanation == "The correct answer is D."
