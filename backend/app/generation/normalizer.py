"""Question normalizer - repairs provider candidates into valid questions."""

from typing import Any

from backend.app.models.questions import (
    OPTION_COUNT,
    Difficulty,
    Question,
    QuestionCandidate,
    Section,
)

OPTION_LETTERS = "ABCD"


def placeholder_option(position: int) -> str:
    """Placeholder text for a missing option slot."""
    return f"Option {OPTION_LETTERS[position]}"


def _normalize_options(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        return [placeholder_option(i) for i in range(OPTION_COUNT)]

    options = [str(item).strip() if item is not None else "" for item in raw[:OPTION_COUNT]]
    options = [opt or placeholder_option(i) for i, opt in enumerate(options)]
    while len(options) < OPTION_COUNT:
        options.append(placeholder_option(len(options)))
    return options


def _normalize_correct_index(raw: Any) -> int:
    # bool is an int subclass; never a valid index
    if isinstance(raw, bool):
        return 0
    if isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    if isinstance(raw, int) and 0 <= raw < OPTION_COUNT:
        return raw
    return 0


def _text(raw: Any) -> str:
    return raw.strip() if isinstance(raw, str) else ""


def _enum_or(enum_cls: type, raw: Any, default: Any) -> Any:
    if isinstance(raw, str):
        try:
            return enum_cls(raw.strip().lower())
        except ValueError:
            return default
    return default


def normalize_question(
    candidate: QuestionCandidate,
    requested_difficulty: Difficulty,
    *,
    ordinal: int = 1,
    default_section: Section | None = None,
) -> Question:
    """Repair a candidate into a Question. Never rejects.

    Args:
        candidate: Provider object, possibly missing or malformed fields
        requested_difficulty: Difficulty every question is generated at
        ordinal: 1-based position, used for a placeholder question text
        default_section: Section tag used when the candidate has none

    Returns:
        Question with four options, correct index in [0, 3], a non-empty
        explanation and a valid difficulty
    """
    options = _normalize_options(candidate.get("options"))
    correct = _normalize_correct_index(candidate.get("correctAnswer", candidate.get("correct_answer")))

    explanation = _text(candidate.get("explanation"))
    if not explanation:
        explanation = f"The correct answer is {OPTION_LETTERS[correct]}."

    return Question(
        question=_text(candidate.get("question")) or f"Question {ordinal}",
        options=options,
        correct_answer=correct,
        explanation=explanation,
        topic=_text(candidate.get("topic")) or "General",
        difficulty=requested_difficulty,
        section=_enum_or(Section, candidate.get("section"), default_section),
    )
