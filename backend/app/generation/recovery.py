"""Tolerant recovery of question candidates from provider output.

Providers are asked for a bare JSON array but regularly wrap it in code
fences, add commentary, leave trailing commas or use single quotes. Every
parse goes through ``json_repair``, which fixes those defects but will also
turn prose into *some* value, so each tier only succeeds when the result has
the expected shape. Tiers are tried in order, stopping at the first that
yields candidates:

1. whole text (code fences stripped) as an array or ``{"questions": [...]}``
2. the span from the first ``[`` to the last ``]`` as an array
3. every ``{...}`` fragment mentioning ``question``, parsed independently;
   fragments lacking ``question`` or ``options`` are dropped
"""

import logging
import re
from typing import Any

import json_repair

from backend.app.generation.errors import MalformedResponse
from backend.app.models.questions import QuestionCandidate

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"```[a-zA-Z]*[ \t]*\n?")
_QUESTION_FRAGMENT = re.compile(r"\{[^{}]*[\"']question[\"'][^{}]*\}")


def strip_code_fences(text: str) -> str:
    """Remove Markdown code fence markers."""
    return _CODE_FENCE.sub("", text).replace("```", "").strip()


def _candidates_from_array(items: list[Any]) -> list[QuestionCandidate]:
    return [item for item in items if isinstance(item, dict) and "question" in item]


def parse_whole(text: str) -> list[QuestionCandidate] | None:
    """Parse the whole response as an array or a ``questions`` wrapper."""
    value = json_repair.loads(strip_code_fences(text))

    if isinstance(value, list):
        return _candidates_from_array(value) or None
    if isinstance(value, dict) and isinstance(value.get("questions"), list):
        return _candidates_from_array(value["questions"]) or None
    return None


def parse_bracket_span(text: str) -> list[QuestionCandidate] | None:
    """Parse the outermost ``[...]`` span, ignoring surrounding commentary."""
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end <= start:
        return None

    value = json_repair.loads(text[start : end + 1])
    if isinstance(value, list):
        return _candidates_from_array(value) or None
    return None


def parse_question_fragments(text: str) -> list[QuestionCandidate] | None:
    """Salvage individual question objects from otherwise broken output."""
    candidates: list[QuestionCandidate] = []
    for match in _QUESTION_FRAGMENT.finditer(text):
        value = json_repair.loads(match.group(0))
        if isinstance(value, dict) and "question" in value and "options" in value:
            candidates.append(value)
    return candidates or None


def recover_candidates(raw_text: str) -> list[QuestionCandidate]:
    """Recover question candidates from raw provider text.

    Args:
        raw_text: Provider response body

    Returns:
        Non-empty list of candidate objects (not yet normalized)

    Raises:
        MalformedResponse: If no tier salvages a single candidate
    """
    if not raw_text or not raw_text.strip():
        raise MalformedResponse("Provider returned an empty response", raw_text)

    tiers = (
        ("whole", parse_whole),
        ("bracket_span", parse_bracket_span),
        ("fragments", parse_question_fragments),
    )
    for name, parse in tiers:
        candidates = parse(raw_text)
        if candidates:
            if name != "whole":
                logger.info(f"Recovered {len(candidates)} candidate(s) via {name} parsing")
            return candidates

    logger.debug(f"Unparseable provider response preview: {raw_text[:500]}")
    raise MalformedResponse("Failed to parse provider response as questions", raw_text)
