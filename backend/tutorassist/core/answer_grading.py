"""Answer Grading — server-side correctness for every answer type.

Invariants:
    - Client-submitted correctness is never an input here
    - grade_answer never raises: unexpected data yields is_correct=False with
      serverValidated=False and the error message in details
    - long_answer is never auto-graded (matchType=manual_grading_required)
    - true_false accepts only the full words "true"/"false"

Design Decisions:
    - GradeResult dataclass + details dict: the dict is stored verbatim in
      attempts.context_json["validation"], so keys stay camelCase
    - Fill-blank answers may arrive as a list or a "|"-separated string
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from tutorassist.core.answer_matching import (
    DEFAULT_NUMERIC_TOLERANCE,
    compare_math_answers,
    compare_numeric_answers,
    match_math_answer,
    to_number,
)
from tutorassist.core.domain_types import AnswerType

logger = logging.getLogger(__name__)

MAX_ANSWER_LENGTH = 1000
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


@dataclass
class GradeResult:
    is_correct: bool
    details: dict[str, Any] = field(default_factory=lambda: {"serverValidated": True})


@dataclass
class PartialResult:
    is_correct: bool
    correct_count: int
    total: int


def sanitize_answer_input(answer: str) -> str:
    """Strip, drop control characters, cap length."""
    cleaned = _CONTROL_CHARS.sub("", answer.strip())
    return cleaned[:MAX_ANSWER_LENGTH]


def _sanitize(raw: Any) -> Any:
    if isinstance(raw, str):
        return sanitize_answer_input(raw)
    if isinstance(raw, list):
        return [sanitize_answer_input(str(item)) for item in raw]
    return raw


def validate_fill_blank(answer: Any, blanks: list[dict]) -> PartialResult:
    """Grade each blank independently; all must match."""
    if isinstance(answer, list):
        given = [str(a) for a in answer]
    elif isinstance(answer, str):
        given = [part.strip() for part in answer.split("|")]
    else:
        given = []

    ordered = sorted(
        enumerate(blanks), key=lambda pair: (pair[1].get("position", pair[0]), pair[0]),
    )
    correct_count = 0
    for index, (_, blank) in enumerate(ordered):
        if index >= len(given):
            break
        expected = str(blank.get("value", blank.get("latex", "")))
        if expected and compare_math_answers(
            given[index], expected, blank.get("alternates") or [],
        ):
            correct_count += 1
    total = len(blanks)
    return PartialResult(total > 0 and correct_count == total, correct_count, total)


def _to_int(value: Any) -> int | None:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def validate_matching(answer: Any, correct_matches: list) -> PartialResult:
    """Grade a matching answer given as index list or comma-separated string."""
    if isinstance(answer, list):
        user_matches = [_to_int(v) for v in answer]
    elif isinstance(answer, str):
        user_matches = [_to_int(v) for v in answer.split(",")]
    else:
        user_matches = []

    total = len(correct_matches)
    correct_count = sum(
        1 for i, expected in enumerate(correct_matches)
        if i < len(user_matches) and user_matches[i] is not None
        and user_matches[i] == _to_int(expected)
    )
    return PartialResult(
        total > 0 and correct_count == total and len(user_matches) == total,
        correct_count, total,
    )


def _grade_true_false(answer: str, correct: dict) -> bool:
    normalized = answer.lower().strip()
    if normalized not in ("true", "false"):
        return False
    value = correct.get("value")
    expected_true = value is True or str(value).lower() == "true" or (
        not isinstance(value, bool) and value == 1
    )
    return (normalized == "true") == expected_true


def _grade(answer_type: str, answer: Any, correct: dict, details: dict) -> bool:
    if answer_type == AnswerType.MULTIPLE_CHOICE:
        selected = _to_int(answer)
        expected = correct.get("correct")
        return selected is not None and isinstance(expected, int) and selected == expected

    if answer_type == AnswerType.TRUE_FALSE:
        return isinstance(answer, str) and _grade_true_false(answer, correct)

    if answer_type == AnswerType.NUMERIC:
        expected = to_number(correct.get("value"))
        if expected is None:
            details["matchType"] = "no_answer_data"
            return False
        tolerance = to_number(correct.get("tolerance"))
        return compare_numeric_answers(
            str(answer), expected,
            tolerance if tolerance is not None else DEFAULT_NUMERIC_TOLERANCE,
        )

    if answer_type == AnswerType.LONG_ANSWER:
        details["matchType"] = "manual_grading_required"
        return False

    if answer_type == AnswerType.FILL_BLANK and isinstance(correct.get("blanks"), list):
        result = validate_fill_blank(answer, correct["blanks"])
        details.update({
            "matchType": "fill_blank",
            "blanksCorrect": result.correct_count,
            "blanksTotal": result.total,
        })
        return result.is_correct

    if answer_type == AnswerType.MATCHING:
        if not isinstance(correct.get("correctMatches"), list):
            details["matchType"] = "matching_data_missing"
            return False
        result = validate_matching(answer, correct["correctMatches"])
        details.update({
            "matchType": "matching",
            "matchesCorrect": result.correct_count,
            "matchesTotal": result.total,
        })
        return result.is_correct

    # short_answer, expression, fill_blank without blanks
    expected_text = correct.get("value")
    if expected_text is None:
        expected_text = correct.get("latex")
    if expected_text is None or str(expected_text) == "":
        details["matchType"] = "no_answer_data"
        return False
    tolerance = to_number(correct.get("tolerance"))
    match_type = match_math_answer(
        str(answer), str(expected_text), correct.get("alternates") or [], tolerance,
    )
    details["matchType"] = match_type
    return match_type != "none"


def grade_answer(answer_type: str, raw_answer: Any, correct_answer: dict | None) -> GradeResult:
    """Grade a submitted answer against a question's correct_answer_json."""
    result = GradeResult(is_correct=False)
    answer = _sanitize(raw_answer)
    if not correct_answer or answer is None:
        return result
    try:
        result.is_correct = _grade(answer_type, answer, correct_answer, result.details)
    except Exception as e:  # grading must never fail the submission
        logger.error(f"Server-side answer validation failed: {e}", exc_info=True)
        result.is_correct = False
        result.details["serverValidated"] = False
        result.details["validationError"] = str(e)
    return result
