"""Question Quality — verifies validation, auto-fix and dedupe of generated questions.

Invariants:
    - A well-formed question validates with no errors
    - auto_fix returns a repaired copy plus the names of the fixes applied
    - Near-duplicate prompts (similarity > 0.85) are detected case-insensitively
"""

import pytest

from tutorassist.core.question_quality import (
    auto_fix,
    clamp_difficulty,
    is_duplicate_prompt,
    levenshtein_similarity,
    normalize_generated_answer,
    strip_latex_to_plain_text,
    validate_generated_question,
)


def _question(**overrides) -> dict:
    q = {
        "questionLatex": "Solve \\(2x + 3 = 7\\)",
        "correctAnswer": {"value": "2", "latex": "\\(2\\)"},
        "answerType": "short_answer",
        "hints": ["Subtract 3 first"],
        "solutionSteps": [{"step": "2x = 4"}],
        "difficulty": 3,
    }
    q.update(overrides)
    return q


# --- validate_generated_question ---------------------------------------------

def test_well_formed_question_is_valid():
    valid, errors = validate_generated_question(_question())
    assert valid is True
    assert errors == []


def test_math_without_delimiters_is_rejected():
    valid, errors = validate_generated_question(_question(questionLatex="Solve 2x + 3 = 7"))
    assert valid is False
    assert any("no LaTeX delimiters" in e for e in errors)


def test_mismatched_delimiters_are_reported():
    _, errors = validate_generated_question(_question(questionLatex="Solve \\(2x + 3 = 7"))
    assert any("Mismatched inline delimiters" in e for e in errors)


def test_multiple_choice_needs_choices_and_index():
    _, errors = validate_generated_question(
        _question(answerType="multiple_choice", correctAnswer={"correct": 1}),
    )
    assert "Multiple choice missing choices array" in errors


def test_out_of_range_difficulty_is_reported():
    _, errors = validate_generated_question(_question(difficulty=7))
    assert "Difficulty 7 out of range 1-5" in errors


def test_missing_hints_and_steps_are_reported():
    _, errors = validate_generated_question(_question(hints=[], solutionSteps=[]))
    assert "Question missing hints" in errors
    assert "Question missing solution steps" in errors


# --- auto_fix ----------------------------------------------------------------

def test_auto_fix_repairs_common_slips():
    raw = {
        "questionLatex": "What is 2 + 3?",
        "correctAnswer": {"value": 5},
        "answerType": "numeric",
        "hints": "Add them",
        "solutionSteps": None,
        "difficulty": 9,
    }
    fixed, applied = auto_fix(raw)

    assert applied == [
        "wrapped_math_delimiters",
        "added_answer_latex",
        "coerced_hints",
        "coerced_solution_steps",
        "clamped_difficulty",
    ]
    assert fixed["questionLatex"] == "What is \\(2 + 3\\)?"
    assert fixed["correctAnswer"]["latex"] == "\\(5\\)"
    assert fixed["hints"] == ["Add them"]
    assert fixed["difficulty"] == 5
    assert validate_generated_question(fixed)[0] is True


def test_auto_fix_does_not_mutate_input():
    raw = _question(hints="single hint")
    auto_fix(raw)
    assert raw["hints"] == "single hint"


def test_auto_fix_on_valid_question_applies_nothing():
    _, applied = auto_fix(_question())
    assert applied == []


@pytest.mark.parametrize("value,expected", [(None, 3), ("x", 3), (-2, 1), (4.7, 4), (12, 5)])
def test_clamp_difficulty(value, expected):
    assert clamp_difficulty(value) == expected


# --- text helpers --------------------------------------------------------------

def test_strip_latex_to_plain_text():
    assert strip_latex_to_plain_text("Solve \\(\\frac{1}{2}x = 3\\)") == "Solve 1/2x = 3"
    assert strip_latex_to_plain_text("\\text{Find } \\sqrt{16}") == "Find √(16)"
    assert strip_latex_to_plain_text("\\[x^{2}\\]") == "x^(2)"


def test_normalize_generated_answer_adds_latex_except_multiple_choice():
    assert normalize_generated_answer({"value": 4}, "numeric") == {
        "value": 4, "latex": "\\(4\\)",
    }
    mc = {"choices": ["a", "b"], "correct": 0}
    assert normalize_generated_answer(mc, "multiple_choice") == mc


def test_levenshtein_similarity():
    assert levenshtein_similarity("kitten", "sitting") == pytest.approx(1 - 3 / 7)
    assert levenshtein_similarity("same", "same") == 1.0
    assert levenshtein_similarity("", "") == 1.0
    assert levenshtein_similarity("a", "") == 0.0


def test_duplicate_prompt_detection():
    existing = ["solve 2x + 3 = 7"]
    assert is_duplicate_prompt("Solve 2x + 3 = 7", existing) is True
    assert is_duplicate_prompt("Solve 2x + 3 = 8", existing) is True
    assert is_duplicate_prompt("Find the area of a circle of radius 4", existing) is False
