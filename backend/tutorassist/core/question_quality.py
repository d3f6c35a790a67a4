"""Question Quality — validation, auto-fix and dedupe helpers for LLM-generated questions.

Invariants:
    - validate_generated_question returns (valid, errors); errors are human-readable strings
    - auto_fix never mutates its input (returns a new dict)
    - auto_fix output always has list hints, list solutionSteps, difficulty in 1..5
    - strip_latex_to_plain_text output has no LaTeX delimiters, commands, or braces

Design Decisions:
    - Generated questions stay plain dicts (camelCase keys as the model emits them):
      they are validated, fixed, then mapped onto the Question ORM by the handler
    - Levenshtein implemented with two rolling rows: O(min(a, b)) memory
"""

import copy
import re
from typing import Any

from tutorassist.core.domain_types import AnswerType, MAX_DIFFICULTY, MIN_DIFFICULTY

DUPLICATE_SIMILARITY_THRESHOLD = 0.85

_MATH_CONTENT = re.compile(r"[0-9x+\-=*/^√πθ]")
_HAS_DELIMITERS = re.compile(r"\\\(.*?\\\)|\\\[.*?\\\]", re.DOTALL)
_SIMPLE_ARITHMETIC = re.compile(
    r"(\d+\s*[+\-*/×÷=]\s*\d+|\d*x\s*[+\-*/×÷=]\s*\d+|[a-z]\s*[+\-*/×÷=]\s*[a-z\d]+)",
    re.IGNORECASE,
)

_PLAIN_TEXT_RULES: list[tuple[re.Pattern, str]] = [
    (re.compile(p), r) for p, r in [
        (r"\\\[|\\\]", ""),
        (r"\\\(|\\\)", ""),
        (r"\\(?:text|textbf|textit|mathrm|mathit|mathbf|mbox)\{([^}]*)\}", r"\1"),
        (r"\\frac\{([^}]*)\}\{([^}]*)\}", r"\1/\2"),
        (r"\\sqrt\[([^\]]*)\]\{([^}]*)\}", r"\1√(\2)"),
        (r"\\sqrt\{([^}]*)\}", r"√(\1)"),
        (r"\\times", "×"),
        (r"\\div", "÷"),
        (r"\\cdot", "·"),
        (r"\\pm", "±"),
        (r"\\pi", "π"),
        (r"\\theta", "θ"),
        (r"\\alpha", "α"),
        (r"\\beta", "β"),
        (r"\\gamma", "γ"),
        (r"\\sin", "sin"),
        (r"\\cos", "cos"),
        (r"\\tan", "tan"),
        (r"\\log", "log"),
        (r"\\ln", "ln"),
        (r"\\leq", "≤"),
        (r"\\geq", "≥"),
        (r"\\neq", "≠"),
        (r"\^\{([^}]*)\}", r"^(\1)"),
        (r"_\{([^}]*)\}", r"_(\1)"),
        (r"\\[a-zA-Z]+", ""),
        (r"[{}]", ""),
        (r"\s+", " "),
    ]
]


def validate_generated_question(q: dict[str, Any]) -> tuple[bool, list[str]]:
    """Check delimiters, answer shape, hints, steps and difficulty."""
    errors: list[str] = []
    text = str(q.get("questionLatex") or "")

    if _MATH_CONTENT.search(text) and not _HAS_DELIMITERS.search(text):
        errors.append("Question contains math content but no LaTeX delimiters")

    open_inline, close_inline = text.count("\\("), text.count("\\)")
    if open_inline != close_inline:
        errors.append(
            f"Mismatched inline delimiters: {open_inline} opening, {close_inline} closing",
        )
    open_display, close_display = text.count("\\["), text.count("\\]")
    if open_display != close_display:
        errors.append(
            f"Mismatched display delimiters: {open_display} opening, {close_display} closing",
        )

    answer = q.get("correctAnswer")
    answer_type = q.get("answerType")
    if not isinstance(answer, dict) or not answer:
        errors.append("Answer is missing")
        answer = {}
    elif not answer.get("latex") and answer_type != AnswerType.MULTIPLE_CHOICE:
        errors.append("Answer missing latex field for display")

    if answer_type == AnswerType.MULTIPLE_CHOICE:
        if not answer.get("choices"):
            errors.append("Multiple choice missing choices array")
        if not isinstance(answer.get("correct"), int) or isinstance(answer.get("correct"), bool):
            errors.append("Multiple choice missing correct index")

    if not q.get("hints"):
        errors.append("Question missing hints")
    if not q.get("solutionSteps"):
        errors.append("Question missing solution steps")

    difficulty = q.get("difficulty")
    if not isinstance(difficulty, (int, float)) or not (
        MIN_DIFFICULTY <= difficulty <= MAX_DIFFICULTY
    ):
        errors.append(f"Difficulty {difficulty} out of range 1-5")

    return not errors, errors


def clamp_difficulty(value: Any, default: int = 3) -> int:
    try:
        number = int(value) if value else default
    except (TypeError, ValueError):
        number = default
    return min(MAX_DIFFICULTY, max(MIN_DIFFICULTY, number))


def auto_fix(q: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """Repair common generation slips. Returns (fixed copy, names of fixes applied)."""
    fixed = copy.deepcopy(q)
    applied: list[str] = []

    text = str(fixed.get("questionLatex") or "")
    if not re.search(r"\\\(|\\\[", text):
        wrapped = _SIMPLE_ARITHMETIC.sub(lambda m: f"\\({m.group(1)}\\)", text)
        if wrapped != text:
            fixed["questionLatex"] = wrapped
            applied.append("wrapped_math_delimiters")

    answer = fixed.get("correctAnswer")
    if not isinstance(answer, dict):
        answer = {}
        fixed["correctAnswer"] = answer
    if not answer.get("latex") and answer.get("value") is not None:
        answer["latex"] = f"\\({answer['value']}\\)"
        applied.append("added_answer_latex")

    hints = fixed.get("hints")
    if not isinstance(hints, list):
        fixed["hints"] = [str(hints)] if hints else ["Think about what the question is asking."]
        applied.append("coerced_hints")

    steps = fixed.get("solutionSteps")
    if not isinstance(steps, list):
        fixed["solutionSteps"] = [
            {"step": "Solve the problem", "latex": answer.get("latex", "")},
        ]
        applied.append("coerced_solution_steps")

    difficulty = clamp_difficulty(fixed.get("difficulty"))
    if difficulty != fixed.get("difficulty"):
        applied.append("clamped_difficulty")
    fixed["difficulty"] = difficulty

    return fixed, applied


def strip_latex_to_plain_text(latex: str) -> str:
    """Readable plain-text version of a LaTeX prompt (search, dedupe, previews)."""
    text = latex or ""
    for pattern, replacement in _PLAIN_TEXT_RULES:
        text = pattern.sub(replacement, text)
    return text.strip()


def normalize_generated_answer(answer: dict[str, Any], answer_type: str | None) -> dict[str, Any]:
    """Ensure non-multiple-choice answers carry a latex display field."""
    normalized = dict(answer or {})
    if answer_type == AnswerType.MULTIPLE_CHOICE:
        return normalized
    if not normalized.get("latex") and normalized.get("value") is not None:
        value = str(normalized["value"])
        normalized["latex"] = value if "\\(" in value else f"\\({value}\\)"
    return normalized


def levenshtein_similarity(a: str, b: str) -> float:
    """1 - edit_distance / max_len. 1.0 for identical strings."""
    if not a:
        return 1.0 if not b else 0.0
    if not b:
        return 0.0
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + cost,
            ))
        previous = current
    return 1 - previous[-1] / max(len(a), len(b))


def is_duplicate_prompt(candidate: str, existing: list[str]) -> bool:
    """Exact or near-duplicate (similarity > 0.85) of any existing normalized prompt."""
    normalized = candidate.lower().strip()
    return any(
        prev == normalized
        or levenshtein_similarity(prev, normalized) > DUPLICATE_SIMILARITY_THRESHOLD
        for prev in existing
    )
