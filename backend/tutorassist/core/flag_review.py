"""Flag Review — payload building and response normalization for AI flag triage.

Invariants:
    - Every returned review carries a flagId (filled by position when the model omits it)
    - Unknown recommendation/confidence values are coerced to needs_review/low
    - extract_reviews raises ValueError when no list of reviews can be found

Design Decisions:
    - The model may answer with a bare array or wrap it under reviews/results/
      recommendations or any other array-valued key; all shapes are accepted
"""

from typing import Any

from tutorassist.core.domain_types import FlagType
from tutorassist.core.llm_json import extract_json

MAX_FLAGS_PER_REVIEW = 20
RECOMMENDATIONS = ("accept", "dismiss", "fix_question", "needs_review")
CONFIDENCE_LEVELS = ("high", "medium", "low")
_WRAPPER_KEYS = ("reviews", "results", "recommendations")

DEFAULT_FLAG_REASONS: list[dict[str, str]] = [
    {"type": FlagType.INCORRECT_ANSWER, "label": "The expected answer is wrong"},
    {"type": FlagType.CLAIM_CORRECT, "label": "My answer should be marked correct"},
    {"type": FlagType.MULTIPLE_VALID, "label": "More than one answer is valid"},
    {"type": FlagType.UNCLEAR, "label": "The question is unclear"},
    {"type": FlagType.TYPO, "label": "There is a typo"},
    {"type": FlagType.MISSING_CONTENT, "label": "Something is missing from the question"},
    {"type": FlagType.TOO_HARD, "label": "This question is too hard"},
    {"type": FlagType.OTHER, "label": "Other"},
]

FLAG_REVIEW_SYSTEM_PROMPT = """You are an expert math tutor assistant reviewing student-submitted flags on math questions.
Analyze each flag and provide a recommendation.

For each flag, consider:
1. Is the student's answer mathematically equivalent to the correct answer?
2. Could the question have ambiguity or multiple valid interpretations?
3. Is there a genuine error in the question or expected answer?
4. Is the student's claim reasonable based on the evidence?

Flag types:
- claim_correct: Student believes their answer was incorrectly marked wrong
- incorrect_answer: Student thinks the expected answer is wrong
- unclear: Question is confusing or ambiguous
- typo: There's a typo in the question
- multiple_valid: There are multiple valid answers
- missing_content: Something needed to answer is missing
- too_hard: Question is too difficult
- other: Other issues

Respond with JSON: {"reviews": [ ... ]}, one object per flag containing:
- flagId: the id of the flag
- recommendation: "accept" (student is right, add their answer), "dismiss" (student is wrong), "fix_question" (question needs correction), "needs_review" (uncertain, tutor should review)
- confidence: "high", "medium", or "low"
- reasoning: brief explanation of your assessment
- suggestedAction: what action to take (optional)
- suggestedFix: if recommending fix_question, what the fix should be (optional)

Be fair to students: if their answer is mathematically equivalent (different form, simplified differently), recommend accepting.
Common equivalencies: fractions vs decimals (1/2 = 0.5), 2x vs x+x, 4/8 vs 1/2, term order, Unicode vs LaTeX (× vs \\times).
Respond with JSON only."""


def build_review_payload(flag, question) -> dict[str, Any]:
    """One flag plus the question context the reviewer needs."""
    answer = (question.correct_answer_json or {}) if question is not None else {}
    return {
        "flagId": str(flag.id),
        "flagType": flag.flag_type,
        "studentComment": flag.comment,
        "studentAnswer": flag.student_answer,
        "question": {
            "text": question.prompt_text,
            "latex": question.prompt_latex,
            "expectedAnswer": answer.get("value"),
            "alternates": answer.get("alternates") or [],
            "tolerance": answer.get("tolerance"),
            "answerType": question.answer_type,
        } if question is not None else None,
    }


def _find_review_list(parsed: Any) -> list | None:
    if isinstance(parsed, list):
        return parsed
    if not isinstance(parsed, dict):
        return None
    for key in _WRAPPER_KEYS:
        if isinstance(parsed.get(key), list):
            return parsed[key]
    return next((v for v in parsed.values() if isinstance(v, list)), None)


def _normalize_review(review: Any, fallback_id: str | None) -> dict[str, Any]:
    review = dict(review) if isinstance(review, dict) else {"reasoning": str(review)}
    if not review.get("flagId"):
        review["flagId"] = fallback_id
    if review.get("recommendation") not in RECOMMENDATIONS:
        review["recommendation"] = "needs_review"
    if review.get("confidence") not in CONFIDENCE_LEVELS:
        review["confidence"] = "low"
    review.setdefault("reasoning", "")
    return review


def extract_reviews(response_text: str, flag_ids: list[str]) -> list[dict[str, Any]]:
    """Parse the reviewer response into normalized review dicts."""
    parsed = extract_json(response_text)
    if parsed is None:
        raise ValueError("Failed to parse AI response")
    reviews = _find_review_list(parsed)
    if reviews is None:
        raise ValueError("AI returned unexpected format")
    return [
        _normalize_review(review, flag_ids[i] if i < len(flag_ids) else None)
        for i, review in enumerate(reviews)
    ]
