"""Flag Insights — rule-based patterns over a workspace's recent flags.

Invariants:
    - Rules run over flags from the last INSIGHT_WINDOW only
    - acceptedRate is a rounded percentage of accepted flags over all flags
    - Insights come back in rule order: wrong-answer claims (high), accept rate
      (medium), flag-heavy topics (medium), unclear questions (low)
    - An AI summary is requested only with at least AI_SUMMARY_MIN_FLAGS flags
"""

from collections import Counter
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Iterable
from uuid import UUID

from tutorassist.core.domain_types import FlagStatus, FlagType
from tutorassist.core.progress_stats import accuracy_percent

INSIGHT_WINDOW = timedelta(days=30)
AI_SUMMARY_MIN_FLAGS = 10
AI_SUMMARY_SAMPLE = 50
COMMON_TYPES_LIMIT = 5
REPEAT_FLAG_MIN = 2
ACCEPTED_MIN = 5
ACCEPTED_RATE_MIN = 50
TOPIC_FLAG_MIN = 5
UNCLEAR_MIN = 3

FLAG_INSIGHTS_SYSTEM_PROMPT = """You are an educational analytics assistant. Analyze the following flag data from a tutoring platform and give a brief, actionable summary of the patterns you observe. Focus on:
1. Systemic issues with question quality
2. Patterns in student misunderstandings
3. Recommendations for improvement

Keep the response to two or three short paragraphs."""


@dataclass
class FlagRow:
    """A flag joined with the question and topic it points at."""
    flag_type: str
    status: str
    question_id: UUID | None
    comment: str | None = None
    student_answer: str | None = None
    prompt_text: str | None = None
    topic_name: str | None = None


def summarize(rows: list[FlagRow]) -> dict[str, Any]:
    accepted = sum(1 for r in rows if r.status == FlagStatus.ACCEPTED)
    types = Counter(r.flag_type for r in rows)
    per_question = Counter(r.question_id for r in rows if r.question_id)
    return {
        "totalFlags": len(rows),
        "pendingCount": sum(1 for r in rows if r.status == FlagStatus.PENDING),
        "acceptedRate": accuracy_percent(accepted, len(rows)),
        # Ties keep first-seen order (Counter preserves insertion)
        "commonTypes": [
            {"type": t, "count": c} for t, c in types.most_common(COMMON_TYPES_LIMIT)
        ],
        "problematicQuestionCount": sum(1 for c in per_question.values() if c >= REPEAT_FLAG_MIN),
    }


def derive_insights(rows: list[FlagRow]) -> list[dict[str, Any]]:
    insights: list[dict[str, Any]] = []

    claims = Counter(
        r.question_id for r in rows
        if r.question_id and r.flag_type == FlagType.CLAIM_CORRECT
    )
    disputed = [str(q) for q, c in claims.items() if c >= REPEAT_FLAG_MIN]
    if disputed:
        insights.append({
            "type": "question_issue",
            "severity": "high",
            "title": 'Questions with Multiple "I Was Right" Claims',
            "description": (
                f"{len(disputed)} question(s) have been flagged as having a wrong answer "
                "by multiple students. Their expected answers likely need review."
            ),
            "affectedCount": len(disputed),
            "questionIds": disputed,
            "actionSuggestion": (
                "Review these questions and add alternate answers or fix the expected answer."
            ),
        })

    accepted = sum(1 for r in rows if r.status == FlagStatus.ACCEPTED)
    rate = accuracy_percent(accepted, len(rows))
    if accepted > ACCEPTED_MIN and rate > ACCEPTED_RATE_MIN:
        insights.append({
            "type": "pattern",
            "severity": "medium",
            "title": "High Accept Rate on Student Claims",
            "description": (
                f"{rate}% of flags have been accepted. Answer checking may be too strict, "
                "or questions may need alternate answers."
            ),
            "affectedCount": accepted,
            "actionSuggestion": "Add common alternate forms to the affected questions.",
        })

    topics = Counter(r.topic_name for r in rows if r.topic_name)
    busy = [(t, c) for t, c in topics.most_common() if c >= TOPIC_FLAG_MIN]
    if busy:
        listed = ", ".join(f"{t} ({c})" for t, c in busy[:3])
        insights.append({
            "type": "pattern",
            "severity": "medium",
            "title": "Topics with Frequent Flags",
            "description": f"These topics have the most flagged questions: {listed}.",
            "affectedCount": sum(c for _, c in busy),
            "actionSuggestion": "Review and improve questions in these topic areas.",
        })

    unclear = [r for r in rows if r.flag_type == FlagType.UNCLEAR]
    if len(unclear) >= UNCLEAR_MIN:
        insights.append({
            "type": "pattern",
            "severity": "low",
            "title": "Questions Marked as Unclear",
            "description": (
                f"{len(unclear)} flags report unclear or confusing questions."
            ),
            "affectedCount": len(unclear),
            "questionIds": [str(r.question_id) for r in unclear if r.question_id],
            "actionSuggestion": "Review question wording for ambiguity.",
        })

    return insights


def _clip(value: str | None, limit: int) -> str | None:
    return value[:limit] if value else value


def build_summary_payload(rows: Iterable[FlagRow]) -> list[dict[str, Any]]:
    """Truncated flag records sent to the model for the free-text summary."""
    return [
        {
            "type": r.flag_type,
            "status": r.status,
            "comment": _clip(r.comment, 100),
            "questionPreview": _clip(r.prompt_text, 100),
            "studentAnswer": _clip(r.student_answer, 50),
        }
        for r in list(rows)[:AI_SUMMARY_SAMPLE]
    ]
