"""Assignment Planning — question picking, student history and AI plan assembly.

Invariants:
    - Difficulty filters: easy 1..2, medium 2..4, hard 4..5; mixed/adaptive keep all
    - Mixed picks aim for a third each of easy (<=2), medium (3..4) and hard (5),
      topping up from the remaining pool when a band runs short
    - A topic counts as struggled with >= 3 attempts and an error rate above 40%
    - Plan questions carry camelCase keys; generated ones get a "generated-" id
      and are never written to the question bank
    - difficultyBreakdown: easy <= 2, medium == 3, hard >= 4
"""

import random
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Iterable, Sequence
from uuid import UUID, uuid4

from tutorassist.core.clock import utcnow
from tutorassist.core.domain_types import AnswerType
from tutorassist.core.question_quality import (
    clamp_difficulty, normalize_generated_answer, strip_latex_to_plain_text,
)

STRUGGLE_ERROR_RATE = 0.4
STRUGGLE_MIN_ATTEMPTS = 3
HISTORY_ATTEMPTS = 200
RECENT_TOPICS = 5
DEFAULT_DUE_DAYS = 7
MINUTES_PER_QUESTION = 3

DIFFICULTY_BOUNDS: dict[str, tuple[int, int]] = {
    "easy": (1, 2),
    "medium": (2, 4),
    "hard": (4, 5),
}


@dataclass
class TopicAttempt:
    is_correct: bool
    difficulty: int
    topic_id: UUID | None
    topic_name: str | None


@dataclass
class StudentHistory:
    topics_struggled: list[dict[str, Any]] = field(default_factory=list)
    recent_topic_ids: list[UUID] = field(default_factory=list)
    average_difficulty: float = 3.0
    total_attempts: int = 0
    overall_accuracy: float = 0.0

    def prompt_context(self, focus_on_weak_areas: bool = False) -> str:
        if not self.total_attempts:
            return "New student: no practice history available."
        struggled = ", ".join(
            f"{t['topicName']} ({round(t['errorRate'] * 100)}% error rate)"
            for t in self.topics_struggled
        ) or "None identified"
        lines = [
            "Student performance:",
            f"- Overall accuracy: {round(self.overall_accuracy * 100)}%",
            f"- Average difficulty handled: {self.average_difficulty:.1f}/5",
            f"- Topics they struggle with: {struggled}",
        ]
        if focus_on_weak_areas:
            lines.append("- PRIORITY: focus on weak areas to help improvement")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalAttempts": self.total_attempts,
            "overallAccuracy": round(self.overall_accuracy * 100),
            "topicsStruggled": self.topics_struggled[:5],
        }


def student_history(attempts: Iterable[TopicAttempt]) -> StudentHistory:
    """Attempts newest first; only attempts on topic-linked questions count."""
    per_topic: dict[UUID, list] = {}
    recent: list[UUID] = []
    scored = correct = difficulty_sum = 0
    for attempt in attempts:
        if attempt.topic_id is None:
            continue
        scored += 1
        difficulty_sum += attempt.difficulty or 3
        stats = per_topic.setdefault(attempt.topic_id, [attempt.topic_name, 0, 0])
        stats[1] += 1
        if attempt.is_correct:
            stats[2] += 1
            correct += 1
        if attempt.topic_id not in recent and len(recent) < RECENT_TOPICS:
            recent.append(attempt.topic_id)

    if not scored:
        return StudentHistory()

    struggled = [
        {"topicId": str(topic_id), "topicName": name, "errorRate": 1 - right / total}
        for topic_id, (name, total, right) in per_topic.items()
        if total >= STRUGGLE_MIN_ATTEMPTS and 1 - right / total > STRUGGLE_ERROR_RATE
    ]
    struggled.sort(key=lambda t: t["errorRate"], reverse=True)
    return StudentHistory(
        topics_struggled=struggled,
        recent_topic_ids=recent,
        average_difficulty=difficulty_sum / scored,
        total_attempts=scored,
        overall_accuracy=correct / scored,
    )


def pick_questions(
    pool: Sequence[Any],
    count: int,
    difficulty: str,
    shuffle: bool = True,
    rng: random.Random | None = None,
) -> list[Any]:
    """Pick `count` items (anything with .id and .difficulty) from an already filtered pool."""
    rng = rng or random.Random()
    pool = list(pool)

    if difficulty == "mixed" and len(pool) >= count:
        bands = [
            [q for q in pool if q.difficulty <= 2],
            [q for q in pool if 2 < q.difficulty <= 4],
            [q for q in pool if q.difficulty > 4],
        ]
        third = count // 3
        quotas = [third, third, count - 2 * third]
        picked = []
        for band, quota in zip(bands, quotas):
            rng.shuffle(band)
            picked.extend(band[:quota])
        if len(picked) < count:
            chosen = {q.id for q in picked}
            rest = [q for q in pool if q.id not in chosen]
            rng.shuffle(rest)
            picked.extend(rest[:count - len(picked)])
        if shuffle:
            rng.shuffle(picked)
        return picked

    if shuffle:
        rng.shuffle(pool)
    return pool[:count]


def difficulty_breakdown(difficulties: Iterable[int]) -> dict[str, int]:
    breakdown = {"easy": 0, "medium": 0, "hard": 0}
    for level in difficulties:
        if level <= 2:
            breakdown["easy"] += 1
        elif level <= 3:
            breakdown["medium"] += 1
        else:
            breakdown["hard"] += 1
    return breakdown


def _generated_id() -> str:
    return f"generated-{uuid4().hex[:12]}"


def _unique(values: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(v for v in values if v))


def _new_question(raw: dict[str, Any]) -> dict[str, Any] | None:
    text = raw.get("questionLatex") or raw.get("promptLatex") or raw.get("promptText")
    if not text:
        return None
    answer_type = raw.get("answerType") or AnswerType.SHORT_ANSWER.value
    answer = raw.get("correctAnswer")
    return {
        "id": _generated_id(),
        "promptText": strip_latex_to_plain_text(str(text)),
        "promptLatex": str(text),
        "difficulty": clamp_difficulty(raw.get("difficulty")),
        "topicName": raw.get("topicName") or "General",
        "answerType": answer_type,
        "correctAnswer": normalize_generated_answer(
            answer if isinstance(answer, dict) else {"value": answer}, answer_type,
        ),
        "hints": raw.get("hints") if isinstance(raw.get("hints"), list) else [],
        "solutionSteps": (
            raw.get("solutionSteps") if isinstance(raw.get("solutionSteps"), list) else []
        ),
        "isGenerated": True,
    }


def _with_totals(plan: dict[str, Any]) -> dict[str, Any]:
    questions = plan["questions"]
    plan["topicsCovered"] = _unique(q.get("topicName") for q in questions)
    plan["difficultyBreakdown"] = difficulty_breakdown(q["difficulty"] for q in questions)
    return plan


def assemble_plan(result: dict[str, Any], bank: list[dict[str, Any]]) -> dict[str, Any]:
    """Turn the model's selection (bank indices + new questions) into an assignment plan."""
    questions = []
    for index in result.get("selectedQuestionIndices") or []:
        if isinstance(index, int) and not isinstance(index, bool) and 0 <= index < len(bank):
            questions.append(bank[index])
    for raw in result.get("newQuestions") or []:
        new = _new_question(raw) if isinstance(raw, dict) else None
        if new:
            questions.append(new)

    due_days = result.get("suggestedDueDays")
    if not isinstance(due_days, int) or due_days <= 0:
        due_days = DEFAULT_DUE_DAYS
    return _with_totals({
        "title": result.get("title") or "Practice Assignment",
        "description": result.get("description") or "",
        "questions": questions,
        "suggestedDueDate": (utcnow() + timedelta(days=due_days)).date().isoformat(),
        "estimatedMinutes": result.get("estimatedMinutes") or len(questions) * MINUTES_PER_QUESTION,
    })


def merge_refined(
    result: dict[str, Any], assignment: dict[str, Any], bank: list[dict[str, Any]],
) -> dict[str, Any]:
    """Resolve id-only entries against the current plan, then the bank; keep edits as given."""
    current = {q.get("id"): q for q in assignment.get("questions") or []}
    by_id = {q["id"]: q for q in bank}
    questions = []
    for raw in result.get("questions") or []:
        if not isinstance(raw, dict):
            continue
        qid = raw.get("id")
        if not raw.get("promptText") and qid in current:
            questions.append(current[qid])
        elif not raw.get("promptText") and qid in by_id:
            questions.append(by_id[qid])
        elif raw.get("promptText") or raw.get("promptLatex"):
            edited = _new_question({**raw, "questionLatex": raw.get("promptLatex")})
            if qid:
                edited["id"] = qid
            edited["isGenerated"] = raw.get("isGenerated") is not False
            questions.append(edited)

    return _with_totals({
        "title": result.get("title") or assignment.get("title"),
        "description": result.get("description") or assignment.get("description"),
        "questions": questions,
        "suggestedDueDate": result.get("suggestedDueDate") or assignment.get("suggestedDueDate"),
        "estimatedMinutes": result.get("estimatedMinutes") or len(questions) * MINUTES_PER_QUESTION,
    })
