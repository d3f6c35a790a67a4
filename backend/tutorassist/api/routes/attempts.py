"""Attempt Routes — server-graded answer submission, attempt history, topic stats.

Invariants:
    - is_correct always comes from core.answer_grading; the client's claim is
      stored in context_json["clientClaimedCorrect"] and nothing else
    - Submitting updates spaced repetition (unless the workspace disabled it)
      and the question's times_attempted / times_correct in the same commit
    - Students only ever read their own attempts
    - The answer key is returned with the attempt only when the workspace
      setting revealAnswersAfterAttempt is on (off by default)
"""

import json
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.api.dependencies import UserContext, require_context, require_student
from tutorassist.api.lookups import get_in_workspace_or_404
from tutorassist.core.answer_grading import grade_answer
from tutorassist.core.clock import iso, utcnow
from tutorassist.core.progress_stats import aggregate_topic_stats
from tutorassist.core.spaced_repetition import ReviewState, schedule_review
from tutorassist.core.workspace_rules import setting_enabled
from tutorassist.infrastructure.database import get_db
from tutorassist.models.assignment import Assignment
from tutorassist.models.attempt import Attempt, SpacedRepetition
from tutorassist.models.question import Question
from tutorassist.models.topic import Topic
from tutorassist.models.workspace import Workspace
from tutorassist.schemas.practice import AttemptCreate

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/attempts", tags=["attempts"])


def serialize_attempt(attempt: Attempt) -> dict:
    return {
        "id": str(attempt.id),
        "question_id": str(attempt.question_id),
        "assignment_id": str(attempt.assignment_id) if attempt.assignment_id else None,
        "student_user_id": str(attempt.student_user_id),
        "answer_raw": attempt.answer_raw,
        "is_correct": attempt.is_correct,
        "time_spent_seconds": attempt.time_spent_seconds,
        "hints_used": attempt.hints_used,
        "override_correct": attempt.override_correct,
        "created_at": iso(attempt.created_at),
    }


def _answer_text(answer) -> str:
    if answer is None:
        return ""
    if isinstance(answer, (list, dict)):
        return json.dumps(answer)
    return str(answer)


async def _update_review_schedule(
    db: AsyncSession, workspace_id: UUID, student_user_id: UUID,
    question_id: UUID, is_correct: bool,
) -> SpacedRepetition:
    row = (await db.execute(
        select(SpacedRepetition).where(
            SpacedRepetition.workspace_id == workspace_id,
            SpacedRepetition.student_user_id == student_user_id,
            SpacedRepetition.question_id == question_id,
        )
    )).scalar_one_or_none()
    if row is None:
        row = SpacedRepetition(
            workspace_id=workspace_id,
            student_user_id=student_user_id,
            question_id=question_id,
        )
        db.add(row)
        state = ReviewState()
    else:
        state = ReviewState(
            ease=row.ease,
            interval_days=row.interval_days,
            streak=row.streak,
            total_reviews=row.total_reviews,
            total_correct=row.total_correct,
        )

    state = schedule_review(state, is_correct, utcnow())
    row.ease = state.ease
    row.interval_days = state.interval_days
    row.streak = state.streak
    row.total_reviews = state.total_reviews
    row.total_correct = state.total_correct
    row.next_due = state.next_due
    row.last_seen = state.last_seen
    row.last_outcome = state.last_outcome
    return row


@router.post("", status_code=status.HTTP_201_CREATED)
async def submit_attempt(
    body: AttemptCreate,
    request: Request,
    ctx: UserContext = Depends(require_student),
    db: AsyncSession = Depends(get_db),
):
    question = await get_in_workspace_or_404(
        db, Question, body.question_id, ctx.workspace_id, "Question",
    )
    if body.assignment_id is not None:
        await get_in_workspace_or_404(
            db, Assignment, body.assignment_id, ctx.workspace_id, "Assignment",
        )

    grade = grade_answer(question.answer_type, body.answer, question.correct_answer_json)
    now = utcnow()
    attempt = Attempt(
        workspace_id=ctx.workspace_id,
        student_user_id=ctx.user_id,
        question_id=question.id,
        assignment_id=body.assignment_id,
        answer_raw=_answer_text(body.answer),
        is_correct=grade.is_correct,
        time_spent_seconds=body.time_spent_seconds,
        hints_used=body.hints_used,
        context_json={
            "device": request.headers.get("user-agent"),
            "sessionType": "assignment" if body.assignment_id else "practice",
            "timestamp": now.isoformat(),
            "validation": grade.details,
            "serverValidated": grade.details.get("serverValidated", True),
            "clientClaimedCorrect": body.is_correct,
        },
    )
    db.add(attempt)

    workspace = await db.get(Workspace, ctx.workspace_id)
    settings = workspace.settings if workspace else None
    if setting_enabled(settings, "enableSpacedRepetition"):
        await _update_review_schedule(
            db, ctx.workspace_id, ctx.user_id, question.id, grade.is_correct,
        )

    question.times_attempted = (question.times_attempted or 0) + 1
    if grade.is_correct:
        question.times_correct = (question.times_correct or 0) + 1
    await db.commit()

    if body.is_correct is not None and body.is_correct != grade.is_correct:
        logger.info(
            "Client correctness claim disagreed with server grading",
            extra={"workspace_id": str(ctx.workspace_id), "user_id": str(ctx.user_id)},
        )
    result = {
        "attempt": serialize_attempt(attempt),
        "isCorrect": grade.is_correct,
        "validation": grade.details,
    }
    # The answer key stays server-side unless the tutor opted in
    if setting_enabled(settings, "revealAnswersAfterAttempt"):
        result["correctAnswer"] = question.correct_answer_json
        result["solutionSteps"] = question.solution_steps or []
    return result


@router.get("/topic-stats")
async def topic_stats(
    ctx: UserContext = Depends(require_student),
    db: AsyncSession = Depends(get_db),
):
    rows = (await db.execute(
        select(Question.topic_id, Topic.name, Attempt.is_correct)
        .join(Question, Question.id == Attempt.question_id)
        .outerjoin(Topic, Topic.id == Question.topic_id)
        .where(
            Attempt.workspace_id == ctx.workspace_id,
            Attempt.student_user_id == ctx.user_id,
        )
    )).all()
    return {"topics": [stat.to_dict() for stat in aggregate_topic_stats(rows)]}


@router.get("")
async def list_attempts(
    question_id: UUID | None = None,
    assignment_id: UUID | None = None,
    limit: int = Query(50, ge=1, le=500),
    ctx: UserContext = Depends(require_context),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(Attempt).where(Attempt.workspace_id == ctx.workspace_id)
    if not ctx.is_tutor:
        stmt = stmt.where(Attempt.student_user_id == ctx.user_id)
    if question_id is not None:
        stmt = stmt.where(Attempt.question_id == question_id)
    if assignment_id is not None:
        stmt = stmt.where(Attempt.assignment_id == assignment_id)
    rows = (await db.execute(
        stmt.order_by(Attempt.created_at.desc()).limit(limit)
    )).scalars().all()
    return {"attempts": [serialize_attempt(a) for a in rows]}
