"""Flag Routes — student reports on questions, tutor review, AI-assisted triage.

Invariants:
    - Tutors see every flag in the workspace; students see only their own
    - One pending flag per (student, question, flag_type)
    - A claim_correct flag with an attempt_id overrides that attempt to correct
      immediately (original_is_correct=False keeps the graded outcome)
    - Accepting claim_correct with add_as_alternate appends the student's answer
      to correct_answer_json["alternates"] once and marks the linked attempt correct
    - Every tutor status change stamps reviewed_by / reviewed_at
    - Insights are tutor-only and cover the last 30 days
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.api.dependencies import UserContext, require_context, require_tutor
from tutorassist.api.lookups import get_in_workspace_or_404
from tutorassist.core.clock import iso, utcnow
from tutorassist.core.domain_types import FlagStatus, FlagType
from tutorassist.core.errors import (
    BusinessRuleError, ResourceNotFoundError, ValidationFailedError,
)
from tutorassist.core.flag_review import DEFAULT_FLAG_REASONS
from tutorassist.infrastructure.database import get_db
from tutorassist.models.attempt import Attempt
from tutorassist.models.flag import QuestionFlag
from tutorassist.models.question import Question
from tutorassist.models.student_profile import StudentProfile
from tutorassist.schemas.practice import AIReviewRequest, FlagCreate, FlagUpdate
from tutorassist.services.flag_triage import flag_insights, review_flags

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/flags", tags=["flags"])

_FLAG_TYPES = {t.value for t in FlagType}
_FLAG_STATUSES = {s.value for s in FlagStatus}


def serialize_flag(flag: QuestionFlag) -> dict:
    return {
        "id": str(flag.id),
        "question_id": str(flag.question_id),
        "student_user_id": str(flag.student_user_id),
        "attempt_id": str(flag.attempt_id) if flag.attempt_id else None,
        "flag_type": flag.flag_type,
        "comment": flag.comment,
        "student_answer": flag.student_answer,
        "status": flag.status,
        "review_notes": flag.review_notes,
        "reviewed_by": str(flag.reviewed_by) if flag.reviewed_by else None,
        "reviewed_at": iso(flag.reviewed_at),
        "created_at": iso(flag.created_at),
    }


def _override_correct(attempt: Attempt) -> None:
    if attempt.is_correct and attempt.override_correct:
        return
    attempt.original_is_correct = attempt.is_correct
    attempt.is_correct = True
    attempt.override_correct = True
    attempt.override_at = utcnow()


@router.get("/reasons")
async def flag_reasons():
    return {"reasons": DEFAULT_FLAG_REASONS}


@router.get("")
async def list_flags(
    status: str | None = None,
    question_id: UUID | None = None,
    ctx: UserContext = Depends(require_context),
    db: AsyncSession = Depends(get_db),
):
    stmt = (
        select(QuestionFlag, Question, StudentProfile)
        .join(Question, Question.id == QuestionFlag.question_id)
        .outerjoin(
            StudentProfile,
            (StudentProfile.user_id == QuestionFlag.student_user_id)
            & (StudentProfile.workspace_id == QuestionFlag.workspace_id),
        )
        .where(QuestionFlag.workspace_id == ctx.workspace_id)
    )
    if not ctx.is_tutor:
        stmt = stmt.where(QuestionFlag.student_user_id == ctx.user_id)
    if status:
        stmt = stmt.where(QuestionFlag.status == status)
    if question_id is not None:
        stmt = stmt.where(QuestionFlag.question_id == question_id)
    rows = (await db.execute(stmt.order_by(QuestionFlag.created_at.desc()))).all()

    flags = []
    seen: set[UUID] = set()
    for flag, question, profile in rows:
        if flag.id in seen:
            continue
        seen.add(flag.id)
        data = serialize_flag(flag)
        data["question"] = {
            "id": str(question.id),
            "prompt_text": question.prompt_text,
            "prompt_latex": question.prompt_latex,
            "answer_type": question.answer_type,
            "correct_answer_json": question.correct_answer_json if ctx.is_tutor else None,
        }
        data["student"] = {
            "name": profile.name if profile else "Unknown",
            "email": profile.email if profile else None,
        }
        flags.append(data)
    return {"flags": flags}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_flag(
    body: FlagCreate,
    ctx: UserContext = Depends(require_context),
    db: AsyncSession = Depends(get_db),
):
    if body.flag_type not in _FLAG_TYPES:
        raise ValidationFailedError(f"Invalid flag type: {body.flag_type}", "flag_type")
    question = await get_in_workspace_or_404(
        db, Question, body.question_id, ctx.workspace_id, "Question",
    )

    existing = (await db.execute(
        select(QuestionFlag.id).where(
            QuestionFlag.question_id == question.id,
            QuestionFlag.student_user_id == ctx.user_id,
            QuestionFlag.flag_type == body.flag_type,
            QuestionFlag.status == FlagStatus.PENDING.value,
        )
    )).first()
    if existing:
        raise BusinessRuleError(
            "You already have a pending flag of this type on this question", "DUPLICATE_FLAG",
        )

    attempt = None
    if body.attempt_id is not None:
        attempt = await db.get(Attempt, body.attempt_id)
        if (
            attempt is None
            or attempt.workspace_id != ctx.workspace_id
            or attempt.student_user_id != ctx.user_id
        ):
            raise ResourceNotFoundError("Attempt", str(body.attempt_id))

    flag = QuestionFlag(
        workspace_id=ctx.workspace_id,
        question_id=question.id,
        student_user_id=ctx.user_id,
        attempt_id=body.attempt_id,
        flag_type=body.flag_type,
        comment=body.comment,
        student_answer=body.student_answer,
        status=FlagStatus.PENDING.value,
    )
    db.add(flag)

    overridden = False
    if body.flag_type == FlagType.CLAIM_CORRECT.value and attempt is not None:
        _override_correct(attempt)
        attempt.original_is_correct = False
        overridden = True

    await db.commit()
    logger.info(
        f"Question flagged: {body.flag_type}",
        extra={"workspace_id": str(ctx.workspace_id), "user_id": str(ctx.user_id)},
    )
    return {"flag": serialize_flag(flag), "attemptOverridden": overridden}


@router.get("/insights")
async def insights(
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    """Patterns over the last 30 days of flags, with an AI summary from 10 flags up."""
    return await flag_insights(db, ctx.workspace_id, ctx.user_id)


@router.post("/ai-review")
async def ai_review_flags(
    body: AIReviewRequest,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    return await review_flags(db, ctx.workspace_id, ctx.user_id, body.flag_ids)


@router.patch("/{flag_id}")
async def update_flag(
    flag_id: UUID,
    body: FlagUpdate,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    if body.status not in _FLAG_STATUSES:
        raise ValidationFailedError(f"Invalid flag status: {body.status}", "status")
    flag = await get_in_workspace_or_404(db, QuestionFlag, flag_id, ctx.workspace_id, "Flag")

    alternate_added = False
    if (
        body.status == FlagStatus.ACCEPTED.value
        and flag.flag_type == FlagType.CLAIM_CORRECT.value
        and body.add_as_alternate
        and flag.student_answer
    ):
        question = await db.get(Question, flag.question_id)
        if question is not None:
            answer = dict(question.correct_answer_json or {})
            alternates = list(answer.get("alternates") or [])
            if flag.student_answer not in alternates:
                alternates.append(flag.student_answer)
                answer["alternates"] = alternates
                question.correct_answer_json = answer
                question.updated_at = utcnow()
                alternate_added = True
        if flag.attempt_id:
            attempt = await db.get(Attempt, flag.attempt_id)
            if attempt is not None:
                _override_correct(attempt)

    flag.status = body.status
    if body.review_notes is not None:
        flag.review_notes = body.review_notes
    flag.reviewed_by = ctx.user_id
    flag.reviewed_at = utcnow()
    await db.commit()
    return {"flag": serialize_flag(flag), "alternateAdded": alternate_added}
