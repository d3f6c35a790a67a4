"""Analytics Routes — tutor dashboards: overview, topics, students, AI usage.

Invariants:
    - Every aggregate is scoped to the caller's workspace
    - Period-bound figures (attempts, activity, AI usage) cover the last `days` days;
      topic accuracy comes from the lifetime question counters
    - An unknown type is a 400
"""

import logging
from datetime import timedelta
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.api.dependencies import UserContext, require_tutor
from tutorassist.core.clock import iso, utcnow
from tutorassist.core.domain_types import AssignmentStatus, MemberRole, QuestionStatus
from tutorassist.core.errors import ValidationFailedError
from tutorassist.core.progress_stats import accuracy_percent
from tutorassist.infrastructure.database import get_db
from tutorassist.models.ai_usage import AIUsageLog
from tutorassist.models.assignment import Assignment
from tutorassist.models.attempt import Attempt
from tutorassist.models.question import Question
from tutorassist.models.student_profile import StudentProfile
from tutorassist.models.topic import Topic
from tutorassist.models.user import User
from tutorassist.models.workspace import WorkspaceMember

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/analytics", tags=["analytics"])

_correct_count = func.coalesce(func.sum(case((Attempt.is_correct.is_(True), 1), else_=0)), 0)


async def _overview(db: AsyncSession, workspace_id: UUID, since) -> dict:
    students = (await db.execute(
        select(func.count(StudentProfile.id)).where(StudentProfile.workspace_id == workspace_id)
    )).scalar_one()
    questions = (await db.execute(
        select(func.count(Question.id)).where(
            Question.workspace_id == workspace_id,
            Question.status == QuestionStatus.ACTIVE.value,
        )
    )).scalar_one()
    attempts, correct = (await db.execute(
        select(func.count(Attempt.id), _correct_count).where(
            Attempt.workspace_id == workspace_id, Attempt.created_at >= since,
        )
    )).one()
    assignments = (await db.execute(
        select(func.count(Assignment.id)).where(
            Assignment.workspace_id == workspace_id,
            Assignment.status == AssignmentStatus.ACTIVE.value,
        )
    )).scalar_one()
    return {
        "totalStudents": students,
        "activeQuestions": questions,
        "attemptsInPeriod": attempts,
        "activeAssignments": assignments,
        "accuracy": accuracy_percent(int(correct), attempts),
    }


async def _topics(db: AsyncSession, workspace_id: UUID) -> dict:
    rows = (await db.execute(
        select(
            Topic.id,
            Topic.name,
            func.count(Question.id),
            func.coalesce(func.sum(Question.times_attempted), 0),
            func.coalesce(func.sum(Question.times_correct), 0),
            func.avg(Question.difficulty),
        )
        .outerjoin(Question, Question.topic_id == Topic.id)
        .where(Topic.workspace_id == workspace_id)
        .group_by(Topic.id, Topic.name)
        .order_by(Topic.name)
    )).all()
    return {
        "topics": [
            {
                "topicId": str(topic_id),
                "topicName": name,
                "questionCount": count,
                "attempts": int(attempted),
                "accuracy": accuracy_percent(int(correct), int(attempted)),
                "avgDifficulty": round(float(avg), 1) if avg is not None else None,
            }
            for topic_id, name, count, attempted, correct, avg in rows
        ],
    }


async def _students(db: AsyncSession, workspace_id: UUID, since) -> dict:
    members = (await db.execute(
        select(User)
        .join(WorkspaceMember, WorkspaceMember.user_id == User.id)
        .where(
            WorkspaceMember.workspace_id == workspace_id,
            WorkspaceMember.role == MemberRole.STUDENT.value,
        )
    )).scalars().all()
    names = {
        user_id: name for user_id, name in (await db.execute(
            select(StudentProfile.user_id, StudentProfile.name).where(
                StudentProfile.workspace_id == workspace_id,
                StudentProfile.user_id.is_not(None),
            )
        )).all()
    }
    activity = {
        user_id: (total, int(correct), last) for user_id, total, correct, last in (await db.execute(
            select(
                Attempt.student_user_id,
                func.count(Attempt.id),
                _correct_count,
                func.max(Attempt.created_at),
            )
            .where(Attempt.workspace_id == workspace_id, Attempt.created_at >= since)
            .group_by(Attempt.student_user_id)
        )).all()
    }

    students = []
    for user in members:
        total, correct, last = activity.get(user.id, (0, 0, None))
        students.append({
            "userId": str(user.id),
            "name": names.get(user.id) or user.full_name or user.email,
            "email": user.email,
            "attempts": total,
            "accuracy": accuracy_percent(correct, total),
            "lastActivity": iso(last),
        })
    students.sort(key=lambda s: s["attempts"], reverse=True)
    return {"students": students}


async def _ai_usage(db: AsyncSession, workspace_id: UUID, since) -> dict:
    rows = (await db.execute(
        select(
            AIUsageLog.operation_type,
            func.count(AIUsageLog.id),
            func.coalesce(func.sum(AIUsageLog.tokens_total), 0),
            func.coalesce(func.sum(AIUsageLog.cost_usd), 0.0),
        )
        .where(AIUsageLog.workspace_id == workspace_id, AIUsageLog.created_at >= since)
        .group_by(AIUsageLog.operation_type)
    )).all()
    by_operation = {
        op: {"calls": calls, "tokens": int(tokens), "costUsd": round(float(cost), 6)}
        for op, calls, tokens, cost in rows
    }
    return {
        "totalCalls": sum(v["calls"] for v in by_operation.values()),
        "totalTokens": sum(v["tokens"] for v in by_operation.values()),
        "totalCostUsd": round(sum(v["costUsd"] for v in by_operation.values()), 6),
        "byOperation": by_operation,
    }


@router.get("")
async def analytics(
    analytics_type: str = Query("overview", alias="type"),
    days: int = Query(30, ge=1, le=365),
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    since = utcnow() - timedelta(days=days)
    if analytics_type == "overview":
        data = await _overview(db, ctx.workspace_id, since)
    elif analytics_type == "topics":
        data = await _topics(db, ctx.workspace_id)
    elif analytics_type == "students":
        data = await _students(db, ctx.workspace_id, since)
    elif analytics_type == "ai-usage":
        data = await _ai_usage(db, ctx.workspace_id, since)
    else:
        raise ValidationFailedError(f"Unknown analytics type: {analytics_type}", "type")
    return {"type": analytics_type, "days": days, **data}
