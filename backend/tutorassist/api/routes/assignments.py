"""Assignment Routes — ordered question sets for one student (or the whole class).

Invariants:
    - Students see only assignments assigned to them that are not drafts
    - completion = distinct questions attempted within the assignment
    - Items keep the order of question_ids in the create request
    - Moving to "completed" stamps completed_at once
    - /generate with students and topics saves one assignment per student;
      with a prompt it returns an unsaved plan, as does /refine
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.api.dependencies import UserContext, require_context, require_tutor
from tutorassist.api.lookups import get_in_workspace_or_404
from tutorassist.api.routes.questions import serialize_question
from tutorassist.core.clock import iso, utcnow
from tutorassist.core.domain_types import AssignmentStatus
from tutorassist.core.errors import ResourceNotFoundError
from tutorassist.infrastructure.database import get_db
from tutorassist.models.assignment import Assignment, AssignmentItem
from tutorassist.models.attempt import Attempt
from tutorassist.models.question import Question
from tutorassist.models.student_profile import StudentProfile
from tutorassist.schemas.practice import (
    AssignmentCreate, AssignmentGenerateRequest, AssignmentRefineRequest, AssignmentUpdate,
)
from tutorassist.services import assignment_builder

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/assignments", tags=["assignments"])


def serialize_assignment(assignment: Assignment) -> dict:
    return {
        "id": str(assignment.id),
        "title": assignment.title,
        "description": assignment.description,
        "student_profile_id": (
            str(assignment.student_profile_id) if assignment.student_profile_id else None
        ),
        "assigned_student_user_id": (
            str(assignment.assigned_student_user_id)
            if assignment.assigned_student_user_id else None
        ),
        "settings": assignment.settings or {},
        "status": assignment.status,
        "due_at": iso(assignment.due_at),
        "completed_at": iso(assignment.completed_at),
        "created_at": iso(assignment.created_at),
    }


async def _visible_assignment_or_404(
    db: AsyncSession, ctx: UserContext, assignment_id: UUID,
) -> Assignment:
    assignment = await get_in_workspace_or_404(
        db, Assignment, assignment_id, ctx.workspace_id, "Assignment",
    )
    if not ctx.is_tutor and (
        assignment.assigned_student_user_id != ctx.user_id
        or assignment.status == AssignmentStatus.DRAFT.value
    ):
        raise ResourceNotFoundError("Assignment", str(assignment_id))
    return assignment


async def _completion_counts(
    db: AsyncSession, assignment_ids: list[UUID], student_user_id: UUID | None,
) -> dict[UUID, int]:
    if not assignment_ids:
        return {}
    stmt = (
        select(Attempt.assignment_id, func.count(func.distinct(Attempt.question_id)))
        .where(Attempt.assignment_id.in_(assignment_ids))
        .group_by(Attempt.assignment_id)
    )
    if student_user_id is not None:
        stmt = stmt.where(Attempt.student_user_id == student_user_id)
    return {aid: count for aid, count in (await db.execute(stmt)).all()}


@router.get("")
async def list_assignments(
    status: str | None = None,
    student_profile_id: UUID | None = None,
    ctx: UserContext = Depends(require_context),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(Assignment).where(Assignment.workspace_id == ctx.workspace_id)
    if not ctx.is_tutor:
        stmt = stmt.where(
            Assignment.assigned_student_user_id == ctx.user_id,
            Assignment.status != AssignmentStatus.DRAFT.value,
        )
    if status:
        stmt = stmt.where(Assignment.status == status)
    if student_profile_id is not None:
        stmt = stmt.where(Assignment.student_profile_id == student_profile_id)
    assignments = (await db.execute(
        stmt.order_by(Assignment.created_at.desc())
    )).scalars().all()

    completion = await _completion_counts(
        db, [a.id for a in assignments], None if ctx.is_tutor else ctx.user_id,
    )
    rows = []
    for assignment in assignments:
        data = serialize_assignment(assignment)
        data["itemCount"] = len(assignment.items)
        data["completedCount"] = completion.get(assignment.id, 0)
        rows.append(data)
    return {"assignments": rows}


@router.get("/{assignment_id}")
async def get_assignment(
    assignment_id: UUID,
    ctx: UserContext = Depends(require_context),
    db: AsyncSession = Depends(get_db),
):
    assignment = await _visible_assignment_or_404(db, ctx, assignment_id)
    question_ids = [item.question_id for item in assignment.items]
    questions = {
        q.id: q for q in (await db.execute(
            select(Question).where(Question.id.in_(question_ids))
        )).scalars().all()
    } if question_ids else {}

    items = []
    for item in assignment.items:
        question = questions.get(item.question_id)
        items.append({
            "id": str(item.id),
            "question_id": str(item.question_id),
            "order_index": item.order_index,
            "points": item.points,
            "question": (
                serialize_question(question, include_answer=ctx.is_tutor) if question else None
            ),
        })
    data = serialize_assignment(assignment)
    data["items"] = items
    return {"assignment": data}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_assignment(
    body: AssignmentCreate,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    assigned_user_id = None
    if body.student_profile_id is not None:
        profile = await get_in_workspace_or_404(
            db, StudentProfile, body.student_profile_id, ctx.workspace_id, "Student",
        )
        assigned_user_id = profile.user_id

    if body.question_ids:
        found = set((await db.execute(
            select(Question.id).where(
                Question.workspace_id == ctx.workspace_id,
                Question.id.in_(body.question_ids),
            )
        )).scalars().all())
        missing = [qid for qid in body.question_ids if qid not in found]
        if missing:
            raise ResourceNotFoundError("Question", str(missing[0]))

    assignment = Assignment(
        workspace_id=ctx.workspace_id,
        created_by=ctx.user_id,
        student_profile_id=body.student_profile_id,
        assigned_student_user_id=assigned_user_id,
        title=body.title,
        description=body.description,
        settings=body.settings,
        status=body.status.value,
        due_at=body.due_at,
        items=[
            AssignmentItem(question_id=qid, order_index=index)
            for index, qid in enumerate(body.question_ids)
        ],
    )
    db.add(assignment)
    await db.commit()
    logger.info(
        f"Assignment created with {len(body.question_ids)} questions",
        extra={"workspace_id": str(ctx.workspace_id)},
    )
    data = serialize_assignment(assignment)
    data["itemCount"] = len(body.question_ids)
    return {"assignment": data}


@router.post("/generate")
async def generate_assignment(
    body: AssignmentGenerateRequest,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    if (body.student_ids or body.student_id) and body.topic_ids:
        return await assignment_builder.create_for_students(
            db, ctx.workspace_id, ctx.user_id, body,
        )
    return await assignment_builder.generate_plan(db, ctx.workspace_id, ctx.user_id, body)


@router.post("/refine")
async def refine_assignment(
    body: AssignmentRefineRequest,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    return await assignment_builder.refine_plan(db, ctx.workspace_id, ctx.user_id, body)


@router.patch("/{assignment_id}")
async def update_assignment(
    assignment_id: UUID,
    body: AssignmentUpdate,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    assignment = await get_in_workspace_or_404(
        db, Assignment, assignment_id, ctx.workspace_id, "Assignment",
    )
    changes = body.model_dump(exclude_unset=True)
    if changes.get("title") is not None:
        assignment.title = changes["title"].strip()
    if "description" in changes:
        assignment.description = changes["description"]
    if "due_at" in changes:
        assignment.due_at = changes["due_at"]
    if changes.get("settings") is not None:
        assignment.settings = changes["settings"]
    if body.status is not None:
        assignment.status = body.status.value
        if body.status == AssignmentStatus.COMPLETED and assignment.completed_at is None:
            assignment.completed_at = utcnow()
    await db.commit()
    return {"assignment": serialize_assignment(assignment)}


@router.delete("/{assignment_id}")
async def delete_assignment(
    assignment_id: UUID,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    assignment = await get_in_workspace_or_404(
        db, Assignment, assignment_id, ctx.workspace_id, "Assignment",
    )
    await db.execute(
        update(Attempt).where(Attempt.assignment_id == assignment.id).values(assignment_id=None)
    )
    await db.delete(assignment)
    await db.commit()
    return {"success": True}
