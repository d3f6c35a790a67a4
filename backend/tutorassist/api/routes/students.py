"""Student Routes — tutor-managed profiles and the student's own profile.

Invariants:
    - Every profile query is scoped to the caller's workspace
    - Creating a profile always issues a 7-day invite bound to it
    - Deleting a profile removes its unused invites and the linked student's
      membership in this workspace (the user account itself survives)
    - /students/me exposes only name, age, school, grade_current for writing
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy import select, func, delete, case
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.api.dependencies import UserContext, require_student, require_tutor
from tutorassist.api.lookups import get_in_workspace_or_404
from tutorassist.config import get_settings
from tutorassist.core.clock import iso, utcnow
from tutorassist.core.domain_types import MemberRole
from tutorassist.core.errors import ResourceNotFoundError
from tutorassist.core.progress_stats import accuracy_percent
from tutorassist.core.workspace_rules import invite_url
from tutorassist.infrastructure.database import get_db
from tutorassist.models.attempt import Attempt
from tutorassist.models.invite import WorkspaceInvite
from tutorassist.models.student_profile import StudentProfile
from tutorassist.models.workspace import WorkspaceMember
from tutorassist.schemas.student import StudentCreate, StudentSelfUpdate, StudentUpdate
from tutorassist.services import membership

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/students", tags=["students"])


def serialize_student(profile: StudentProfile, include_private: bool = True) -> dict:
    data = {
        "id": str(profile.id),
        "user_id": str(profile.user_id) if profile.user_id else None,
        "name": profile.name,
        "email": profile.email,
        "age": profile.age,
        "school": profile.school,
        "grade_current": profile.grade_current,
        "tags": profile.tags or [],
        "created_at": iso(profile.created_at),
    }
    if include_private:
        data["private_notes"] = profile.private_notes
    return data


async def _own_profile_or_404(db: AsyncSession, ctx: UserContext) -> StudentProfile:
    result = await db.execute(
        select(StudentProfile).where(
            StudentProfile.workspace_id == ctx.workspace_id,
            StudentProfile.user_id == ctx.user_id,
        )
    )
    profile = result.scalars().first()
    if not profile:
        raise ResourceNotFoundError("Student profile", str(ctx.user_id))
    return profile


# ─── Student self-service (declared before /{student_id}) ──────

@router.get("/me")
async def get_my_profile(
    ctx: UserContext = Depends(require_student),
    db: AsyncSession = Depends(get_db),
):
    profile = await _own_profile_or_404(db, ctx)
    return {"student": serialize_student(profile, include_private=False)}


@router.patch("/me")
async def update_my_profile(
    body: StudentSelfUpdate,
    ctx: UserContext = Depends(require_student),
    db: AsyncSession = Depends(get_db),
):
    profile = await _own_profile_or_404(db, ctx)
    for field, value in body.model_dump(exclude_unset=True).items():
        if field == "name" and value is None:
            continue
        setattr(profile, field, value)
    await db.commit()
    return {"student": serialize_student(profile, include_private=False)}


# ─── Tutor management ────────────────────────────────────────────

@router.get("")
async def list_students(
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    profiles = (await db.execute(
        select(StudentProfile)
        .where(StudentProfile.workspace_id == ctx.workspace_id)
        .order_by(StudentProfile.name)
    )).scalars().all()

    pending = (await db.execute(
        select(WorkspaceInvite).where(
            WorkspaceInvite.workspace_id == ctx.workspace_id,
            WorkspaceInvite.student_profile_id.is_not(None),
            WorkspaceInvite.used_at.is_(None),
        ).order_by(WorkspaceInvite.created_at.desc())
    )).scalars().all()
    now = utcnow()
    invite_by_profile: dict[UUID, WorkspaceInvite] = {}
    for invite in pending:
        if not membership.is_expired(invite, now):
            invite_by_profile.setdefault(invite.student_profile_id, invite)

    students = []
    for profile in profiles:
        data = serialize_student(profile)
        invite = invite_by_profile.get(profile.id) if profile.user_id is None else None
        data["inviteToken"] = invite.token if invite else None
        students.append(data)
    return {"students": students}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_student(
    body: StudentCreate,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    profile = StudentProfile(
        workspace_id=ctx.workspace_id,
        name=body.name,
        email=body.email.lower() if body.email else None,
        age=body.age,
        school=body.school,
        grade_current=body.grade_current,
        private_notes=body.private_notes,
        tags=body.tags,
    )
    db.add(profile)
    await db.flush()
    invite = await membership.create_invite(
        db, ctx.workspace_id, ctx.user_id,
        student_profile_id=profile.id, email=profile.email,
    )
    await db.commit()
    logger.info(
        "Student profile created",
        extra={"workspace_id": str(ctx.workspace_id), "user_id": str(ctx.user_id)},
    )
    return {
        "student": serialize_student(profile),
        "inviteToken": invite.token,
        "inviteUrl": invite_url(get_settings().app_url, invite.token),
    }


@router.get("/{student_id}")
async def get_student(
    student_id: UUID,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    profile = await get_in_workspace_or_404(
        db, StudentProfile, student_id, ctx.workspace_id, "Student",
    )
    total = correct = 0
    if profile.user_id:
        total, correct = (await db.execute(
            select(
                func.count(Attempt.id),
                func.coalesce(func.sum(case((Attempt.is_correct.is_(True), 1), else_=0)), 0),
            ).where(
                Attempt.workspace_id == ctx.workspace_id,
                Attempt.student_user_id == profile.user_id,
            )
        )).one()
    return {
        "student": serialize_student(profile),
        "stats": {
            "totalAttempts": total,
            "correctAttempts": int(correct),
            "accuracy": accuracy_percent(int(correct), total),
        },
    }


@router.patch("/{student_id}")
async def update_student(
    student_id: UUID,
    body: StudentUpdate,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    profile = await get_in_workspace_or_404(
        db, StudentProfile, student_id, ctx.workspace_id, "Student",
    )
    for field, value in body.model_dump(exclude_unset=True).items():
        if field == "name" and value is None:
            continue
        if field == "email" and value:
            value = value.lower()
        setattr(profile, field, value)
    await db.commit()
    return {"student": serialize_student(profile)}


@router.delete("/{student_id}")
async def delete_student(
    student_id: UUID,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    profile = await get_in_workspace_or_404(
        db, StudentProfile, student_id, ctx.workspace_id, "Student",
    )
    await db.execute(
        delete(WorkspaceInvite).where(
            WorkspaceInvite.student_profile_id == profile.id,
            WorkspaceInvite.used_at.is_(None),
        )
    )
    if profile.user_id:
        await db.execute(
            delete(WorkspaceMember).where(
                WorkspaceMember.workspace_id == ctx.workspace_id,
                WorkspaceMember.user_id == profile.user_id,
                WorkspaceMember.role == MemberRole.STUDENT.value,
            )
        )
    await db.delete(profile)
    await db.commit()
    logger.info("Student profile deleted", extra={"workspace_id": str(ctx.workspace_id)})
    return {"success": True}
