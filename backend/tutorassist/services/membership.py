"""Membership — invite issuing and redemption shared by the workspace and invite routes.

Invariants:
    - An invite is redeemable only while unused and unexpired
    - Redeeming creates a student membership, links the invite's student profile
      (when it names one) and stamps used_at/used_by, all in one commit
    - A user already in the invite's workspace cannot redeem it
"""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.core.clock import as_utc, utcnow
from tutorassist.core.domain_types import MemberRole
from tutorassist.core.errors import BusinessRuleError
from tutorassist.core.workspace_rules import generate_invite_token, invite_expiry
from tutorassist.models.invite import WorkspaceInvite
from tutorassist.models.student_profile import StudentProfile
from tutorassist.models.user import User
from tutorassist.models.workspace import WorkspaceMember

logger = logging.getLogger(__name__)


async def create_invite(
    db: AsyncSession,
    workspace_id: UUID,
    created_by: UUID,
    student_profile_id: UUID | None = None,
    email: str | None = None,
    expires_in_days: int | None = None,
) -> WorkspaceInvite:
    """Add an invite to the session (the caller commits)."""
    invite = WorkspaceInvite(
        workspace_id=workspace_id,
        token=generate_invite_token(),
        student_profile_id=student_profile_id,
        email=email.lower() if email else None,
        expires_at=invite_expiry(utcnow(), student_profile_id is not None, expires_in_days),
        created_by=created_by,
    )
    db.add(invite)
    return invite


async def find_invite(db: AsyncSession, token: str) -> WorkspaceInvite | None:
    result = await db.execute(select(WorkspaceInvite).where(WorkspaceInvite.token == token))
    return result.scalar_one_or_none()


def is_expired(invite: WorkspaceInvite, now: datetime | None = None) -> bool:
    return as_utc(invite.expires_at) < (now or utcnow())


async def load_redeemable_invite(db: AsyncSession, token: str) -> WorkspaceInvite:
    invite = await find_invite(db, token)
    if invite is None or invite.used_at is not None or is_expired(invite):
        raise BusinessRuleError("Invalid or expired invite", "INVALID_INVITE")
    return invite


async def get_membership(
    db: AsyncSession, workspace_id: UUID, user_id: UUID,
) -> WorkspaceMember | None:
    result = await db.execute(
        select(WorkspaceMember).where(
            WorkspaceMember.workspace_id == workspace_id,
            WorkspaceMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def redeem_invite(db: AsyncSession, invite: WorkspaceInvite, user: User) -> WorkspaceMember:
    if await get_membership(db, invite.workspace_id, user.id):
        raise BusinessRuleError("Already a member of this workspace", "ALREADY_MEMBER")

    member = WorkspaceMember(
        workspace_id=invite.workspace_id, user_id=user.id, role=MemberRole.STUDENT.value,
    )
    db.add(member)

    if invite.student_profile_id:
        profile = await db.get(StudentProfile, invite.student_profile_id)
        if profile is not None:
            profile.user_id = user.id

    invite.used_at = utcnow()
    invite.used_by = user.id
    await db.commit()
    logger.info(
        "Invite redeemed",
        extra={"workspace_id": str(invite.workspace_id), "user_id": str(user.id)},
    )
    return member
