"""Invite Routes — public invite preview and one-step account creation + join.

Invariants:
    - GET never mutates; unknown tokens are 404, expired/used ones are reported, not hidden
    - accept creates the user, membership and profile link in one commit, or nothing
    - An email that already has an account gets 409 with existingAccount=true
    - send is tutor-only, mails only redeemable invites of the tutor's workspace and
      is 503 when SMTP is not configured
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.api.dependencies import UserContext, require_tutor
from tutorassist.api.routes.auth import check_password_length, find_user_by_email, serialize_user
from tutorassist.core.clock import iso
from tutorassist.core.errors import (
    BusinessRuleError, ConflictError, ResourceNotFoundError, ServiceNotConfiguredError,
)
from tutorassist.infrastructure.database import get_db
from tutorassist.infrastructure.mailer import Mailer, get_mailer
from tutorassist.infrastructure.security import create_access_token, hash_password
from tutorassist.models.student_profile import StudentProfile
from tutorassist.models.user import User
from tutorassist.models.workspace import Workspace
from tutorassist.schemas.auth import InviteAcceptRequest, InviteSendRequest
from tutorassist.services import membership
from tutorassist.services.invite_email import send_invite_email

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/invites", tags=["invites"])


@router.post("/send")
async def send_invite(
    body: InviteSendRequest,
    ctx: UserContext = Depends(require_tutor),
    mailer: Mailer = Depends(get_mailer),
    db: AsyncSession = Depends(get_db),
):
    if not mailer.is_configured():
        raise ServiceNotConfiguredError("Email")
    await send_invite_email(
        db, mailer, ctx.workspace_id, ctx.user, body.token, body.email, body.student_name,
    )
    return {"success": True}


@router.get("/{token}")
async def get_invite(token: str, db: AsyncSession = Depends(get_db)):
    invite = await membership.find_invite(db, token)
    if invite is None:
        raise ResourceNotFoundError("Invite", token)

    workspace = await db.get(Workspace, invite.workspace_id)
    profile = (
        await db.get(StudentProfile, invite.student_profile_id)
        if invite.student_profile_id else None
    )
    return {
        "workspaceName": workspace.name if workspace else None,
        "studentName": profile.name if profile else None,
        "expectedEmail": invite.email or (profile.email if profile else None),
        "expiresAt": iso(invite.expires_at),
        "isExpired": membership.is_expired(invite),
        "isUsed": invite.used_at is not None,
        "isAlreadyClaimed": bool(profile and profile.user_id),
    }


@router.post("/accept", status_code=status.HTTP_201_CREATED)
async def accept_invite(body: InviteAcceptRequest, db: AsyncSession = Depends(get_db)):
    check_password_length(body.password)
    invite = await membership.load_redeemable_invite(db, body.token)

    profile = (
        await db.get(StudentProfile, invite.student_profile_id)
        if invite.student_profile_id else None
    )
    if profile is not None and profile.user_id is not None:
        raise BusinessRuleError(
            "This student profile has already been claimed", "PROFILE_ALREADY_CLAIMED",
        )

    expected_email = invite.email or (profile.email if profile else None)
    if expected_email and expected_email.lower() != body.email:
        raise BusinessRuleError(
            "Email does not match the invited address", "EMAIL_MISMATCH",
        )

    if await find_user_by_email(db, body.email):
        raise ConflictError(
            "An account with this email already exists. Sign in and join with the invite.",
            extra={"existingAccount": True},
        )

    user = User(
        email=body.email,
        password_hash=hash_password(body.password),
        full_name=body.full_name or (profile.name if profile else None),
    )
    db.add(user)
    await db.flush()
    member = await membership.redeem_invite(db, invite, user)
    logger.info(
        "Invite accepted with new account",
        extra={"workspace_id": str(member.workspace_id), "user_id": str(user.id)},
    )
    return {
        "access_token": create_access_token(user.id, user.email),
        "token_type": "bearer",
        "user": serialize_user(user),
        "workspaceId": str(member.workspace_id),
        "role": member.role,
    }
