"""Workspace Routes — tenant creation, membership check, join, members, settings, invites.

Invariants:
    - A user belongs to at most one workspace through this API (create/join refuse otherwise)
    - The creator becomes the workspace's tutor
    - Settings patches merge over stored settings; unspecified keys survive
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.api.dependencies import (
    UserContext, get_user_context, require_context, require_tutor, require_user,
)
from tutorassist.api.lookups import get_in_workspace_or_404
from tutorassist.config import get_settings
from tutorassist.core.clock import iso
from tutorassist.core.domain_types import MemberRole
from tutorassist.core.errors import BusinessRuleError, ResourceNotFoundError
from tutorassist.core.workspace_rules import (
    default_settings, invite_url, merge_settings, workspace_slug,
)
from tutorassist.infrastructure.database import get_db
from tutorassist.models.student_profile import StudentProfile
from tutorassist.models.user import User
from tutorassist.models.workspace import Workspace, WorkspaceMember
from tutorassist.schemas.workspace import (
    InviteCreate, WorkspaceCreate, WorkspaceJoin, WorkspaceSettingsUpdate,
)
from tutorassist.services import membership

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/workspaces", tags=["workspaces"])


def serialize_workspace(workspace: Workspace) -> dict:
    return {
        "id": str(workspace.id),
        "name": workspace.name,
        "slug": workspace.slug,
        "settings": workspace.settings or {},
        "created_at": iso(workspace.created_at),
    }


async def get_workspace_or_404(db: AsyncSession, ctx: UserContext) -> Workspace:
    workspace = await db.get(Workspace, ctx.workspace_id)
    if not workspace:
        raise ResourceNotFoundError("Workspace", str(ctx.workspace_id))
    return workspace


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_workspace(
    body: WorkspaceCreate,
    ctx: UserContext = Depends(get_user_context),
    db: AsyncSession = Depends(get_db),
):
    if ctx.workspace_id is not None:
        raise BusinessRuleError("User already belongs to a workspace", "ALREADY_IN_WORKSPACE")

    workspace = Workspace(
        name=body.name, slug=workspace_slug(body.name), settings=default_settings(),
    )
    db.add(workspace)
    await db.flush()
    db.add(WorkspaceMember(
        workspace_id=workspace.id, user_id=ctx.user_id, role=MemberRole.TUTOR.value,
    ))
    await db.commit()
    logger.info(
        f"Workspace created: {workspace.slug}",
        extra={"workspace_id": str(workspace.id), "user_id": str(ctx.user_id)},
    )
    return {"workspace": serialize_workspace(workspace), "role": MemberRole.TUTOR.value}


@router.get("/check")
async def check_workspace(ctx: UserContext = Depends(get_user_context)):
    return {
        "hasWorkspace": ctx.workspace_id is not None,
        "role": ctx.role,
        "workspaceId": str(ctx.workspace_id) if ctx.workspace_id else None,
    }


@router.post("/join")
async def join_workspace(
    body: WorkspaceJoin,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    invite = await membership.load_redeemable_invite(db, body.token)
    member = await membership.redeem_invite(db, invite, user)
    return {
        "success": True,
        "workspaceId": str(member.workspace_id),
        "role": member.role,
    }


@router.get("/members")
async def list_members(
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    rows = (await db.execute(
        select(WorkspaceMember, User)
        .join(User, User.id == WorkspaceMember.user_id)
        .where(WorkspaceMember.workspace_id == ctx.workspace_id)
        .order_by(WorkspaceMember.created_at)
    )).all()
    return {
        "members": [
            {
                "id": str(m.id),
                "user_id": str(u.id),
                "email": u.email,
                "full_name": u.full_name,
                "role": m.role,
                "created_at": iso(m.created_at),
            }
            for m, u in rows
        ],
    }


@router.get("/settings")
async def get_workspace_settings(
    ctx: UserContext = Depends(require_context),
    db: AsyncSession = Depends(get_db),
):
    workspace = await get_workspace_or_404(db, ctx)
    return {
        "name": workspace.name,
        "slug": workspace.slug,
        "settings": workspace.settings or {},
    }


@router.patch("/settings")
async def update_workspace_settings(
    body: WorkspaceSettingsUpdate,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    workspace = await get_workspace_or_404(db, ctx)
    if body.name is not None:
        workspace.name = body.name.strip()
    if body.settings is not None:
        workspace.settings = merge_settings(workspace.settings, body.settings)
    await db.commit()
    return {"workspace": serialize_workspace(workspace)}


@router.post("/invites", status_code=status.HTTP_201_CREATED)
async def create_workspace_invite(
    body: InviteCreate,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    email = body.email
    if body.student_profile_id:
        profile = await get_in_workspace_or_404(
            db, StudentProfile, body.student_profile_id, ctx.workspace_id, "Student",
        )
        email = email or profile.email

    invite = await membership.create_invite(
        db, ctx.workspace_id, ctx.user_id,
        student_profile_id=body.student_profile_id,
        email=email,
        expires_in_days=body.expires_in_days,
    )
    await db.commit()
    return {
        "token": invite.token,
        "invite_url": invite_url(get_settings().app_url, invite.token),
        "expires_at": iso(invite.expires_at),
    }
