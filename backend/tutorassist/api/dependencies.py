"""Request Dependencies — caller identity, workspace context, and role gates.

Invariants:
    - require_user raises AuthenticationError (401) for missing, invalid, or
      expired tokens and for tokens whose user no longer exists
    - A user's workspace is their earliest membership (created_at ascending)
    - require_context raises NoWorkspaceError (403) when there is no membership
    - require_tutor admits tutor and platform_owner; require_student admits all roles

Design Decisions:
    - Role gates are chained Depends: each gate receives the previous context,
      so a route declares only the strongest gate it needs
    - get_optional_user swallows only AuthenticationError, so /auth/status can
      report "signed out" without ever returning 401
"""

from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.core.domain_types import MemberRole
from tutorassist.core.errors import (
    AuthenticationError, NoWorkspaceError, PermissionDeniedError,
)
from tutorassist.infrastructure.database import get_db
from tutorassist.infrastructure.security import decode_access_token
from tutorassist.models.user import User
from tutorassist.models.workspace import WorkspaceMember

_bearer = HTTPBearer(auto_error=False)

_TUTOR_ROLES = {MemberRole.TUTOR.value, MemberRole.PLATFORM_OWNER.value}
_STUDENT_ROLES = {
    MemberRole.STUDENT.value, MemberRole.TUTOR.value, MemberRole.PLATFORM_OWNER.value,
}


@dataclass
class UserContext:
    user: User
    workspace_id: UUID | None = None
    role: str | None = None

    @property
    def user_id(self) -> UUID:
        return self.user.id

    @property
    def is_platform_owner(self) -> bool:
        return self.role == MemberRole.PLATFORM_OWNER.value

    @property
    def is_tutor(self) -> bool:
        return self.role in _TUTOR_ROLES

    @property
    def is_student(self) -> bool:
        return self.role == MemberRole.STUDENT.value


async def _user_from_token(token: str, db: AsyncSession) -> User:
    payload = decode_access_token(token)
    try:
        user_id = UUID(payload["sub"])
    except ValueError:
        raise AuthenticationError("Invalid token subject")
    user = await db.get(User, user_id)
    if not user:
        raise AuthenticationError("User not found")
    return user


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    if not credentials:
        return None
    try:
        return await _user_from_token(credentials.credentials, db)
    except AuthenticationError:
        return None


async def require_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    db: AsyncSession = Depends(get_db),
) -> User:
    if not credentials:
        raise AuthenticationError()
    return await _user_from_token(credentials.credentials, db)


async def load_user_context(db: AsyncSession, user: User) -> UserContext:
    result = await db.execute(
        select(WorkspaceMember)
        .where(WorkspaceMember.user_id == user.id)
        .order_by(WorkspaceMember.created_at.asc())
        .limit(1),
    )
    membership = result.scalar_one_or_none()
    if not membership:
        return UserContext(user=user)
    return UserContext(
        user=user, workspace_id=membership.workspace_id, role=membership.role,
    )


async def get_user_context(
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
) -> UserContext:
    return await load_user_context(db, user)


async def require_context(
    ctx: UserContext = Depends(get_user_context),
) -> UserContext:
    if ctx.workspace_id is None:
        raise NoWorkspaceError()
    return ctx


async def require_tutor(
    ctx: UserContext = Depends(require_context),
) -> UserContext:
    if ctx.role not in _TUTOR_ROLES:
        raise PermissionDeniedError("Only tutors can perform this action")
    return ctx


async def require_student(
    ctx: UserContext = Depends(require_context),
) -> UserContext:
    if ctx.role not in _STUDENT_ROLES:
        raise PermissionDeniedError()
    return ctx
