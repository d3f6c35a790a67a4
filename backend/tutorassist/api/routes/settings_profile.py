"""Profile settings — the signed-in user's display name."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.api.dependencies import require_user
from tutorassist.api.routes.auth import serialize_user
from tutorassist.infrastructure.database import get_db
from tutorassist.models.user import User
from tutorassist.schemas.auth import ProfileUpdate

router = APIRouter(prefix="/api/v1/settings/profile", tags=["settings"])


@router.patch("")
async def update_profile(
    body: ProfileUpdate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    user.full_name = body.full_name
    await db.commit()
    return {"success": True, "user": serialize_user(user)}
