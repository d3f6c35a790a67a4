"""Google connection settings — connection status and disconnect for the signed-in user."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.api.dependencies import require_user
from tutorassist.core.clock import iso
from tutorassist.infrastructure.database import get_db
from tutorassist.models.user import User
from tutorassist.services import google_connection

router = APIRouter(prefix="/api/v1/settings/google", tags=["settings"])


@router.get("")
async def google_status(
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    connection = await google_connection.get_connection(db, user.id)
    if connection is None:
        return {"connected": False}
    return {
        "connected": True,
        "email": connection.provider_email,
        "expiresAt": iso(connection.expires_at),
    }


@router.delete("")
async def disconnect_google(
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    await google_connection.remove_connection(db, user.id)
    return {"success": True}
