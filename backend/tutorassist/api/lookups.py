"""Workspace-scoped lookups shared by route modules.

Invariants:
    - A row outside the caller's workspace is indistinguishable from a missing
      row: both raise ResourceNotFoundError (404)
"""

from typing import TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.core.errors import ResourceNotFoundError

T = TypeVar("T")


async def get_in_workspace_or_404(
    db: AsyncSession, model: type[T], row_id: UUID, workspace_id: UUID, label: str,
) -> T:
    row = await db.get(model, row_id)
    if row is None or row.workspace_id != workspace_id:
        raise ResourceNotFoundError(label, str(row_id))
    return row
