"""Review Handlers — DAILY_SPACED_REP_REFRESH: due-item counts per student."""

import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.core.clock import utcnow
from tutorassist.models.attempt import SpacedRepetition
from tutorassist.models.job import Job

logger = logging.getLogger(__name__)


class ReviewHandlers:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def daily_refresh(self, job: Job) -> dict:
        rows = (await self.db.execute(
            select(SpacedRepetition.student_user_id, func.count(SpacedRepetition.id))
            .where(
                SpacedRepetition.workspace_id == job.workspace_id,
                SpacedRepetition.next_due <= utcnow(),
            )
            .group_by(SpacedRepetition.student_user_id)
        )).all()
        total = sum(count for _, count in rows)
        logger.info(
            f"{len(rows)} students have {total} review items due",
            extra={"job_id": str(job.id), "workspace_id": str(job.workspace_id)},
        )
        return {"studentsWithDueItems": len(rows), "totalDueItems": total}
