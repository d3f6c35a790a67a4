"""Job Routes — cron-triggered processing and workspace-scoped job status.

Invariants:
    - /process requires Authorization: Bearer {CRON_SECRET}; an unset secret
      rejects every caller
    - Job status is visible only to members of the job's workspace
"""

import logging
import secrets
from uuid import UUID

from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.api.dependencies import UserContext, require_context
from tutorassist.api.lookups import get_in_workspace_or_404
from tutorassist.config import get_settings
from tutorassist.core.clock import iso
from tutorassist.core.errors import AuthenticationError
from tutorassist.core.job_policy import DEFAULT_BATCH_SIZE
from tutorassist.infrastructure.database import get_db
from tutorassist.models.job import Job
from tutorassist.services.job_queue import count_pending
from tutorassist.services.job_runner import process_jobs

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/jobs", tags=["jobs"])


def serialize_job(job: Job) -> dict:
    return {
        "id": str(job.id),
        "type": job.type,
        "status": job.status,
        "payload": job.payload_json or {},
        "result": job.result_json,
        "error": job.error_text,
        "attempts": job.attempts,
        "max_attempts": job.max_attempts,
        "run_after": iso(job.run_after),
        "created_at": iso(job.created_at),
        "updated_at": iso(job.updated_at),
    }


def require_cron_secret(authorization: str | None = Header(None)) -> None:
    expected = get_settings().cron_secret
    if not expected or not authorization:
        raise AuthenticationError("Missing cron credentials")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(token.encode(), expected.encode()):
        raise AuthenticationError("Invalid cron credentials")


@router.post("/process", dependencies=[Depends(require_cron_secret)])
async def process(db: AsyncSession = Depends(get_db)):
    processed = await process_jobs(DEFAULT_BATCH_SIZE)
    remaining = await count_pending(db)
    logger.info(f"Cron run processed {processed} jobs, {remaining} pending")
    return {"processed": processed, "remaining": remaining}


@router.get("/{job_id}")
async def get_job_status(
    job_id: UUID,
    ctx: UserContext = Depends(require_context),
    db: AsyncSession = Depends(get_db),
):
    job = await get_in_workspace_or_404(db, Job, job_id, ctx.workspace_id, "Job")
    return {"job": serialize_job(job)}
