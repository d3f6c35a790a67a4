"""Job Queue — enqueue, claim, complete and fail rows of the jobs table.

Invariants:
    - A job is claimable when pending, or processing with a lock older than
      LOCK_TIMEOUT, AND run_after <= now AND attempts < max_attempts
    - Claim order: priority DESC, created_at ASC
    - complete_job / fail_job always clear locked_at + locked_by
    - batch_pending jobs are never claimed; PROCESS_BATCH_RESULT finishes them
    - fail_job increments attempts; retried jobs back off 2^attempts seconds

Design Decisions:
    - FOR UPDATE SKIP LOCKED only on Postgres: concurrent cron invocations never
      claim the same row; SQLite (tests) has a single writer anyway
    - Every mutating call commits: the queue's bookkeeping is independent of any
      request transaction (ADR: jobs outlive requests)
"""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select, func, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.core.clock import utcnow
from tutorassist.core.domain_types import JobStatus, JobType
from tutorassist.core.errors import ResourceNotFoundError
from tutorassist.core.job_policy import (
    DEFAULT_BATCH_SIZE, next_run_after, should_retry, stale_lock_cutoff, worker_id,
)
from tutorassist.models.job import Job

logger = logging.getLogger(__name__)


async def add_job(
    db: AsyncSession,
    workspace_id: UUID,
    job_type: JobType | str,
    payload: dict[str, Any],
    user_id: UUID | None = None,
    priority: int = 0,
    run_after: datetime | None = None,
) -> Job:
    """Stage a pending job in the caller's transaction (flush, no commit).

    Used by job handlers that schedule follow-up work: the new row lands
    together with the handler's other writes when the runner completes the job.
    """
    job = Job(
        workspace_id=workspace_id,
        created_by_user_id=user_id,
        type=JobType(job_type).value,
        status=JobStatus.PENDING.value,
        priority=priority,
        payload_json=payload,
        run_after=run_after or utcnow(),
    )
    db.add(job)
    await db.flush()
    return job


async def enqueue_job(
    db: AsyncSession,
    workspace_id: UUID,
    job_type: JobType | str,
    payload: dict[str, Any],
    user_id: UUID | None = None,
    priority: int = 0,
    run_after: datetime | None = None,
) -> Job:
    """Insert a pending job and commit. Returns the persisted row."""
    job = await add_job(db, workspace_id, job_type, payload, user_id, priority, run_after)
    await db.commit()
    await db.refresh(job)
    logger.info(
        f"Job enqueued: {job.type}",
        extra={"job_id": str(job.id), "job_type": job.type, "workspace_id": str(workspace_id)},
    )
    return job


async def claim_jobs(db: AsyncSession, limit: int = DEFAULT_BATCH_SIZE) -> list[Job]:
    """Lock up to `limit` runnable jobs for this worker."""
    now = utcnow()
    stmt = (
        select(Job)
        .where(
            or_(
                Job.status == JobStatus.PENDING.value,
                and_(
                    Job.status == JobStatus.PROCESSING.value,
                    Job.locked_at < stale_lock_cutoff(now),
                ),
            ),
            Job.run_after <= now,
            Job.attempts < Job.max_attempts,
        )
        .order_by(Job.priority.desc(), Job.created_at)
        .limit(limit)
    )
    if db.get_bind().dialect.name == "postgresql":
        stmt = stmt.with_for_update(skip_locked=True)

    jobs = list((await db.execute(stmt)).scalars().all())
    if not jobs:
        return []

    locked_by = worker_id()
    for job in jobs:
        job.status = JobStatus.PROCESSING.value
        job.locked_at = now
        job.locked_by = locked_by
        job.updated_at = now
    await db.commit()
    logger.info(f"Claimed {len(jobs)} job(s) as {locked_by}")
    return jobs


async def get_job(db: AsyncSession, job_id: UUID) -> Job:
    job = await db.get(Job, job_id)
    if not job:
        raise ResourceNotFoundError("Job", str(job_id))
    return job


async def complete_job(
    db: AsyncSession,
    job_id: UUID,
    result: dict[str, Any],
    status: JobStatus = JobStatus.COMPLETED,
) -> Job:
    """Finish a job. Batch submissions park as batch_pending until their results land."""
    job = await get_job(db, job_id)
    job.status = status.value
    job.result_json = result
    job.error_text = None
    job.locked_at = None
    job.locked_by = None
    job.updated_at = utcnow()
    await db.commit()
    logger.info(
        f"Job {job.status}: {job.type}",
        extra={"job_id": str(job.id), "job_type": job.type},
    )
    return job


async def fail_job(
    db: AsyncSession, job_id: UUID, error: str, retry: bool = True,
) -> Job:
    """Record a failure; reschedule with backoff while attempts remain."""
    job = await get_job(db, job_id)
    now = utcnow()
    job.attempts += 1
    job.error_text = error
    job.locked_at = None
    job.locked_by = None
    job.updated_at = now
    if should_retry(retry, job.attempts, job.max_attempts):
        job.status = JobStatus.PENDING.value
        job.run_after = next_run_after(now, job.attempts)
    else:
        job.status = JobStatus.FAILED.value
    await db.commit()
    logger.warning(
        f"Job failed ({job.status}, attempt {job.attempts}/{job.max_attempts}): {error}",
        extra={"job_id": str(job.id), "job_type": job.type, "attempt": job.attempts},
    )
    return job


async def count_pending(db: AsyncSession, workspace_id: UUID | None = None) -> int:
    stmt = select(func.count(Job.id)).where(Job.status == JobStatus.PENDING.value)
    if workspace_id is not None:
        stmt = stmt.where(Job.workspace_id == workspace_id)
    return (await db.execute(stmt)).scalar_one()
