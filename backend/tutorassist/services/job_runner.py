"""Job Runner — claims queued jobs and routes each one to its handler.

Invariants:
    - Every job_type -> handler mapping is visible in JobDispatch (no auto-discovery)
    - A job type with no handler fails without retry
    - JobExecutionError fails with its own retry flag; any other exception retries
    - A submitted GENERATE_QUESTIONS_BATCH job parks as batch_pending, not completed
    - Each job runs in its own session; its failure is recorded in a fresh session
      so the rolled-back handler transaction never loses the bookkeeping

Design Decisions:
    - Sequential processing inside one process_jobs() call: the cron endpoint
      bounds the batch, and handlers are IO-bound LLM calls (ADR: no worker pool)
    - Handlers split by concern, instantiated per job with the job's session
      (ADR: no god objects)
"""

import logging
from typing import Any, Awaitable, Callable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.core.domain_types import JobStatus, JobType
from tutorassist.core.errors import JobExecutionError
from tutorassist.core.job_policy import DEFAULT_BATCH_SIZE
from tutorassist.infrastructure.database import get_db_manager
from tutorassist.models.job import Job
from tutorassist.services.handle_batches import BatchHandlers
from tutorassist.services.handle_embeddings import EmbeddingHandlers
from tutorassist.services.handle_generation import GenerationHandlers
from tutorassist.services.handle_materials import MaterialHandlers
from tutorassist.services.handle_pdf import PdfHandlers
from tutorassist.services.handle_review import ReviewHandlers
from tutorassist.services.job_queue import claim_jobs, complete_job, fail_job, get_job

logger = logging.getLogger(__name__)

JobHandler = Callable[[Job], Awaitable[dict[str, Any]]]


class JobDispatch:
    """Routes job.type -> handler. Explicit registration, no auto-discovery."""

    def __init__(self, db: AsyncSession):
        generation = GenerationHandlers(db)
        materials = MaterialHandlers(db)
        embeddings = EmbeddingHandlers(db)
        review = ReviewHandlers(db)
        batches = BatchHandlers(db)
        pdf = PdfHandlers(db)

        # ADR: every mapping explicit; adding a job type requires editing this dict
        self._handlers: dict[str, JobHandler] = {
            JobType.EXTRACT_MATERIAL.value: materials.extract_material,
            JobType.GENERATE_QUESTIONS.value: generation.generate_questions,
            JobType.REGEN_VARIANT.value: generation.regen_variant,
            JobType.GENERATE_QUESTIONS_BATCH.value: batches.generate_questions_batch,
            JobType.PROCESS_BATCH_RESULT.value: batches.process_batch_result,
            JobType.GENERATE_EMBEDDINGS.value: embeddings.generate_embeddings,
            JobType.DAILY_SPACED_REP_REFRESH.value: review.daily_refresh,
            JobType.GENERATE_PDF.value: pdf.generate_pdf,
        }

    def has_handler(self, job_type: str) -> bool:
        return job_type in self._handlers

    async def execute(self, job: Job) -> dict[str, Any]:
        handler = self._handlers.get(job.type)
        if handler is None:
            raise JobExecutionError(f"No handler for job type: {job.type}", retry=False)
        return await handler(job)


async def _run_job(job_id: UUID, job_type: str) -> None:
    manager = get_db_manager()
    extra = {"job_id": str(job_id), "job_type": job_type}
    try:
        async with manager.session() as db:
            job = await get_job(db, job_id)
            logger.info(f"Running job {job_type}", extra=extra)
            result = await JobDispatch(db).execute(job)
            status = (
                JobStatus.BATCH_PENDING
                if job_type == JobType.GENERATE_QUESTIONS_BATCH.value
                else JobStatus.COMPLETED
            )
            await complete_job(db, job_id, result or {}, status=status)
        return
    except JobExecutionError as e:
        error, retry = e.message, e.retry
        logger.warning(f"Job {job_type} failed: {error}", extra=extra)
    except Exception as e:
        error, retry = str(e) or type(e).__name__, True
        logger.error(f"Job {job_type} crashed: {error}", extra=extra, exc_info=True)

    async with manager.session() as db:
        await fail_job(db, job_id, error, retry=retry)


async def process_jobs(limit: int = DEFAULT_BATCH_SIZE) -> int:
    """Claim up to `limit` jobs and run them one by one. Returns the count processed."""
    async with get_db_manager().session() as db:
        claimed = [(job.id, job.type) for job in await claim_jobs(db, limit)]

    for job_id, job_type in claimed:
        await _run_job(job_id, job_type)
    return len(claimed)
