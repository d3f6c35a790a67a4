"""PDF Routes — printable worksheets, rendered inline or through GENERATE_PDF.

Invariants:
    - Tutors only
    - immediate=true with at most 20 questions answers with the PDF bytes;
      anything else enqueues GENERATE_PDF at priority 2
    - Every question id, the student and the assignment must be in the workspace
"""

import asyncio
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.api.dependencies import UserContext, require_tutor
from tutorassist.api.lookups import get_in_workspace_or_404
from tutorassist.api.routes.jobs import serialize_job
from tutorassist.core.clock import iso
from tutorassist.core.domain_types import JobType
from tutorassist.core.errors import ResourceNotFoundError
from tutorassist.core.worksheet_pdf import IMMEDIATE_MAX_QUESTIONS, render_worksheet, safe_filename
from tutorassist.infrastructure.database import get_db
from tutorassist.infrastructure.object_storage import ObjectStorage, get_object_storage
from tutorassist.models.assignment import Assignment
from tutorassist.models.job import Job
from tutorassist.models.pdf_export import PdfExport
from tutorassist.models.question import Question
from tutorassist.models.student_profile import StudentProfile
from tutorassist.schemas.question import PdfRequest
from tutorassist.services.handle_pdf import PDF_CONTENT_TYPE, load_worksheet
from tutorassist.services.job_queue import enqueue_job

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/pdf", tags=["pdf"])

PDF_JOB_PRIORITY = 2


def serialize_export(export: PdfExport) -> dict:
    return {
        "id": str(export.id),
        "title": export.title,
        "assignment_id": str(export.assignment_id) if export.assignment_id else None,
        "question_count": len(export.question_ids or []),
        "include_answers": export.include_answers,
        "include_hints": export.include_hints,
        "status": export.status,
        "file_size": export.file_size,
        "created_at": iso(export.created_at),
    }


@router.post("")
async def create_pdf(
    body: PdfRequest,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    found = set((await db.execute(
        select(Question.id).where(
            Question.workspace_id == ctx.workspace_id, Question.id.in_(body.question_ids),
        )
    )).scalars().all())
    missing = [qid for qid in body.question_ids if qid not in found]
    if missing:
        raise ResourceNotFoundError("Question", str(missing[0]))
    if body.student_id is not None:
        await get_in_workspace_or_404(
            db, StudentProfile, body.student_id, ctx.workspace_id, "Student",
        )
    if body.assignment_id is not None:
        await get_in_workspace_or_404(
            db, Assignment, body.assignment_id, ctx.workspace_id, "Assignment",
        )

    if body.immediate and len(body.question_ids) <= IMMEDIATE_MAX_QUESTIONS:
        worksheet = await load_worksheet(db, ctx.workspace_id, body.question_ids)
        data = await asyncio.to_thread(
            render_worksheet, body.title, worksheet,
            include_answers=body.include_answers,
            include_hints=body.include_hints,
        )
        return Response(
            content=data,
            media_type=PDF_CONTENT_TYPE,
            headers={"Content-Disposition": f'attachment; filename="{safe_filename(body.title)}"'},
        )

    job = await enqueue_job(
        db, ctx.workspace_id, JobType.GENERATE_PDF,
        {
            "title": body.title,
            "questionIds": [str(q) for q in body.question_ids],
            "includeAnswers": body.include_answers,
            "includeHints": body.include_hints,
            "studentId": str(body.student_id) if body.student_id else None,
            "assignmentId": str(body.assignment_id) if body.assignment_id else None,
        },
        user_id=ctx.user_id,
        priority=PDF_JOB_PRIORITY,
    )
    return {"success": True, "jobId": str(job.id), "status": job.status}


@router.get("")
async def pdf_status(
    job_id: UUID = Query(alias="jobId"),
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    job = await get_in_workspace_or_404(db, Job, job_id, ctx.workspace_id, "Job")
    if job.type != JobType.GENERATE_PDF.value:
        raise ResourceNotFoundError("Job", str(job_id))
    return serialize_job(job)


@router.get("/exports")
async def list_exports(
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    exports = (await db.execute(
        select(PdfExport)
        .where(PdfExport.workspace_id == ctx.workspace_id)
        .order_by(PdfExport.created_at.desc())
        .limit(50)
    )).scalars().all()
    return {"exports": [serialize_export(e) for e in exports]}


@router.get("/exports/{export_id}/download")
async def download_export(
    export_id: UUID,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_object_storage),
):
    export = await get_in_workspace_or_404(db, PdfExport, export_id, ctx.workspace_id, "PDF export")
    if not export.storage_key:
        raise ResourceNotFoundError("PDF export", str(export_id))
    return {"url": await storage.download_url(export.storage_key)}
