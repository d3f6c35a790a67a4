"""PDF Handlers — GENERATE_PDF job: render a worksheet and keep it in object storage.

Invariants:
    - Only questions of the job's workspace are printed, in payload order
    - A payload naming no printable question fails without retry
    - Every rendered file gets a pdf_exports row pointing at its storage key
"""

import asyncio
import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.core.domain_types import StorageFolder
from tutorassist.core.errors import JobExecutionError
from tutorassist.core.worksheet_pdf import (
    WorksheetQuestion, answer_text, render_worksheet, safe_filename, step_text,
)
from tutorassist.infrastructure.object_storage import get_object_storage
from tutorassist.models.job import Job
from tutorassist.models.pdf_export import PdfExport
from tutorassist.models.question import Question
from tutorassist.models.topic import Topic

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


async def load_worksheet(
    db: AsyncSession, workspace_id: UUID, question_ids: list[UUID],
) -> list[WorksheetQuestion]:
    rows = (await db.execute(
        select(Question, Topic.name)
        .outerjoin(Topic, Topic.id == Question.topic_id)
        .where(Question.workspace_id == workspace_id, Question.id.in_(question_ids))
    )).all()
    by_id = {q.id: (q, name) for q, name in rows}
    worksheet = []
    for qid in dict.fromkeys(question_ids):
        if qid not in by_id:
            continue
        question, topic_name = by_id[qid]
        worksheet.append(WorksheetQuestion(
            prompt=question.prompt_latex or question.prompt_text,
            topic_name=topic_name,
            difficulty=question.difficulty,
            answer=answer_text(question.correct_answer_json),
            hints=[str(h) for h in question.hints or []],
            solution_steps=[step_text(s) for s in question.solution_steps or []],
        ))
    return worksheet


class PdfHandlers:
    """Worksheet rendering for exports too large to build inside a request."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def generate_pdf(self, job: Job) -> dict:
        payload = job.payload_json or {}
        try:
            question_ids = [UUID(str(q)) for q in payload.get("questionIds") or []]
        except ValueError:
            raise JobExecutionError("Invalid question id in payload", retry=False)
        worksheet = await load_worksheet(self.db, job.workspace_id, question_ids)
        if not worksheet:
            raise JobExecutionError("No questions found", retry=False)

        title = payload.get("title") or "Practice Questions"
        include_answers = bool(payload.get("includeAnswers"))
        include_hints = bool(payload.get("includeHints"))
        data = await asyncio.to_thread(
            render_worksheet, title, worksheet,
            include_answers=include_answers,
            include_hints=include_hints,
            name_line=bool(payload.get("studentId")),
        )

        stored = await get_object_storage().upload(
            str(job.workspace_id), StorageFolder.EXPORTS, data,
            safe_filename(title), PDF_CONTENT_TYPE,
        )
        assignment_id = payload.get("assignmentId")
        export = PdfExport(
            workspace_id=job.workspace_id,
            created_by=job.created_by_user_id,
            assignment_id=UUID(str(assignment_id)) if assignment_id else None,
            title=title,
            question_ids=[str(q) for q in question_ids],
            include_answers=include_answers,
            include_hints=include_hints,
            storage_key=stored["key"],
            file_size=len(data),
        )
        self.db.add(export)
        await self.db.flush()

        logger.info(
            f"Worksheet rendered: {len(worksheet)} questions, {len(data)} bytes",
            extra={"job_id": str(job.id), "workspace_id": str(job.workspace_id)},
        )
        return {
            "pdfExportId": str(export.id),
            "questionCount": len(worksheet),
            "pdfSize": len(data),
            "storageKey": stored["key"],
            "url": stored["url"],
        }
