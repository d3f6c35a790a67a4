"""Question Routes — bank listing (browse/review/weak modes), CRUD, similarity, AI job triggers.

Invariants:
    - Listing returns only active questions of the caller's workspace, newest first
      (review mode: by due date)
    - review/weak modes apply to students only; an empty result is {questions: [], total: 0}
    - Students never receive correct_answer_json or solution_steps from this router
    - generate / bulk-generate / variant / embeddings only enqueue jobs (202 + job id);
      the LLM work happens in the job runner
    - bulk-generate caps: 50 questions realtime (25 per topic), 500 batched (100 per topic)
    - Bulk actions apply only when every id belongs to the caller's workspace

Design Decisions:
    - Similarity is ranked in the database by similarity_search.find_similar
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.api.dependencies import UserContext, require_context, require_tutor
from tutorassist.api.lookups import get_in_workspace_or_404
from tutorassist.api.routes.jobs import serialize_job
from tutorassist.core.clock import iso, utcnow
from tutorassist.core.domain_types import (
    JobStatus, JobType, MAX_DIFFICULTY, MIN_DIFFICULTY, QuestionOrigin, QuestionStatus,
)
from tutorassist.core.errors import (
    BusinessRuleError, PermissionDeniedError, ResourceNotFoundError, ValidationFailedError,
)
from tutorassist.core.progress_stats import aggregate_topic_stats, weak_topic_ids
from tutorassist.core.workspace_rules import setting_enabled
from tutorassist.infrastructure.database import get_db
from tutorassist.models.attempt import Attempt, SpacedRepetition
from tutorassist.models.job import Job
from tutorassist.models.question import Question, QuestionEmbedding
from tutorassist.models.source_material import SourceMaterial
from tutorassist.models.topic import Topic
from tutorassist.models.workspace import Workspace
from tutorassist.schemas.question import (
    BulkActionRequest, BulkGenerateRequest, EmbeddingsRequest, GenerateQuestionsRequest,
    QuestionCreate, QuestionUpdate, VariantRequest,
)
from tutorassist.services import similarity_search
from tutorassist.services.job_queue import enqueue_job

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/questions", tags=["questions"])

EMBEDDING_BATCH_SIZE = 50

MAX_REALTIME_TOTAL = 50
MAX_BATCH_TOTAL = 500
MAX_REALTIME_PER_TOPIC = 25
MAX_BATCH_PER_TOPIC = 100
BULK_JOB_TYPES = (JobType.GENERATE_QUESTIONS.value, JobType.GENERATE_QUESTIONS_BATCH.value)
UNSETTLED_JOB_STATUSES = (
    JobStatus.PENDING.value, JobStatus.PROCESSING.value, JobStatus.BATCH_PENDING.value,
)


def serialize_question(q: Question, include_answer: bool = True) -> dict:
    data = {
        "id": str(q.id),
        "topic_id": str(q.topic_id) if q.topic_id else None,
        "origin": q.origin,
        "status": q.status,
        "prompt_text": q.prompt_text,
        "prompt_latex": q.prompt_latex,
        "answer_type": q.answer_type,
        "difficulty": q.difficulty,
        "grade_level": q.grade_level,
        "hints": q.hints or [],
        "tags": q.tags or [],
        "quality_score": q.quality_score,
        "times_attempted": q.times_attempted,
        "times_correct": q.times_correct,
        "parent_question_id": str(q.parent_question_id) if q.parent_question_id else None,
        "created_at": iso(q.created_at),
    }
    if include_answer:
        data["correct_answer_json"] = q.correct_answer_json or {}
        data["tolerance"] = q.tolerance
        data["solution_steps"] = q.solution_steps or []
        data["source_material_id"] = (
            str(q.source_material_id) if q.source_material_id else None
        )
        data["generation_metadata"] = q.generation_metadata
    elif q.answer_type == "multiple_choice":
        # choices are part of the prompt for multiple choice; the index is not
        data["choices"] = (q.correct_answer_json or {}).get("choices", [])
    return data


def _parse_difficulty_filter(value: str | None) -> int | None:
    if value is None or not value.strip().isdigit():
        return None
    level = int(value)
    return level if MIN_DIFFICULTY <= level <= MAX_DIFFICULTY else None


async def _workspace_settings(db: AsyncSession, workspace_id: UUID) -> dict:
    workspace = await db.get(Workspace, workspace_id)
    return (workspace.settings if workspace else None) or {}


# ─── Listing ─────────────────────────────────────────────────────

async def _review_queue(db: AsyncSession, ctx: UserContext, limit: int, offset: int) -> dict:
    due = select(Question).join(
        SpacedRepetition, SpacedRepetition.question_id == Question.id,
    ).where(
        SpacedRepetition.workspace_id == ctx.workspace_id,
        SpacedRepetition.student_user_id == ctx.user_id,
        SpacedRepetition.next_due <= utcnow(),
        Question.status == QuestionStatus.ACTIVE.value,
    )
    total = (await db.execute(
        select(func.count()).select_from(due.subquery())
    )).scalar_one()
    if not total:
        return {"questions": [], "total": 0}

    rows = (await db.execute(
        due.order_by(SpacedRepetition.next_due).limit(limit).offset(offset)
    )).scalars().all()
    return {
        "questions": [serialize_question(q, include_answer=False) for q in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


async def _weak_topic_questions(
    db: AsyncSession, ctx: UserContext, limit: int, offset: int,
) -> dict:
    history = (await db.execute(
        select(Question.topic_id, Topic.name, Attempt.is_correct)
        .join(Question, Question.id == Attempt.question_id)
        .outerjoin(Topic, Topic.id == Question.topic_id)
        .where(
            Attempt.workspace_id == ctx.workspace_id,
            Attempt.student_user_id == ctx.user_id,
        )
    )).all()
    weak = weak_topic_ids(aggregate_topic_stats(history))
    if not weak:
        return {"questions": [], "total": 0}

    filters = [
        Question.workspace_id == ctx.workspace_id,
        Question.topic_id.in_(weak),
        Question.status == QuestionStatus.ACTIVE.value,
    ]
    total = (await db.execute(select(func.count(Question.id)).where(*filters))).scalar_one()
    rows = (await db.execute(
        select(Question)
        .where(*filters)
        .order_by(Question.created_at.desc())
        .limit(limit)
        .offset(offset)
    )).scalars().all()
    return {
        "questions": [serialize_question(q, include_answer=False) for q in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
        "weakTopicIds": [str(t) for t in weak],
    }


@router.get("")
async def list_questions(
    topic_id: UUID | None = None,
    difficulty: str | None = None,
    grade_level: str | None = None,
    ai_generated: bool | None = None,
    mode: str | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ctx: UserContext = Depends(require_context),
    db: AsyncSession = Depends(get_db),
):
    if ctx.is_student and mode == "review":
        return await _review_queue(db, ctx, limit, offset)
    if ctx.is_student and mode == "weak":
        return await _weak_topic_questions(db, ctx, limit, offset)

    filters = [
        Question.workspace_id == ctx.workspace_id,
        Question.status == QuestionStatus.ACTIVE.value,
    ]
    if topic_id is not None:
        filters.append(Question.topic_id == topic_id)
    level = _parse_difficulty_filter(difficulty)
    if level is not None:
        filters.append(Question.difficulty == level)
    if grade_level:
        filters.append(Question.grade_level == grade_level)
    if ai_generated is True:
        filters.append(Question.origin == QuestionOrigin.AI_GENERATED.value)
    elif ai_generated is False:
        filters.append(Question.origin != QuestionOrigin.AI_GENERATED.value)

    total = (await db.execute(select(func.count(Question.id)).where(*filters))).scalar_one()
    rows = (await db.execute(
        select(Question)
        .where(*filters)
        .order_by(Question.created_at.desc())
        .limit(limit)
        .offset(offset)
    )).scalars().all()
    return {
        "questions": [serialize_question(q, include_answer=ctx.is_tutor) for q in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


# ─── AI job triggers (declared before /{question_id}) ───────────

@router.post("/generate", status_code=status.HTTP_202_ACCEPTED)
async def generate_questions(
    body: GenerateQuestionsRequest,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    settings = await _workspace_settings(db, ctx.workspace_id)
    if not setting_enabled(settings, "questionGenerationEnabled"):
        raise PermissionDeniedError("Question generation is disabled for this workspace")

    topic = await get_in_workspace_or_404(db, Topic, body.topic_id, ctx.workspace_id, "Topic")
    if body.material_id:
        await get_in_workspace_or_404(
            db, SourceMaterial, body.material_id, ctx.workspace_id, "Material",
        )

    job = await enqueue_job(
        db, ctx.workspace_id, JobType.GENERATE_QUESTIONS,
        {
            "topicId": str(topic.id),
            "count": body.count,
            "difficulty": body.difficulty,
            "style": body.style,
            "materialId": str(body.material_id) if body.material_id else None,
        },
        user_id=ctx.user_id,
    )
    return {"jobId": str(job.id), "status": job.status}


@router.post("/embeddings", status_code=status.HTTP_202_ACCEPTED)
async def generate_embeddings(
    body: EmbeddingsRequest,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(Question.id).where(Question.workspace_id == ctx.workspace_id)
    if body.question_ids:
        stmt = stmt.where(Question.id.in_(body.question_ids))
    ids = [str(i) for i in (await db.execute(stmt.order_by(Question.created_at))).scalars().all()]

    job_ids = []
    for start in range(0, len(ids), EMBEDDING_BATCH_SIZE):
        job = await enqueue_job(
            db, ctx.workspace_id, JobType.GENERATE_EMBEDDINGS,
            {"questionIds": ids[start:start + EMBEDDING_BATCH_SIZE]},
            user_id=ctx.user_id,
        )
        job_ids.append(str(job.id))
    return {"jobIds": job_ids, "questionCount": len(ids)}


@router.post("/bulk-generate", status_code=status.HTTP_202_ACCEPTED)
async def bulk_generate(
    body: BulkGenerateRequest,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    """Realtime: one GENERATE_QUESTIONS job per topic. Batched: one Message Batches job."""
    settings = await _workspace_settings(db, ctx.workspace_id)
    if not setting_enabled(settings, "questionGenerationEnabled"):
        raise PermissionDeniedError("Question generation is disabled for this workspace")

    topic_ids = {item.topic_id for item in body.requests}
    topics = {
        t.id: t.name for t in (await db.execute(
            select(Topic).where(Topic.workspace_id == ctx.workspace_id, Topic.id.in_(topic_ids))
        )).scalars()
    }
    missing = [str(t) for t in topic_ids if t not in topics]
    if missing:
        raise ResourceNotFoundError("Topic", ", ".join(sorted(missing)))

    total = sum(item.count for item in body.requests)
    total_cap = MAX_BATCH_TOTAL if body.use_batch_api else MAX_REALTIME_TOTAL
    per_topic_cap = MAX_BATCH_PER_TOPIC if body.use_batch_api else MAX_REALTIME_PER_TOPIC
    if total > total_cap:
        hint = "" if body.use_batch_api else ". Use use_batch_api for larger runs"
        raise BusinessRuleError(
            f"Maximum {total_cap} questions per request{hint}",
            code="LIMIT_EXCEEDED", extra={"limit": total_cap},
        )
    if any(item.count > per_topic_cap for item in body.requests):
        raise BusinessRuleError(
            f"Maximum {per_topic_cap} questions per topic",
            code="LIMIT_EXCEEDED", extra={"limit": per_topic_cap},
        )

    jobs = []
    if body.use_batch_api:
        job = await enqueue_job(
            db, ctx.workspace_id, JobType.GENERATE_QUESTIONS_BATCH,
            {"requests": [
                {
                    "topicId": str(item.topic_id),
                    "topicName": topics[item.topic_id],
                    "count": item.count,
                    "difficulty": item.difficulty,
                    "style": body.style,
                }
                for item in body.requests
            ]},
            user_id=ctx.user_id,
        )
        jobs.append({
            "jobId": str(job.id), "topicId": "batch",
            "topicName": f"Batch: {len(body.requests)} topics", "count": total,
        })
        message = f"Batch job created. {total} questions will be generated within 24 hours."
    else:
        for item in body.requests:
            job = await enqueue_job(
                db, ctx.workspace_id, JobType.GENERATE_QUESTIONS,
                {
                    "topicId": str(item.topic_id),
                    "count": item.count,
                    "difficulty": item.difficulty,
                    "style": body.style,
                },
                user_id=ctx.user_id,
                priority=1,
            )
            jobs.append({
                "jobId": str(job.id), "topicId": str(item.topic_id),
                "topicName": topics[item.topic_id], "count": item.count,
            })
        message = f"Generating {total} questions across {len(jobs)} topics"

    return {
        "mode": "batch" if body.use_batch_api else "realtime",
        "totalQuestions": total,
        "jobs": jobs,
        "message": message,
    }


@router.get("/bulk-generate")
async def bulk_generate_status(
    job_ids: str | None = Query(None, alias="jobIds"),
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    try:
        ids = [UUID(i.strip()) for i in (job_ids or "").split(",") if i.strip()]
    except ValueError:
        raise ValidationFailedError("jobIds must be comma-separated ids", "jobIds")
    stmt = select(Job).where(Job.workspace_id == ctx.workspace_id)
    if not ids:
        recent = (await db.execute(
            stmt.where(Job.type.in_(BULK_JOB_TYPES)).order_by(Job.created_at.desc()).limit(20)
        )).scalars().all()
        return {"jobs": [serialize_job(j) for j in recent]}

    jobs = (await db.execute(stmt.where(Job.id.in_(ids)))).scalars().all()
    return {
        "jobs": [serialize_job(j) for j in jobs],
        "summary": {
            "completed": sum(1 for j in jobs if j.status == JobStatus.COMPLETED.value),
            "failed": sum(1 for j in jobs if j.status == JobStatus.FAILED.value),
            "pending": sum(1 for j in jobs if j.status in UNSETTLED_JOB_STATUSES),
            "total": len(jobs),
        },
    }


@router.post("/bulk")
async def bulk_action(
    body: BulkActionRequest,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    if body.action == "assign":
        raise BusinessRuleError(
            "Assignment action requires assignment_id parameter",
            code="REQUIRES_INPUT", extra={"requiresInput": True},
        )

    ids = set(body.question_ids)
    questions = (await db.execute(
        select(Question).where(Question.workspace_id == ctx.workspace_id, Question.id.in_(ids))
    )).scalars().all()
    if len(questions) != len(ids):
        raise PermissionDeniedError("Some questions not found or not accessible")

    if body.action == "delete":
        for question in questions:
            await db.delete(question)
        result = {"deleted": len(questions)}
    else:
        target = (
            QuestionStatus.ARCHIVED if body.action == "archive" else QuestionStatus.ACTIVE
        )
        now = utcnow()
        for question in questions:
            question.status = target.value
            question.updated_at = now
        key = "archived" if body.action == "archive" else "activated"
        result = {key: len(questions)}

    await db.commit()
    logger.info(
        f"Bulk {body.action} on {len(questions)} questions",
        extra={"workspace_id": str(ctx.workspace_id)},
    )
    return {"success": True, **result}


# ─── Single question ─────────────────────────────────────────────

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_question(
    body: QuestionCreate,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    if body.topic_id is not None:
        await get_in_workspace_or_404(db, Topic, body.topic_id, ctx.workspace_id, "Topic")

    answer = body.correct_answer_json
    if not answer and body.answer_latex:
        answer = {"value": body.answer_latex}
    if not answer:
        raise ValidationFailedError("An answer is required", "correct_answer_json")

    question = Question(
        workspace_id=ctx.workspace_id,
        topic_id=body.topic_id,
        origin=QuestionOrigin.MANUAL.value,
        status=QuestionStatus.ACTIVE.value,
        prompt_text=body.prompt_text,
        prompt_latex=body.prompt_latex,
        answer_type=body.answer_type.value,
        correct_answer_json=answer,
        tolerance=body.tolerance,
        difficulty=body.difficulty,
        grade_level=body.grade_level,
        hints=body.hints,
        solution_steps=body.solution_steps,
        tags=body.tags,
        quality_score=1.0,
        created_by=ctx.user_id,
    )
    db.add(question)
    await db.commit()
    logger.info("Question created", extra={"workspace_id": str(ctx.workspace_id)})
    return {"question": serialize_question(question)}


@router.get("/{question_id}")
async def get_question(
    question_id: UUID,
    ctx: UserContext = Depends(require_context),
    db: AsyncSession = Depends(get_db),
):
    question = await get_in_workspace_or_404(
        db, Question, question_id, ctx.workspace_id, "Question",
    )
    return {"question": serialize_question(question, include_answer=ctx.is_tutor)}


@router.patch("/{question_id}")
async def update_question(
    question_id: UUID,
    body: QuestionUpdate,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    question = await get_in_workspace_or_404(
        db, Question, question_id, ctx.workspace_id, "Question",
    )
    changes = body.model_dump(exclude_unset=True)
    if changes.get("topic_id") is not None:
        await get_in_workspace_or_404(db, Topic, changes["topic_id"], ctx.workspace_id, "Topic")
    for field, value in changes.items():
        if value is None and field in ("prompt_text", "answer_type", "difficulty", "status"):
            continue
        if hasattr(value, "value"):
            value = value.value
        setattr(question, field, value)
    question.updated_at = utcnow()
    await db.commit()
    return {"question": serialize_question(question)}


@router.delete("/{question_id}")
async def delete_question(
    question_id: UUID,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    question = await get_in_workspace_or_404(
        db, Question, question_id, ctx.workspace_id, "Question",
    )
    await db.delete(question)
    await db.commit()
    return {"success": True}


@router.get("/{question_id}/similar")
async def similar_questions(
    question_id: UUID,
    threshold: float = Query(0.75, ge=0.0, le=1.0),
    limit: int = Query(10, ge=1, le=50),
    ctx: UserContext = Depends(require_context),
    db: AsyncSession = Depends(get_db),
):
    await get_in_workspace_or_404(db, Question, question_id, ctx.workspace_id, "Question")
    target = (await db.execute(
        select(QuestionEmbedding).where(QuestionEmbedding.question_id == question_id)
    )).scalar_one_or_none()
    if target is None:
        return {"similar": [], "reason": "no_embedding"}

    ranked = await similarity_search.find_similar(
        db, ctx.workspace_id, question_id, list(target.embedding), threshold, limit,
    )
    if not ranked:
        return {"similar": []}

    questions = {
        q.id: q for q in (await db.execute(
            select(Question).where(Question.id.in_([qid for qid, _ in ranked]))
        )).scalars().all()
    }
    return {
        "similar": [
            {
                "question": serialize_question(questions[qid], include_answer=ctx.is_tutor),
                "similarity": round(score, 4),
            }
            for qid, score in ranked if qid in questions
        ],
    }


@router.post("/{question_id}/variant", status_code=status.HTTP_202_ACCEPTED)
async def create_variant(
    question_id: UUID,
    body: VariantRequest,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    question = await get_in_workspace_or_404(
        db, Question, question_id, ctx.workspace_id, "Question",
    )
    job = await enqueue_job(
        db, ctx.workspace_id, JobType.REGEN_VARIANT,
        {"questionId": str(question.id), "variationType": body.variation_type},
        user_id=ctx.user_id,
    )
    return {"jobId": str(job.id), "status": job.status}
