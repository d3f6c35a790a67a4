"""Assignment Builder — AI-assisted assignment creation and refinement.

Invariants:
    - Student mode (student ids + topic ids) writes one assignment per student,
      drawing from active questions of the chosen topics; it never calls the LLM
    - Prompt mode returns an unsaved plan: bank picks plus generated questions
    - Refinement returns an unsaved plan; id-only entries resolve against the
      current plan first, then the question bank
    - Every student id must belong to the caller's workspace
"""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.config import get_settings
from tutorassist.core.ai_costs import OperationType, PROMPT_VERSIONS
from tutorassist.core.assignment_planning import (
    DIFFICULTY_BOUNDS, HISTORY_ATTEMPTS, StudentHistory, TopicAttempt,
    assemble_plan, merge_refined, pick_questions, student_history,
)
from tutorassist.core.domain_types import AssignmentStatus, QuestionStatus
from tutorassist.core.errors import (
    BusinessRuleError, ExternalServiceError, ResourceNotFoundError, ValidationFailedError,
)
from tutorassist.core.llm_json import extract_json
from tutorassist.models.assignment import Assignment, AssignmentItem
from tutorassist.models.attempt import Attempt
from tutorassist.models.question import Question
from tutorassist.models.student_profile import StudentProfile
from tutorassist.models.topic import Topic
from tutorassist.schemas.practice import AssignmentGenerateRequest, AssignmentRefineRequest
from tutorassist.services import llm_gateway
from tutorassist.services.question_prompts import (
    ASSIGNMENT_GENERATION_SYSTEM_PROMPT, ASSIGNMENT_REFINE_SYSTEM_PROMPT,
    build_assignment_message, build_refine_message,
)

logger = logging.getLogger(__name__)

PLAN_TEMPERATURE = 0.7
GENERATE_BANK_LIMIT = 100
GENERATE_PREVIEW_LIMIT = 50
REFINE_BANK_LIMIT = 50
REFINE_PREVIEW_LIMIT = 30


def _plan_item(question: Question, topic_name: str) -> dict:
    return {
        "id": str(question.id),
        "promptText": question.prompt_text,
        "promptLatex": question.prompt_latex,
        "difficulty": question.difficulty,
        "topicName": topic_name,
        "answerType": question.answer_type,
        "correctAnswer": question.correct_answer_json,
        "hints": question.hints or [],
        "solutionSteps": question.solution_steps or [],
        "isGenerated": False,
    }


def _preview(bank: list[dict], limit: int, index_key: str = "index") -> list[dict]:
    return [
        {
            index_key: i,
            "id": q["id"],
            "topic": q["topicName"],
            "difficulty": q["difficulty"],
            "preview": (q["promptText"] or "")[:100],
        }
        for i, q in enumerate(bank[:limit])
    ]


async def _bank(
    db: AsyncSession, workspace_id: UUID, limit: int, topic_ids: list[UUID] | None = None,
) -> list[dict]:
    stmt = (
        select(Question, Topic.name)
        .join(Topic, Topic.id == Question.topic_id)
        .where(
            Question.workspace_id == workspace_id,
            Question.status == QuestionStatus.ACTIVE.value,
        )
        .order_by(Question.created_at.desc())
        .limit(limit)
    )
    if topic_ids:
        stmt = stmt.where(Question.topic_id.in_(topic_ids))
    return [_plan_item(q, name) for q, name in (await db.execute(stmt)).all()]


async def _history(db: AsyncSession, workspace_id: UUID, profile: StudentProfile) -> StudentHistory:
    if profile.user_id is None:
        return StudentHistory()
    rows = (await db.execute(
        select(Attempt.is_correct, Question.difficulty, Topic.id, Topic.name)
        .join(Question, Question.id == Attempt.question_id)
        .outerjoin(Topic, Topic.id == Question.topic_id)
        .where(
            Attempt.workspace_id == workspace_id,
            Attempt.student_user_id == profile.user_id,
        )
        .order_by(Attempt.created_at.desc())
        .limit(HISTORY_ATTEMPTS)
    )).all()
    return student_history(TopicAttempt(*row) for row in rows)


async def _ask(
    operation: str,
    system: str,
    message: str,
    model: str,
    workspace_id: UUID,
    user_id: UUID,
    prompt_version: str,
) -> dict:
    completion = await llm_gateway.tracked_completion(
        operation, system, message,
        model=model,
        max_tokens=4000,
        temperature=PLAN_TEMPERATURE,
        workspace_id=workspace_id,
        user_id=user_id,
        metadata={"promptVersion": prompt_version},
    )
    result = extract_json(completion.text)
    if not isinstance(result, dict):
        logger.warning(
            f"{operation} response was not a JSON object",
            extra={"workspace_id": str(workspace_id)},
        )
        raise ExternalServiceError(operation, "Model returned no assignment")
    return result


async def create_for_students(
    db: AsyncSession, workspace_id: UUID, user_id: UUID, body: AssignmentGenerateRequest,
) -> dict:
    student_ids = list(dict.fromkeys(body.student_ids or [body.student_id]))
    stmt = select(Question.id, Question.difficulty).where(
        Question.workspace_id == workspace_id,
        Question.status == QuestionStatus.ACTIVE.value,
        Question.topic_id.in_(body.topic_ids),
    )
    if body.difficulty in DIFFICULTY_BOUNDS:
        low, high = DIFFICULTY_BOUNDS[body.difficulty]
        stmt = stmt.where(Question.difficulty >= low, Question.difficulty <= high)
    pool = (await db.execute(stmt)).all()
    if not pool:
        raise BusinessRuleError(
            "No questions found for the selected topics. Generate questions first.",
            code="NO_QUESTIONS",
        )

    profiles = (await db.execute(
        select(StudentProfile).where(
            StudentProfile.workspace_id == workspace_id, StudentProfile.id.in_(student_ids),
        )
    )).scalars().all()
    if len(profiles) != len(student_ids):
        found = {p.id for p in profiles}
        raise ResourceNotFoundError("Student", str(next(s for s in student_ids if s not in found)))

    options = body.options
    created = []
    for profile in profiles:
        picked = pick_questions(
            pool, body.question_count, body.difficulty, shuffle=options.shuffle_questions,
        )
        assignment = Assignment(
            workspace_id=workspace_id,
            created_by=user_id,
            student_profile_id=profile.id,
            assigned_student_user_id=profile.user_id,
            title=body.title or "AI-Generated Assignment",
            description=body.instructions,
            due_at=body.due_date,
            status=AssignmentStatus.ACTIVE.value,
            settings={
                "timeLimit": options.time_limit,
                "shuffleQuestions": options.shuffle_questions,
                "showResultsImmediately": options.show_results_immediately,
                "generatedFrom": "ai-studio",
                "topicIds": [str(t) for t in body.topic_ids],
            },
            items=[
                AssignmentItem(question_id=q.id, order_index=index)
                for index, q in enumerate(picked)
            ],
        )
        db.add(assignment)
        await db.flush()
        created.append({
            "studentId": str(profile.id),
            "studentName": profile.name,
            "assignmentId": str(assignment.id),
            "questionCount": len(picked),
        })
    await db.commit()

    logger.info(
        f"Generated {len(created)} assignments from {len(pool)} candidate questions",
        extra={"workspace_id": str(workspace_id)},
    )
    return {
        "assignmentsCreated": len(created),
        "assignments": created,
        "message": (
            f"Created {len(created)} assignment(s) with up to {body.question_count} questions each"
        ),
    }


async def generate_plan(
    db: AsyncSession, workspace_id: UUID, user_id: UUID, body: AssignmentGenerateRequest,
) -> dict:
    if not (body.prompt or "").strip():
        raise ValidationFailedError(
            "Provide a prompt describing the assignment or select students and topics",
            "prompt",
        )

    history = StudentHistory()
    if body.student_id is not None:
        profile = await db.get(StudentProfile, body.student_id)
        if not profile or profile.workspace_id != workspace_id:
            raise ResourceNotFoundError("Student", str(body.student_id))
        history = await _history(db, workspace_id, profile)

    bank = await _bank(db, workspace_id, GENERATE_BANK_LIMIT, body.topic_ids)
    topic_names = (await db.execute(
        select(Topic.name).where(Topic.workspace_id == workspace_id).order_by(Topic.name)
    )).scalars().all()

    result = await _ask(
        OperationType.ASSIGNMENT_GENERATE,
        ASSIGNMENT_GENERATION_SYSTEM_PROMPT,
        build_assignment_message(
            body.prompt.strip(),
            body.question_count,
            body.difficulty,
            body.include_markscheme,
            body.include_solution_steps,
            history.prompt_context(body.focus_on_weak_areas),
            list(topic_names),
            _preview(bank, GENERATE_PREVIEW_LIMIT),
        ),
        get_settings().llm_fast_model,
        workspace_id, user_id,
        PROMPT_VERSIONS["assignment_generation"],
    )
    return {
        "assignment": assemble_plan(result, bank[:GENERATE_PREVIEW_LIMIT]),
        "studentHistory": history.to_dict(),
    }


async def refine_plan(
    db: AsyncSession, workspace_id: UUID, user_id: UUID, body: AssignmentRefineRequest,
) -> dict:
    request = body.refinement_prompt.strip()
    if not request:
        raise ValidationFailedError("Provide refinement instructions", "refinement_prompt")

    current = [
        {
            "index": i,
            "id": q.get("id"),
            "topic": q.get("topicName"),
            "difficulty": q.get("difficulty"),
            "text": q.get("promptText"),
            "isGenerated": q.get("isGenerated"),
        }
        for i, q in enumerate(body.assignment.get("questions") or [])
        if isinstance(q, dict)
    ]
    bank = await _bank(db, workspace_id, REFINE_BANK_LIMIT)

    result = await _ask(
        OperationType.ASSIGNMENT_REFINE,
        ASSIGNMENT_REFINE_SYSTEM_PROMPT,
        build_refine_message(
            body.assignment, current, _preview(bank, REFINE_PREVIEW_LIMIT, "bankIndex"), request,
        ),
        get_settings().llm_model,
        workspace_id, user_id,
        PROMPT_VERSIONS["assignment_generation"],
    )
    return {
        "assignment": merge_refined(result, body.assignment, bank),
        "changesMade": result.get("changesMade") or "Assignment refined",
    }
