"""Flag Triage — one LLM pass that recommends an action for each pending flag,
plus workspace-wide flag insights.

Invariants:
    - 1..MAX_FLAGS_PER_REVIEW flag ids per call
    - Only pending flags of the caller's workspace are reviewed
    - An unparseable or unexpectedly shaped response surfaces as a 502
    - Insights never fail on the AI summary: a failed summary is logged and left null
"""

import json
import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.core.ai_costs import OperationType, PROMPT_VERSIONS
from tutorassist.core.clock import utcnow
from tutorassist.core.domain_types import FlagStatus
from tutorassist.core.errors import (
    ExternalServiceError, ResourceNotFoundError, TutorAssistError, ValidationFailedError,
)
from tutorassist.core.flag_insights import (
    AI_SUMMARY_MIN_FLAGS, FLAG_INSIGHTS_SYSTEM_PROMPT, INSIGHT_WINDOW, FlagRow,
    build_summary_payload, derive_insights, summarize,
)
from tutorassist.core.flag_review import (
    FLAG_REVIEW_SYSTEM_PROMPT, MAX_FLAGS_PER_REVIEW, build_review_payload, extract_reviews,
)
from tutorassist.models.flag import QuestionFlag
from tutorassist.models.question import Question
from tutorassist.models.topic import Topic
from tutorassist.services import llm_gateway
from tutorassist.services.question_prompts import build_flag_review_message

logger = logging.getLogger(__name__)

REVIEW_TEMPERATURE = 0.3


async def review_flags(
    db: AsyncSession, workspace_id: UUID, user_id: UUID, flag_ids: list[UUID],
) -> dict:
    if not flag_ids or len(flag_ids) > MAX_FLAGS_PER_REVIEW:
        raise ValidationFailedError(
            f"Provide between 1 and {MAX_FLAGS_PER_REVIEW} flag ids", "flag_ids",
        )

    flags = (await db.execute(
        select(QuestionFlag).where(
            QuestionFlag.id.in_(flag_ids),
            QuestionFlag.workspace_id == workspace_id,
            QuestionFlag.status == FlagStatus.PENDING.value,
        ).order_by(QuestionFlag.created_at)
    )).scalars().all()
    if not flags:
        raise ResourceNotFoundError("Pending flags", ",".join(str(i) for i in flag_ids))

    questions = {
        q.id: q for q in (await db.execute(
            select(Question).where(Question.id.in_({f.question_id for f in flags}))
        )).scalars().all()
    }
    payloads = [build_review_payload(f, questions.get(f.question_id)) for f in flags]

    completion = await llm_gateway.tracked_completion(
        OperationType.FLAG_REVIEW,
        FLAG_REVIEW_SYSTEM_PROMPT,
        build_flag_review_message(payloads),
        max_tokens=4096,
        temperature=REVIEW_TEMPERATURE,
        workspace_id=workspace_id,
        user_id=user_id,
        metadata={
            "flagCount": len(flags),
            "promptVersion": PROMPT_VERSIONS["flag_review"],
        },
    )

    try:
        results = extract_reviews(completion.text, [str(f.id) for f in flags])
    except ValueError as e:
        logger.warning(
            f"Flag review response rejected: {e}",
            extra={"workspace_id": str(workspace_id)},
        )
        raise ExternalServiceError("ai_review", str(e))

    return {"results": results, "flagsAnalyzed": len(flags)}


async def flag_insights(db: AsyncSession, workspace_id: UUID, user_id: UUID) -> dict:
    rows = [
        FlagRow(
            flag_type=flag.flag_type,
            status=flag.status,
            question_id=flag.question_id,
            comment=flag.comment,
            student_answer=flag.student_answer,
            prompt_text=prompt_text,
            topic_name=topic_name,
        )
        for flag, prompt_text, topic_name in (await db.execute(
            select(QuestionFlag, Question.prompt_text, Topic.name)
            .outerjoin(Question, Question.id == QuestionFlag.question_id)
            .outerjoin(Topic, Topic.id == Question.topic_id)
            .where(
                QuestionFlag.workspace_id == workspace_id,
                QuestionFlag.created_at >= utcnow() - INSIGHT_WINDOW,
            )
            .order_by(QuestionFlag.created_at.desc())
        )).all()
    ]

    ai_summary = None
    if len(rows) >= AI_SUMMARY_MIN_FLAGS:
        try:
            completion = await llm_gateway.tracked_completion(
                OperationType.FLAG_INSIGHTS,
                FLAG_INSIGHTS_SYSTEM_PROMPT,
                "Here are recent flags from our tutoring platform:\n"
                + json.dumps(build_summary_payload(rows), indent=2)
                + "\n\nProvide a brief analysis of patterns and recommendations.",
                max_tokens=500,
                workspace_id=workspace_id,
                user_id=user_id,
                metadata={
                    "flagCount": len(rows),
                    "promptVersion": PROMPT_VERSIONS["flag_insights"],
                },
            )
            ai_summary = completion.text.strip() or None
        except TutorAssistError as e:
            logger.warning(
                f"Flag insight summary failed: {e.message}",
                extra={"workspace_id": str(workspace_id)},
            )

    return {"insights": derive_insights(rows), "summary": summarize(rows), "aiSummary": ai_summary}
