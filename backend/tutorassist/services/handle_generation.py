"""Generation Handlers — GENERATE_QUESTIONS and REGEN_VARIANT job implementations.

Invariants:
    - Every inserted question is ai_generated (or variant), active, difficulty 1..5,
      prompt_text is the plain-text rendering of the model's LaTeX
    - Generated questions are validated; failures go through auto_fix once and are
      dropped if still invalid (variants proceed regardless)
    - Prompts within Levenshtein similarity 0.85 of an existing prompt, or of one
      inserted earlier in the same batch, are dropped
    - Zero surviving questions raises JobExecutionError

Design Decisions:
    - Handler class with db session: explicit dependencies, no globals (ADR: no god objects)
    - Handlers do NOT call db.commit(): the job runner commits with complete_job,
      so a crash never leaves half a batch behind
    - Model output parsed with extract_json (tolerates prose around the JSON)
"""

import time
import logging
from typing import Any, Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.config import get_settings
from tutorassist.core.ai_costs import (
    OperationType, PROMPT_VERSIONS, create_generation_metadata,
)
from tutorassist.core.domain_types import AnswerType, QuestionOrigin, QuestionStatus
from tutorassist.core.errors import JobExecutionError
from tutorassist.core.llm_json import extract_json
from tutorassist.core.question_quality import (
    auto_fix, clamp_difficulty, is_duplicate_prompt, normalize_generated_answer,
    strip_latex_to_plain_text, validate_generated_question,
)
from tutorassist.models.job import Job
from tutorassist.models.question import Question
from tutorassist.models.source_material import SourceMaterial
from tutorassist.models.topic import Topic
from tutorassist.services import llm_gateway
from tutorassist.services.question_prompts import (
    QUESTION_GENERATION_SYSTEM_PROMPT, build_generation_message, build_variant_message,
)

logger = logging.getLogger(__name__)

EXISTING_PROMPT_LIMIT = 50
MATERIAL_CONTEXT_CHARS = 4000
GENERATION_TEMPERATURE = 0.8
VARIANT_TEMPERATURE = 0.7
_ANSWER_TYPES = {t.value for t in AnswerType}


def _prepare(raw: dict[str, Any], always_keep: bool = False) -> tuple[dict | None, list[str], bool]:
    """Validate, auto-fix once. Returns (question or None, fixes, passed)."""
    valid, errors = validate_generated_question(raw)
    if valid:
        return raw, [], True
    fixed, fixes = auto_fix(raw)
    valid, errors = validate_generated_question(fixed)
    if not valid and not always_keep:
        logger.info(f"Dropping invalid generated question: {'; '.join(errors)}")
        return None, fixes, False
    return fixed, fixes, valid


class GenerationHandlers:
    """LLM question authoring: topic batches and single-question variants."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def generate_questions(self, job: Job) -> dict:
        payload = job.payload_json or {}
        topic = await self.db.get(Topic, UUID(str(payload.get("topicId"))))
        if not topic or topic.workspace_id != job.workspace_id:
            raise JobExecutionError("Topic not found", retry=False)

        count = int(payload.get("count", 5))
        difficulty = payload.get("difficulty", "mixed")

        existing = await self.existing_prompts(job.workspace_id, topic.id)
        seen = [p.lower().strip() for p in existing]

        material_id = payload.get("materialId")
        material_text = None
        if material_id:
            material = await self.db.get(SourceMaterial, UUID(str(material_id)))
            if material and material.workspace_id == job.workspace_id and material.extracted_text:
                material_text = material.extracted_text[:MATERIAL_CONTEXT_CHARS]

        settings = get_settings()
        started = time.monotonic()
        completion = await llm_gateway.tracked_completion(
            OperationType.GENERATE_QUESTIONS,
            QUESTION_GENERATION_SYSTEM_PROMPT,
            build_generation_message(
                topic.name, topic.description, count, difficulty,
                style=payload.get("style"),
                material_text=material_text,
                existing_prompts=list(existing),
            ),
            model=settings.llm_model,
            max_tokens=8192,
            temperature=GENERATION_TEMPERATURE,
            workspace_id=job.workspace_id,
            user_id=job.created_by_user_id,
            job_id=job.id,
            metadata={"topicId": str(topic.id), "count": count},
        )
        generation_ms = int((time.monotonic() - started) * 1000)

        parsed = extract_json(completion.text)
        raw_questions = parsed.get("questions") if isinstance(parsed, dict) else parsed
        if not isinstance(raw_questions, list) or not raw_questions:
            raise JobExecutionError("Model returned no questions")

        # Token usage is split evenly across the batch for per-question provenance
        share = max(1, len(raw_questions))

        def metadata(fixes: list[str], passed: bool) -> dict:
            return create_generation_metadata(
                model=completion.model,
                prompt_version=PROMPT_VERSIONS["question_generation"],
                temperature=GENERATION_TEMPERATURE,
                job_id=str(job.id),
                tokens_input=completion.input_tokens // share,
                tokens_output=completion.output_tokens // share,
                generation_time_ms=generation_ms,
                validation_passed=passed,
                auto_fixes_applied=fixes,
                source_context={
                    "topicId": str(topic.id),
                    "difficulty": difficulty,
                    "materialId": str(material_id) if material_text else None,
                },
            )

        created, invalid, duplicates = self.insert_generated(
            job, raw_questions, topic.id, seen, metadata,
            source_material_id=UUID(str(material_id)) if material_text else None,
        )
        if not created:
            raise JobExecutionError(
                f"No valid questions generated ({invalid} invalid, {duplicates} duplicates)",
            )
        await self.db.flush()

        logger.info(
            f"Generated {len(created)} questions for topic {topic.name}",
            extra={"job_id": str(job.id), "workspace_id": str(job.workspace_id)},
        )
        return {
            "questionsGenerated": len(created),
            "questionIds": [str(q.id) for q in created],
            "duplicatesFiltered": duplicates,
            "invalidFiltered": invalid,
        }

    async def regen_variant(self, job: Job) -> dict:
        payload = job.payload_json or {}
        original = await self.db.get(Question, UUID(str(payload.get("questionId"))))
        if not original or original.workspace_id != job.workspace_id:
            raise JobExecutionError("Question not found", retry=False)

        variation_type = payload.get("variationType", "similar")
        target = original.difficulty
        if variation_type == "harder":
            target = clamp_difficulty(original.difficulty + 1)
        elif variation_type == "easier":
            target = clamp_difficulty(original.difficulty - 1)

        topic = await self.db.get(Topic, original.topic_id) if original.topic_id else None

        started = time.monotonic()
        completion = await llm_gateway.tracked_completion(
            OperationType.REGEN_VARIANT,
            QUESTION_GENERATION_SYSTEM_PROMPT,
            build_variant_message(
                original.prompt_latex or original.prompt_text,
                original.correct_answer_json or {},
                topic.name if topic else None,
                original.difficulty,
                target,
                variation_type,
            ),
            max_tokens=2048,
            temperature=VARIANT_TEMPERATURE,
            workspace_id=job.workspace_id,
            user_id=job.created_by_user_id,
            job_id=job.id,
            metadata={"questionId": str(original.id), "variationType": variation_type},
        )
        generation_ms = int((time.monotonic() - started) * 1000)

        parsed = extract_json(completion.text)
        raw = parsed.get("question", parsed) if isinstance(parsed, dict) else None
        if not isinstance(raw, dict) or not raw.get("questionLatex"):
            raise JobExecutionError("Model returned no variant")
        raw.setdefault("difficulty", target)

        question, fixes, passed = _prepare(raw, always_keep=True)
        prompt_latex = str(question.get("questionLatex") or "")

        variant = self._build_question(
            job, question, strip_latex_to_plain_text(prompt_latex), prompt_latex,
            topic_id=original.topic_id,
            origin=QuestionOrigin.VARIANT,
            parent_question_id=original.parent_question_id or original.id,
            grade_level=original.grade_level,
            metadata=create_generation_metadata(
                model=completion.model,
                prompt_version=PROMPT_VERSIONS["question_variant"],
                temperature=VARIANT_TEMPERATURE,
                job_id=str(job.id),
                tokens_input=completion.input_tokens,
                tokens_output=completion.output_tokens,
                generation_time_ms=generation_ms,
                validation_passed=passed,
                auto_fixes_applied=fixes,
                source_context={
                    "originalQuestionId": str(original.id),
                    "variationType": variation_type,
                },
            ),
        )
        self.db.add(variant)
        await self.db.flush()

        return {
            "variantId": str(variant.id),
            "originalId": str(original.id),
            "variationType": variation_type,
        }

    def insert_generated(
        self,
        job: Job,
        raw_questions: list,
        topic_id: UUID | None,
        seen: list[str],
        metadata_for: Callable[[list[str], bool], dict],
        source_material_id: UUID | None = None,
    ) -> tuple[list[Question], int, int]:
        """Validate, dedupe and add model output. Returns (created, invalid, duplicates).

        `seen` holds lowercased prompts already in the bank and grows as rows are added.
        """
        created: list[Question] = []
        duplicates = invalid = 0
        for raw in raw_questions:
            if not isinstance(raw, dict):
                invalid += 1
                continue
            question, fixes, passed = _prepare(raw)
            if question is None:
                invalid += 1
                continue

            prompt_latex = str(question.get("questionLatex") or "")
            prompt_text = strip_latex_to_plain_text(prompt_latex)
            if not prompt_text:
                invalid += 1
                continue
            if is_duplicate_prompt(prompt_text, seen):
                duplicates += 1
                continue
            seen.append(prompt_text.lower().strip())

            row = self._build_question(
                job, question, prompt_text, prompt_latex,
                topic_id=topic_id,
                origin=QuestionOrigin.AI_GENERATED,
                source_material_id=source_material_id,
                metadata=metadata_for(fixes, passed),
            )
            self.db.add(row)
            created.append(row)
        return created, invalid, duplicates

    async def existing_prompts(self, workspace_id: UUID, topic_id: UUID) -> list[str]:
        return list((await self.db.execute(
            select(Question.prompt_text)
            .where(Question.workspace_id == workspace_id, Question.topic_id == topic_id)
            .order_by(Question.created_at.desc())
            .limit(EXISTING_PROMPT_LIMIT)
        )).scalars().all())

    def _build_question(
        self,
        job: Job,
        q: dict[str, Any],
        prompt_text: str,
        prompt_latex: str,
        topic_id: UUID | None,
        origin: QuestionOrigin,
        metadata: dict,
        parent_question_id: UUID | None = None,
        source_material_id: UUID | None = None,
        grade_level: str | None = None,
    ) -> Question:
        answer_type = q.get("answerType")
        if answer_type not in _ANSWER_TYPES:
            answer_type = AnswerType.SHORT_ANSWER.value
        answer = normalize_generated_answer(q.get("correctAnswer") or {}, answer_type)
        tolerance = answer.get("tolerance")
        return Question(
            workspace_id=job.workspace_id,
            topic_id=topic_id,
            origin=origin.value,
            status=QuestionStatus.ACTIVE.value,
            prompt_text=prompt_text,
            prompt_latex=prompt_latex,
            answer_type=answer_type,
            correct_answer_json=answer,
            tolerance=float(tolerance) if isinstance(tolerance, (int, float)) else None,
            difficulty=clamp_difficulty(q.get("difficulty")),
            grade_level=grade_level,
            hints=q.get("hints") if isinstance(q.get("hints"), list) else [],
            solution_steps=(
                q.get("solutionSteps") if isinstance(q.get("solutionSteps"), list) else []
            ),
            tags=q.get("tags") if isinstance(q.get("tags"), list) else [],
            quality_score=None,
            parent_question_id=parent_question_id,
            source_material_id=source_material_id,
            generation_metadata=metadata,
            created_by=job.created_by_user_id,
        )
