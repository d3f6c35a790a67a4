"""Batch Handlers — GENERATE_QUESTIONS_BATCH and PROCESS_BATCH_RESULT.

Invariants:
    - A batch job submits one Message Batches request per topic request, with
      custom_id "req-{index}-topic-{topicId}" so results map back to the payload
    - After submission the batch job is parked as batch_pending and a
      PROCESS_BATCH_RESULT poll job is scheduled BATCH_POLL_INTERVAL later
    - Each poll either schedules the next poll (batch still running) or
      ingests every result and moves the batch job to completed / failed
    - Ingested questions pass the same validate, auto-fix and dedupe pipeline
      as GENERATE_QUESTIONS
    - A batch still running after MAX_BATCH_POLLS polls fails the batch job

Design Decisions:
    - Polling rides on the job queue: no webhook, no extra worker
    - Poll jobs record the outcome on the batch job and complete normally; a
      raise would roll the parent's update back with the handler transaction
"""

import re
import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.config import get_settings
from tutorassist.core.ai_costs import (
    OperationType, PROMPT_VERSIONS, create_generation_metadata,
)
from tutorassist.core.clock import utcnow
from tutorassist.core.domain_types import JobStatus, JobType
from tutorassist.core.errors import ErrorContext, JobExecutionError
from tutorassist.core.job_policy import BATCH_POLL_INTERVAL, MAX_BATCH_POLLS
from tutorassist.core.llm_json import extract_json
from tutorassist.models.job import Job
from tutorassist.models.topic import Topic
from tutorassist.services import llm_gateway
from tutorassist.services.ai_usage import log_ai_usage
from tutorassist.services.handle_generation import GENERATION_TEMPERATURE, GenerationHandlers
from tutorassist.services.job_queue import add_job
from tutorassist.services.question_prompts import (
    QUESTION_GENERATION_SYSTEM_PROMPT, build_generation_message,
)

logger = logging.getLogger(__name__)

BATCH_MAX_TOKENS = 4000
_CUSTOM_ID = re.compile(r"^req-(\d+)-topic-(.+)$")


def _context(job: Job) -> ErrorContext:
    return ErrorContext(
        workspace_id=str(job.workspace_id),
        user_id=str(job.created_by_user_id) if job.created_by_user_id else None,
        job_id=str(job.id),
    )


class BatchHandlers:
    """Large question runs through the Message Batches API."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.generation = GenerationHandlers(db)

    async def generate_questions_batch(self, job: Job) -> dict:
        requests = (job.payload_json or {}).get("requests") or []
        if not requests:
            raise JobExecutionError("Batch has no requests", retry=False)

        topic_ids = {UUID(str(r.get("topicId"))) for r in requests}
        topics = {
            t.id: t for t in (await self.db.execute(
                select(Topic).where(
                    Topic.workspace_id == job.workspace_id, Topic.id.in_(topic_ids),
                )
            )).scalars()
        }
        if len(topics) != len(topic_ids):
            raise JobExecutionError("Topic not found", retry=False)

        model = get_settings().llm_model
        batch_requests = []
        for index, request in enumerate(requests):
            topic = topics[UUID(str(request["topicId"]))]
            existing = await self.generation.existing_prompts(job.workspace_id, topic.id)
            batch_requests.append({
                "custom_id": f"req-{index}-topic-{topic.id}",
                "params": {
                    "model": model,
                    "max_tokens": BATCH_MAX_TOKENS,
                    "temperature": GENERATION_TEMPERATURE,
                    "system": QUESTION_GENERATION_SYSTEM_PROMPT,
                    "messages": [{
                        "role": "user",
                        "content": build_generation_message(
                            topic.name, topic.description,
                            int(request.get("count", 5)),
                            request.get("difficulty", "mixed"),
                            style=request.get("style"),
                            existing_prompts=existing,
                        ),
                    }],
                },
            })

        batch_id = await llm_gateway.get_anthropic_client().create_batch(
            batch_requests, context=_context(job),
        )
        total_requested = sum(int(r.get("count", 5)) for r in requests)
        # Token usage is unknown until the batch ends
        await log_ai_usage(
            OperationType.BATCH_GENERATE_SUBMIT, model,
            workspace_id=job.workspace_id, user_id=job.created_by_user_id, job_id=job.id,
            metadata={
                "batchId": batch_id,
                "requestCount": len(batch_requests),
                "totalQuestionsRequested": total_requested,
            },
        )

        poll = await add_job(
            self.db, job.workspace_id, JobType.PROCESS_BATCH_RESULT,
            {"batchJobId": str(job.id), "batchId": batch_id, "poll": 1},
            user_id=job.created_by_user_id,
            run_after=utcnow() + BATCH_POLL_INTERVAL,
        )
        logger.info(
            f"Batch {batch_id} submitted with {len(batch_requests)} requests",
            extra={"job_id": str(job.id), "workspace_id": str(job.workspace_id)},
        )
        return {
            "batchId": batch_id,
            "model": model,
            "requestCount": len(batch_requests),
            "totalQuestionsRequested": total_requested,
            "checkJobId": str(poll.id),
        }

    async def process_batch_result(self, job: Job) -> dict:
        payload = job.payload_json or {}
        parent = await self.db.get(Job, UUID(str(payload.get("batchJobId"))))
        if (
            not parent
            or parent.workspace_id != job.workspace_id
            or parent.type != JobType.GENERATE_QUESTIONS_BATCH.value
        ):
            raise JobExecutionError("Batch job not found", retry=False)
        if parent.status != JobStatus.BATCH_PENDING.value:
            return {"status": "skipped", "batchJobStatus": parent.status}

        summary = dict(parent.result_json or {})
        batch_id = payload.get("batchId") or summary.get("batchId")
        client = llm_gateway.get_anthropic_client()
        processing = await client.batch_status(batch_id, context=_context(job))

        polls = int(payload.get("poll", 1))
        if processing != "ended":
            if polls >= MAX_BATCH_POLLS:
                self._finish(parent, summary, JobStatus.FAILED, f"Batch {batch_id} did not finish")
                await self.db.flush()
                return {"status": "timed_out", "batchJobId": str(parent.id)}
            follow_up = await add_job(
                self.db, job.workspace_id, JobType.PROCESS_BATCH_RESULT,
                {"batchJobId": str(parent.id), "batchId": batch_id, "poll": polls + 1},
                user_id=job.created_by_user_id,
                run_after=utcnow() + BATCH_POLL_INTERVAL,
            )
            return {"status": processing, "nextCheckJobId": str(follow_up.id)}

        results = await client.batch_results(batch_id, context=_context(job))
        outcome = await self._ingest(parent, summary, results)

        await log_ai_usage(
            OperationType.BATCH_GENERATE, summary.get("model") or get_settings().llm_model,
            tokens_input=outcome["tokensInput"],
            tokens_output=outcome["tokensOutput"],
            workspace_id=parent.workspace_id, user_id=parent.created_by_user_id, job_id=parent.id,
            metadata={
                "batchId": batch_id,
                "requestsSucceeded": outcome["requestsSucceeded"],
                "requestsFailed": outcome["requestsFailed"],
            },
        )

        created = outcome["questionsGenerated"]
        summary.update(outcome)
        if created:
            self._finish(parent, summary, JobStatus.COMPLETED)
        else:
            self._finish(parent, summary, JobStatus.FAILED, "Batch produced no valid questions")
        await self.db.flush()

        logger.info(
            f"Batch {batch_id} ingested: {created} questions",
            extra={"job_id": str(parent.id), "workspace_id": str(parent.workspace_id)},
        )
        return {"status": "ended", "batchJobId": str(parent.id), "questionsGenerated": created}

    async def _ingest(self, parent: Job, summary: dict, results: list) -> dict:
        requests = (parent.payload_json or {}).get("requests") or []
        model = summary.get("model") or get_settings().llm_model
        seen_by_topic: dict[UUID, list[str]] = {}
        question_ids: list[str] = []
        succeeded = failed = invalid = duplicates = 0
        tokens_in = tokens_out = 0

        for result in results:
            match = _CUSTOM_ID.match(result.custom_id or "")
            index = int(match.group(1)) if match else -1
            if not 0 <= index < len(requests) or not result.succeeded:
                failed += 1
                continue
            succeeded += 1
            tokens_in += result.input_tokens
            tokens_out += result.output_tokens

            parsed = extract_json(result.text)
            raw_questions = parsed.get("questions") if isinstance(parsed, dict) else parsed
            if not isinstance(raw_questions, list) or not raw_questions:
                continue

            request = requests[index]
            topic_id = UUID(str(request["topicId"]))
            if topic_id not in seen_by_topic:
                existing = await self.generation.existing_prompts(parent.workspace_id, topic_id)
                seen_by_topic[topic_id] = [p.lower().strip() for p in existing]

            share = len(raw_questions)

            def metadata(fixes, passed, result=result, request=request, share=share):
                return create_generation_metadata(
                    model=model,
                    prompt_version=PROMPT_VERSIONS["question_generation"],
                    temperature=GENERATION_TEMPERATURE,
                    job_id=str(parent.id),
                    tokens_input=result.input_tokens // share,
                    tokens_output=result.output_tokens // share,
                    validation_passed=passed,
                    auto_fixes_applied=fixes,
                    source_context={
                        "topicId": str(request["topicId"]),
                        "difficulty": request.get("difficulty", "mixed"),
                        "batchId": summary.get("batchId"),
                    },
                )

            created, bad, dupes = self.generation.insert_generated(
                parent, raw_questions, topic_id, seen_by_topic[topic_id], metadata,
            )
            invalid += bad
            duplicates += dupes
            await self.db.flush()
            question_ids.extend(str(q.id) for q in created)

        return {
            "questionsGenerated": len(question_ids),
            "questionIds": question_ids,
            "requestsSucceeded": succeeded,
            "requestsFailed": failed,
            "duplicatesFiltered": duplicates,
            "invalidFiltered": invalid,
            "tokensInput": tokens_in,
            "tokensOutput": tokens_out,
        }

    @staticmethod
    def _finish(parent: Job, summary: dict, status: JobStatus, error: str | None = None) -> None:
        parent.status = status.value
        parent.result_json = summary
        parent.error_text = error
        parent.updated_at = utcnow()
