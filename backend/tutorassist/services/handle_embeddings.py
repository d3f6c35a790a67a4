"""Embedding Handlers — GENERATE_EMBEDDINGS job: one vector per question for similarity search.

Invariants:
    - Embedded text = prompt text + prompt latex + "Topic: <name>" + "Tags: <tags>"
    - text_hash is the md5 of that text; an unchanged hash means the question is skipped
    - One batched embedding call per job; at most one question_embeddings row per question
"""

import hashlib
import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.core.ai_costs import OperationType, PROMPT_VERSIONS
from tutorassist.core.clock import utcnow
from tutorassist.models.job import Job
from tutorassist.models.question import Question, QuestionEmbedding
from tutorassist.models.topic import Topic
from tutorassist.services import llm_gateway
from tutorassist.services.ai_usage import log_ai_usage

logger = logging.getLogger(__name__)


def embedding_text(question: Question, topic_name: str | None) -> str:
    parts = [question.prompt_text]
    if question.prompt_latex and question.prompt_latex != question.prompt_text:
        parts.append(question.prompt_latex)
    if topic_name:
        parts.append(f"Topic: {topic_name}")
    if question.tags:
        parts.append(f"Tags: {', '.join(str(t) for t in question.tags)}")
    return "\n".join(parts)


def text_hash(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()  # nosec B324 - change detection only


class EmbeddingHandlers:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def generate_embeddings(self, job: Job) -> dict:
        ids = [UUID(str(i)) for i in (job.payload_json or {}).get("questionIds", [])]
        if not ids:
            return {"embedded": 0, "skipped": 0}

        rows = (await self.db.execute(
            select(Question, Topic.name)
            .outerjoin(Topic, Topic.id == Question.topic_id)
            .where(Question.workspace_id == job.workspace_id, Question.id.in_(ids))
        )).all()
        existing = {
            e.question_id: e for e in (await self.db.execute(
                select(QuestionEmbedding).where(QuestionEmbedding.question_id.in_(ids))
            )).scalars().all()
        }

        pending: list[tuple[Question, str, str]] = []
        skipped = 0
        for question, topic_name in rows:
            text = embedding_text(question, topic_name)
            digest = text_hash(text)
            current = existing.get(question.id)
            if current and current.text_hash == digest:
                skipped += 1
                continue
            pending.append((question, text, digest))

        if not pending:
            return {"embedded": 0, "skipped": skipped}

        client = llm_gateway.get_embedding_client()
        batch = await client.embed([text for _, text, _ in pending])
        await log_ai_usage(
            OperationType.EMBEDDINGS, batch.model,
            tokens_input=batch.total_tokens,
            workspace_id=job.workspace_id,
            user_id=job.created_by_user_id,
            job_id=job.id,
            metadata={"count": len(pending), "promptVersion": PROMPT_VERSIONS["embeddings"]},
        )

        now = utcnow()
        for (question, _, digest), vector in zip(pending, batch.vectors):
            row = existing.get(question.id)
            if row is None:
                self.db.add(QuestionEmbedding(
                    workspace_id=job.workspace_id,
                    question_id=question.id,
                    embedding=vector,
                    model=batch.model,
                    text_hash=digest,
                    updated_at=now,
                ))
            else:
                row.embedding = vector
                row.model = batch.model
                row.text_hash = digest
                row.updated_at = now

        logger.info(
            f"Embedded {len(pending)} questions ({skipped} unchanged)",
            extra={"job_id": str(job.id), "workspace_id": str(job.workspace_id)},
        )
        return {"embedded": len(pending), "skipped": skipped}
