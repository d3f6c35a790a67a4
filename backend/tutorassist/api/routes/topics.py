"""Topic Routes — workspace topic list with question counts, tutor CRUD.

Invariants:
    - Topic names are unique per workspace (409 on duplicate)
    - Deleting a topic detaches its questions (topic_id -> NULL); questions survive
    - Merging moves questions onto the canonical topic before deleting the others
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.api.dependencies import UserContext, require_context, require_tutor
from tutorassist.api.lookups import get_in_workspace_or_404
from tutorassist.core.clock import iso
from tutorassist.core.errors import ConflictError
from tutorassist.infrastructure.database import get_db
from tutorassist.models.question import Question
from tutorassist.models.topic import Topic
from tutorassist.schemas.question import TopicCreate, TopicMerge, TopicUpdate
from tutorassist.services import topic_curation

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/topics", tags=["topics"])


def serialize_topic(topic: Topic, question_count: int | None = None) -> dict:
    data = {
        "id": str(topic.id),
        "name": topic.name,
        "description": topic.description,
        "created_at": iso(topic.created_at),
    }
    if question_count is not None:
        data["questionCount"] = question_count
    return data


async def _ensure_unique_name(
    db: AsyncSession, workspace_id: UUID, name: str, exclude_id: UUID | None = None,
) -> None:
    stmt = select(Topic.id).where(Topic.workspace_id == workspace_id, Topic.name == name)
    if exclude_id is not None:
        stmt = stmt.where(Topic.id != exclude_id)
    if (await db.execute(stmt)).first():
        raise ConflictError(f"Topic '{name}' already exists")


@router.get("")
async def list_topics(
    ctx: UserContext = Depends(require_context),
    db: AsyncSession = Depends(get_db),
):
    rows = (await db.execute(
        select(Topic, func.count(Question.id))
        .outerjoin(Question, Question.topic_id == Topic.id)
        .where(Topic.workspace_id == ctx.workspace_id)
        .group_by(Topic.id)
        .order_by(Topic.name)
    )).all()
    return {"topics": [serialize_topic(t, count) for t, count in rows]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_topic(
    body: TopicCreate,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    await _ensure_unique_name(db, ctx.workspace_id, body.name)
    topic = Topic(workspace_id=ctx.workspace_id, name=body.name, description=body.description)
    db.add(topic)
    await db.commit()
    return {"topic": serialize_topic(topic, 0)}


@router.get("/analyze")
async def analyze_topics(
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    return await topic_curation.analyze_topics(db, ctx.workspace_id, ctx.user_id)


@router.post("/merge")
async def merge_topics(
    body: TopicMerge,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    return await topic_curation.merge_topics(
        db, ctx.workspace_id, body.canonical_topic_id, body.merge_topic_ids, body.new_name,
    )


@router.patch("/{topic_id}")
async def update_topic(
    topic_id: UUID,
    body: TopicUpdate,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    topic = await get_in_workspace_or_404(db, Topic, topic_id, ctx.workspace_id, "Topic")
    if body.name is not None:
        name = body.name.strip()
        await _ensure_unique_name(db, ctx.workspace_id, name, exclude_id=topic.id)
        topic.name = name
    if body.description is not None:
        topic.description = body.description
    await db.commit()
    return {"topic": serialize_topic(topic)}


@router.delete("/{topic_id}")
async def delete_topic(
    topic_id: UUID,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    topic = await get_in_workspace_or_404(db, Topic, topic_id, ctx.workspace_id, "Topic")
    await db.execute(
        update(Question).where(Question.topic_id == topic.id).values(topic_id=None)
    )
    await db.delete(topic)
    await db.commit()
    logger.info(f"Topic deleted: {topic.name}", extra={"workspace_id": str(ctx.workspace_id)})
    return {"success": True}
