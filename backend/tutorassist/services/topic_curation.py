"""Topic Curation — LLM duplicate detection over a workspace's topics, and merges.

Invariants:
    - Analysis only ever reports topic ids that exist in the caller's workspace
    - The suggested canonical topic of a group is the member with most questions
      (first listed wins a tie)
    - A merge moves every question of the merged topics onto the canonical one,
      then deletes the merged topics; the canonical topic may be renamed
"""

import json
import logging
from typing import Any
from uuid import UUID

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.config import get_settings
from tutorassist.core.ai_costs import OperationType, PROMPT_VERSIONS
from tutorassist.core.errors import (
    ConflictError, ExternalServiceError, ResourceNotFoundError, ValidationFailedError,
)
from tutorassist.core.llm_json import extract_json
from tutorassist.models.question import Question
from tutorassist.models.topic import Topic
from tutorassist.services import llm_gateway

logger = logging.getLogger(__name__)

ANALYSIS_TEMPERATURE = 0.3

TOPIC_ANALYSIS_SYSTEM_PROMPT = """You are analyzing a list of educational topics to find duplicates and topics that belong together.

Look for:
1. Exact duplicates with different capitalization or spacing
2. Topics that are essentially the same (e.g. "Linear Equations" and "Solving Linear Equations")
3. Topics that could be parent-child relationships
4. Topics with typos that are meant to be the same

Respond with JSON only:
{
  "groups": [
    {"canonicalName": "best standardized name", "members": ["topic-id-1", "topic-id-2"],
     "reason": "why these are grouped", "suggestedMerge": true}
  ],
  "hierarchySuggestions": [
    {"parentId": "topic-id", "childId": "topic-id", "reason": "why"}
  ],
  "standaloneTopics": ["topic-id-3"]
}"""


def build_topic_groups(analysis: dict[str, Any], topics: list[dict[str, Any]]) -> dict[str, Any]:
    by_id = {t["id"]: t for t in topics}
    groups = []
    for group in analysis.get("groups") or []:
        if not isinstance(group, dict):
            continue
        members = [by_id[m] for m in group.get("members") or [] if m in by_id]
        if not members:
            continue
        canonical = members[0]
        for member in members[1:]:
            if member["questionCount"] > canonical["questionCount"]:
                canonical = member
        groups.append({
            "canonicalName": group.get("canonicalName") or canonical["name"],
            "canonicalId": canonical["id"],
            "variants": [
                {"id": m["id"], "name": m["name"], "questionCount": m["questionCount"]}
                for m in members
            ],
            "reason": group.get("reason"),
            "suggestedMerge": group.get("suggestedMerge") is not False,
        })

    hierarchy = [
        h for h in analysis.get("hierarchySuggestions") or []
        if isinstance(h, dict) and h.get("parentId") in by_id and h.get("childId") in by_id
    ]
    standalone = [by_id[t] for t in analysis.get("standaloneTopics") or [] if t in by_id]
    return {
        "groups": groups,
        "hierarchySuggestions": hierarchy,
        "standaloneTopics": standalone,
        "totalTopics": len(topics),
        "potentialDuplicates": sum(1 for g in groups if len(g["variants"]) > 1),
    }


async def analyze_topics(db: AsyncSession, workspace_id: UUID, user_id: UUID) -> dict:
    rows = (await db.execute(
        select(Topic, func.count(Question.id))
        .outerjoin(Question, Question.topic_id == Topic.id)
        .where(Topic.workspace_id == workspace_id)
        .group_by(Topic.id)
        .order_by(Topic.name)
    )).all()
    if not rows:
        return build_topic_groups({}, [])

    topics = [
        {
            "id": str(topic.id),
            "name": topic.name,
            "description": topic.description,
            "questionCount": count,
        }
        for topic, count in rows
    ]
    completion = await llm_gateway.tracked_completion(
        OperationType.TOPIC_ANALYSIS,
        TOPIC_ANALYSIS_SYSTEM_PROMPT,
        "Analyze these topics and identify groups and duplicates:\n\n"
        + json.dumps(topics, indent=2),
        model=get_settings().llm_fast_model,
        max_tokens=2000,
        temperature=ANALYSIS_TEMPERATURE,
        workspace_id=workspace_id,
        user_id=user_id,
        metadata={"topicCount": len(topics), "promptVersion": PROMPT_VERSIONS["topic_analysis"]},
    )
    analysis = extract_json(completion.text)
    if not isinstance(analysis, dict):
        raise ExternalServiceError("topic_analysis", "Model returned no analysis")
    return build_topic_groups(analysis, topics)


async def merge_topics(
    db: AsyncSession,
    workspace_id: UUID,
    canonical_id: UUID,
    merge_ids: list[UUID],
    new_name: str | None = None,
) -> dict:
    merge_ids = [m for m in dict.fromkeys(merge_ids) if m != canonical_id]
    if not merge_ids:
        raise ValidationFailedError("Select at least one other topic to merge", "merge_topic_ids")

    topics = {
        t.id: t for t in (await db.execute(
            select(Topic).where(
                Topic.workspace_id == workspace_id, Topic.id.in_([canonical_id, *merge_ids]),
            )
        )).scalars()
    }
    if len(topics) != len(merge_ids) + 1:
        missing = next(t for t in [canonical_id, *merge_ids] if t not in topics)
        raise ResourceNotFoundError("Topic", str(missing))

    canonical = topics[canonical_id]
    name = (new_name or "").strip()
    if name and name != canonical.name:
        clash = (await db.execute(
            select(Topic.id).where(
                Topic.workspace_id == workspace_id,
                Topic.name == name,
                Topic.id.not_in([canonical_id, *merge_ids]),
            )
        )).first()
        if clash:
            raise ConflictError(f"Topic '{name}' already exists")

    moved = (await db.execute(
        update(Question)
        .where(Question.workspace_id == workspace_id, Question.topic_id.in_(merge_ids))
        .values(topic_id=canonical_id)
    )).rowcount
    for topic_id in merge_ids:
        await db.delete(topics[topic_id])
    # Merged names are gone before the rename so a merged topic's name can be reused
    await db.flush()
    if name:
        canonical.name = name
    await db.commit()

    logger.info(
        f"Merged {len(merge_ids)} topics, moved {moved} questions",
        extra={"workspace_id": str(workspace_id)},
    )
    return {
        "success": True,
        "message": f"Merged {len(merge_ids)} topics into one",
        "canonicalTopicId": str(canonical_id),
        "questionsMoved": moved,
    }
