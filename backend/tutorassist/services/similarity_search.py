"""Similarity Search — nearest questions by cosine distance over question_embeddings.

Invariants:
    - Candidates are limited to the caller's workspace and never include the target
    - similarity = 1 - cosine distance; rows below the threshold are filtered in SQL
    - Results come back most similar first, at most `limit` rows
"""

from uuid import UUID

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.models.question import QuestionEmbedding


def similarity_query(
    workspace_id: UUID,
    question_id: UUID,
    target: list[float],
    threshold: float,
    limit: int,
) -> Select:
    distance = QuestionEmbedding.embedding.cosine_distance(target)
    return (
        select(QuestionEmbedding.question_id, (1 - distance).label("similarity"))
        .where(
            QuestionEmbedding.workspace_id == workspace_id,
            QuestionEmbedding.question_id != question_id,
            1 - distance >= threshold,
        )
        .order_by(distance)
        .limit(limit)
    )


async def find_similar(
    db: AsyncSession,
    workspace_id: UUID,
    question_id: UUID,
    target: list[float],
    threshold: float,
    limit: int,
) -> list[tuple[UUID, float]]:
    """(question_id, similarity) pairs ranked by the database's vector index."""
    rows = (await db.execute(
        similarity_query(workspace_id, question_id, target, threshold, limit)
    )).all()
    return [(row.question_id, float(row.similarity)) for row in rows]
