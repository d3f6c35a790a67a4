"""Question ORM — the question bank, plus one stored embedding per question.

Invariants:
    - difficulty in 1..5 (ck_question_difficulty)
    - correct_answer_json shape depends on answer_type (see core/answer_grading.py)
    - times_correct <= times_attempted; both only ever incremented
    - topic_id is nulled (not cascaded) when a topic is deleted
    - At most one embedding row per question (question_id unique)

Design Decisions:
    - Embedding stored in a pgvector column; similarity is ranked in SQL with the
      cosine distance operator (services/similarity_search.py)
    - text_hash (md5 of the embedded text) lets the embedding job skip
      unchanged questions
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    String, Text, Integer, Float, DateTime, ForeignKey, JSON, CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID
from pgvector.sqlalchemy import Vector

from tutorassist.db.base import Base

# text-embedding-3-small
EMBEDDING_DIMENSIONS = 1536


class Question(Base):
    __tablename__ = "questions"
    __table_args__ = (
        CheckConstraint("difficulty BETWEEN 1 AND 5", name="ck_question_difficulty"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    workspace_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    topic_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("topics.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    origin: Mapped[str] = mapped_column(String(20), nullable=False, default="manual")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    prompt_text: Mapped[str] = mapped_column(Text, nullable=False)
    prompt_latex: Mapped[str | None] = mapped_column(Text, nullable=True)
    answer_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="short_answer",
    )
    correct_answer_json: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    tolerance: Mapped[float | None] = mapped_column(Float, nullable=True)
    difficulty: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    grade_level: Mapped[str | None] = mapped_column(String(50), nullable=True)
    hints: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    solution_steps: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    quality_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    times_attempted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    times_correct: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    parent_question_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("questions.id", ondelete="SET NULL"), nullable=True,
    )
    source_material_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("source_materials.id", ondelete="SET NULL"),
        nullable=True,
    )
    generation_metadata: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class QuestionEmbedding(Base):
    __tablename__ = "question_embeddings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    workspace_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("questions.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    embedding: Mapped[list[float]] = mapped_column(Vector(EMBEDDING_DIMENSIONS), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    text_hash: Mapped[str] = mapped_column(String(32), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
