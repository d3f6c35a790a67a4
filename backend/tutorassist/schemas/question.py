"""Question Schemas — topics, question CRUD, generation and variant requests.

Invariants:
    - QuestionCreate.difficulty accepts 1..5 or a named level; unknown names map to 3
    - GenerateQuestionsRequest.count is 1..20
    - Bulk requests carry at least one item; unknown bulk actions are rejected
    - answer_type is validated against AnswerType

Design Decisions:
    - answer_latex kept as a legacy input: wrapped into {"value": ...} by the route
      when correct_answer_json is absent
"""

from uuid import UUID
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from tutorassist.core.domain_types import (
    AnswerType, DIFFICULTY_NAMES, MAX_DIFFICULTY, MIN_DIFFICULTY, QuestionStatus,
)


class TopicCreate(BaseModel):
    name: str = Field(max_length=200)
    description: str | None = Field(None, max_length=2000)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name is required")
        return v


class TopicUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, max_length=2000)


class TopicMerge(BaseModel):
    canonical_topic_id: UUID
    merge_topic_ids: list[UUID] = Field(min_length=1)
    new_name: str | None = Field(None, max_length=200)


def parse_difficulty(value: Any) -> int:
    if isinstance(value, bool):
        return 3
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        if value.strip().isdigit():
            return int(value.strip())
        return DIFFICULTY_NAMES.get(value.strip().lower(), 3)
    return 3


class QuestionCreate(BaseModel):
    topic_id: UUID | None = None
    prompt_text: str = Field(max_length=10_000)
    prompt_latex: str | None = Field(None, max_length=10_000)
    answer_type: AnswerType = AnswerType.SHORT_ANSWER
    correct_answer_json: dict[str, Any] | None = None
    answer_latex: str | None = Field(None, max_length=2000)
    tolerance: float | None = Field(None, ge=0)
    difficulty: int | str = 3
    grade_level: str | None = Field(None, max_length=50)
    hints: list[str] = Field(default_factory=list)
    solution_steps: list[Any] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)

    @field_validator("prompt_text")
    @classmethod
    def strip_prompt(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("prompt_text is required")
        return v

    @field_validator("difficulty")
    @classmethod
    def normalize_difficulty(cls, v: int | str) -> int:
        level = parse_difficulty(v)
        if not MIN_DIFFICULTY <= level <= MAX_DIFFICULTY:
            raise ValueError("difficulty must be between 1 and 5")
        return level


class QuestionUpdate(BaseModel):
    topic_id: UUID | None = None
    prompt_text: str | None = Field(None, min_length=1, max_length=10_000)
    prompt_latex: str | None = Field(None, max_length=10_000)
    answer_type: AnswerType | None = None
    correct_answer_json: dict[str, Any] | None = None
    tolerance: float | None = Field(None, ge=0)
    difficulty: int | None = Field(None, ge=MIN_DIFFICULTY, le=MAX_DIFFICULTY)
    grade_level: str | None = Field(None, max_length=50)
    hints: list[str] | None = None
    solution_steps: list[Any] | None = None
    tags: list[str] | None = None
    status: QuestionStatus | None = None


class GenerateQuestionsRequest(BaseModel):
    topic_id: UUID
    count: int = Field(5, ge=1, le=20)
    difficulty: Literal["easy", "medium", "hard", "mixed"] = "mixed"
    style: str | None = Field(None, max_length=500)
    material_id: UUID | None = None


class VariantRequest(BaseModel):
    variation_type: Literal["similar", "harder", "easier"] = "similar"


class EmbeddingsRequest(BaseModel):
    question_ids: list[UUID] | None = None


class BulkGenerateItem(BaseModel):
    topic_id: UUID
    count: int = Field(5, ge=1)
    difficulty: Literal["easy", "medium", "hard", "mixed"] = "mixed"


class BulkGenerateRequest(BaseModel):
    """Per-topic counts are capped by the route: 25 realtime, 100 batched."""
    requests: list[BulkGenerateItem] = Field(min_length=1)
    use_batch_api: bool = False
    style: str | None = Field(None, max_length=500)


class BulkActionRequest(BaseModel):
    action: Literal["archive", "delete", "activate", "assign"]
    question_ids: list[UUID] = Field(min_length=1)


class PdfRequest(BaseModel):
    title: str = Field("Practice Questions", min_length=1, max_length=300)
    question_ids: list[UUID] = Field(min_length=1, max_length=500)
    include_answers: bool = False
    include_hints: bool = False
    student_id: UUID | None = None
    assignment_id: UUID | None = None
    immediate: bool = False
