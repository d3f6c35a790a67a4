"""Practice Schemas — attempts, assignments and flags.

Invariants:
    - AttemptCreate.is_correct is accepted for auditing only; grading ignores it
    - AIReviewRequest carries 1..20 flag ids (checked in the route for a
      domain-coded 400)
"""

from datetime import datetime
from uuid import UUID
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from tutorassist.core.domain_types import AssignmentStatus


class AttemptCreate(BaseModel):
    question_id: UUID
    assignment_id: UUID | None = None
    answer: str | int | float | bool | list[Any] | None = None
    is_correct: bool | None = None
    time_spent_seconds: int | None = Field(None, ge=0, le=86_400)
    hints_used: int = Field(0, ge=0, le=100)


class AssignmentCreate(BaseModel):
    title: str = Field(max_length=300)
    description: str | None = Field(None, max_length=5000)
    student_profile_id: UUID | None = None
    question_ids: list[UUID] = Field(default_factory=list)
    due_at: datetime | None = None
    settings: dict[str, Any] = Field(default_factory=dict)
    status: AssignmentStatus = AssignmentStatus.ACTIVE

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title is required")
        return v


class AssignmentGenerateOptions(BaseModel):
    time_limit: int | None = Field(None, ge=1)
    shuffle_questions: bool = True
    show_results_immediately: bool = False


class AssignmentGenerateRequest(BaseModel):
    """Either student_ids + topic_ids (bank picks per student) or a free-text prompt."""
    student_id: UUID | None = None
    student_ids: list[UUID] = Field(default_factory=list)
    prompt: str | None = Field(None, max_length=4000)
    title: str | None = Field(None, max_length=300)
    topic_ids: list[UUID] = Field(default_factory=list)
    question_count: int = Field(10, ge=1, le=100)
    difficulty: Literal["easy", "medium", "hard", "mixed", "adaptive"] = "adaptive"
    due_date: datetime | None = None
    instructions: str | None = Field(None, max_length=5000)
    options: AssignmentGenerateOptions = Field(default_factory=AssignmentGenerateOptions)
    include_markscheme: bool = True
    include_solution_steps: bool = True
    focus_on_weak_areas: bool = False


class AssignmentRefineRequest(BaseModel):
    assignment: dict[str, Any]
    refinement_prompt: str = Field(max_length=4000)
    student_id: UUID | None = None


class AssignmentUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=300)
    description: str | None = Field(None, max_length=5000)
    due_at: datetime | None = None
    status: AssignmentStatus | None = None
    settings: dict[str, Any] | None = None


class FlagCreate(BaseModel):
    question_id: UUID
    flag_type: str = Field(max_length=30)
    comment: str | None = Field(None, max_length=2000)
    student_answer: str | None = Field(None, max_length=1000)
    attempt_id: UUID | None = None


class FlagUpdate(BaseModel):
    status: str = Field(max_length=20)
    review_notes: str | None = Field(None, max_length=2000)
    add_as_alternate: bool = False


class AIReviewRequest(BaseModel):
    flag_ids: list[UUID] = Field(default_factory=list)
