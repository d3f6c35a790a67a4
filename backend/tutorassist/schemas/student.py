"""Student Schemas — tutor-managed profile create/update and student self-update.

Invariants:
    - name is stripped; whitespace-only names are rejected (400)
    - StudentSelfUpdate exposes only name, age, school, grade_current
"""

from pydantic import BaseModel, EmailStr, Field, field_validator


def _strip_required(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("name is required")
    return v


class StudentCreate(BaseModel):
    name: str = Field(max_length=200)
    email: EmailStr | None = None
    age: int | None = Field(None, ge=3, le=120)
    school: str | None = Field(None, max_length=200)
    grade_current: str | None = Field(None, max_length=50)
    private_notes: str | None = Field(None, max_length=10_000)
    tags: list[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return _strip_required(v)


class StudentUpdate(BaseModel):
    name: str | None = Field(None, max_length=200)
    email: EmailStr | None = None
    age: int | None = Field(None, ge=3, le=120)
    school: str | None = Field(None, max_length=200)
    grade_current: str | None = Field(None, max_length=50)
    private_notes: str | None = Field(None, max_length=10_000)
    tags: list[str] | None = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str | None) -> str | None:
        return _strip_required(v) if v is not None else v


class StudentSelfUpdate(BaseModel):
    name: str | None = Field(None, max_length=200)
    age: int | None = Field(None, ge=3, le=120)
    school: str | None = Field(None, max_length=200)
    grade_current: str | None = Field(None, max_length=50)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str | None) -> str | None:
        return _strip_required(v) if v is not None else v
