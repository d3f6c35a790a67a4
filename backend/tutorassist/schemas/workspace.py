"""Workspace Schemas — creation, join, settings and invite bodies."""

from uuid import UUID
from typing import Any

from pydantic import BaseModel, EmailStr, Field, field_validator


class WorkspaceCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty or whitespace")
        return v


class WorkspaceJoin(BaseModel):
    token: str = Field(min_length=1, max_length=64)


class WorkspaceSettingsUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    settings: dict[str, Any] | None = None


class InviteCreate(BaseModel):
    student_profile_id: UUID | None = None
    email: EmailStr | None = None
    expires_in_days: int | None = Field(None, ge=1, le=365)
