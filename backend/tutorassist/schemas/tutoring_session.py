"""Tutoring Session Schemas — scheduling bodies.

Invariants:
    - SessionCreate needs ends_at or duration_minutes; ends_at > starts_at is
      enforced by the route so the 400 carries a domain error code
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from tutorassist.core.domain_types import SessionStatus


class SessionCreate(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    starts_at: datetime
    ends_at: datetime | None = None
    duration_minutes: int | None = Field(None, ge=5, le=600)
    student_profile_id: UUID | None = None
    description: str | None = Field(None, max_length=5000)
    sync_calendar: bool = True


class SessionUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=300)
    description: str | None = Field(None, max_length=5000)
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    status: SessionStatus | None = None
    change_request_text: str | None = Field(None, max_length=2000)
