"""Auth Schemas — signup, login, invite and profile bodies.

Invariants:
    - email is stripped and lowercased before any lookup
    - password length is checked in the route (400 with a domain error code),
      not here, so the message matches the invite flow
"""

from pydantic import BaseModel, EmailStr, Field, field_validator


class _EmailBody(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=200)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class SignupRequest(_EmailBody):
    full_name: str | None = Field(None, max_length=200)


class LoginRequest(_EmailBody):
    pass


class InviteAcceptRequest(_EmailBody):
    token: str = Field(min_length=1, max_length=64)
    full_name: str | None = Field(None, max_length=200)


class InviteSendRequest(BaseModel):
    token: str = Field(min_length=1, max_length=64)
    email: EmailStr
    student_name: str | None = Field(None, max_length=200)


class ProfileUpdate(BaseModel):
    full_name: str = Field(max_length=200)

    @field_validator("full_name")
    @classmethod
    def strip_full_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Full name is required")
        return v
