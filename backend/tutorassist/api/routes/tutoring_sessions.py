"""Tutoring Session Routes — scheduling, student change requests, Google Calendar mirroring.

Invariants:
    - ends_at > starts_at (400 otherwise); ends_at may be derived from duration_minutes
    - Students see only sessions where they are the student, and may only
      submit change_request_text (which stamps change_request_at)
    - Calendar writes on create / patch / delete are best-effort: an
      ExternalServiceError is logged and the request still succeeds
    - /sync is the explicit path: not connected is a 400, calendar errors surface (502)
"""

import logging
from datetime import timedelta
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.api.dependencies import UserContext, require_context, require_tutor
from tutorassist.api.lookups import get_in_workspace_or_404
from tutorassist.core.clock import as_utc, iso, utcnow
from tutorassist.core.domain_types import SessionStatus
from tutorassist.core.errors import (
    BusinessRuleError, ExternalServiceError, PermissionDeniedError,
    ResourceNotFoundError, ValidationFailedError,
)
from tutorassist.infrastructure.database import get_db
from tutorassist.infrastructure.google_calendar import GoogleCalendarClient
from tutorassist.models.student_profile import StudentProfile
from tutorassist.models.tutoring_session import TutoringSession
from tutorassist.models.user import User
from tutorassist.schemas.tutoring_session import SessionCreate, SessionUpdate
from tutorassist.services import google_connection

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/sessions", tags=["sessions"])


def serialize_session(session: TutoringSession) -> dict:
    return {
        "id": str(session.id),
        "tutor_user_id": str(session.tutor_user_id) if session.tutor_user_id else None,
        "student_user_id": str(session.student_user_id) if session.student_user_id else None,
        "student_profile_id": (
            str(session.student_profile_id) if session.student_profile_id else None
        ),
        "title": session.title,
        "description": session.description,
        "starts_at": iso(session.starts_at),
        "ends_at": iso(session.ends_at),
        "status": session.status,
        "google_event_id": session.google_event_id,
        "meet_link": session.meet_link,
        "calendar_html_link": session.calendar_html_link,
        "change_request_text": session.change_request_text,
        "change_request_at": iso(session.change_request_at),
        "created_at": iso(session.created_at),
    }


def _check_window(starts_at, ends_at) -> None:
    if as_utc(ends_at) <= as_utc(starts_at):
        raise ValidationFailedError("ends_at must be after starts_at", "ends_at")


async def _attendee_emails(db: AsyncSession, session: TutoringSession) -> list[str]:
    email = None
    if session.student_profile_id:
        profile = await db.get(StudentProfile, session.student_profile_id)
        email = profile.email if profile else None
    if not email and session.student_user_id:
        user = await db.get(User, session.student_user_id)
        email = user.email if user else None
    return [email] if email else []


async def _push_to_calendar(
    db: AsyncSession, client: GoogleCalendarClient, session: TutoringSession,
) -> None:
    """Create the event, or patch it when the session already has one."""
    attendees = await _attendee_emails(db, session)
    if session.google_event_id:
        event = await client.patch_event(
            session.google_event_id,
            summary=session.title,
            description=session.description,
            starts_at=as_utc(session.starts_at),
            ends_at=as_utc(session.ends_at),
            attendee_emails=attendees,
        )
    else:
        event = await client.create_event(
            session.title,
            as_utc(session.starts_at),
            as_utc(session.ends_at),
            description=session.description,
            attendee_emails=attendees,
        )
    session.google_event_id = event.id
    session.meet_link = event.meet_link or session.meet_link
    session.calendar_html_link = event.html_link or session.calendar_html_link


async def _sync_best_effort(db: AsyncSession, ctx: UserContext, session: TutoringSession) -> str | None:
    """Returns the error message on failure, None when synced or not connected."""
    try:
        client = await google_connection.calendar_client_for(db, ctx.user_id)
        if client is None:
            return None
        await _push_to_calendar(db, client, session)
        await db.commit()
    except ExternalServiceError as e:
        logger.warning(
            f"Calendar sync failed for session {session.id}: {e.message}",
            extra={"workspace_id": str(ctx.workspace_id), "user_id": str(ctx.user_id)},
        )
        return e.message
    return None


async def _visible_session_or_404(
    db: AsyncSession, ctx: UserContext, session_id: UUID,
) -> TutoringSession:
    session = await get_in_workspace_or_404(
        db, TutoringSession, session_id, ctx.workspace_id, "Session",
    )
    if not ctx.is_tutor and session.student_user_id != ctx.user_id:
        raise ResourceNotFoundError("Session", str(session_id))
    return session


@router.get("")
async def list_sessions(
    upcoming: bool = False,
    student_profile_id: UUID | None = None,
    ctx: UserContext = Depends(require_context),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(TutoringSession).where(TutoringSession.workspace_id == ctx.workspace_id)
    if not ctx.is_tutor:
        stmt = stmt.where(TutoringSession.student_user_id == ctx.user_id)
    if upcoming:
        stmt = stmt.where(TutoringSession.starts_at >= utcnow())
    if student_profile_id is not None:
        stmt = stmt.where(TutoringSession.student_profile_id == student_profile_id)
    rows = (await db.execute(stmt.order_by(TutoringSession.starts_at))).scalars().all()
    return {"sessions": [serialize_session(s) for s in rows]}


@router.get("/calendar")
async def list_calendar_events(
    max_results: int = Query(10, ge=1, le=100),
    q: str | None = None,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    client = await google_connection.calendar_client_for(db, ctx.user_id)
    if client is None:
        return {"events": [], "connected": False}
    events = await client.list_upcoming(max_results=max_results, query=q)
    return {"events": [e.to_dict() for e in events], "connected": True}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_session(
    body: SessionCreate,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    if body.ends_at is not None:
        ends_at = body.ends_at
    elif body.duration_minutes is not None:
        ends_at = body.starts_at + timedelta(minutes=body.duration_minutes)
    else:
        raise ValidationFailedError("ends_at or duration_minutes is required", "ends_at")
    _check_window(body.starts_at, ends_at)

    student_user_id = None
    if body.student_profile_id is not None:
        profile = await get_in_workspace_or_404(
            db, StudentProfile, body.student_profile_id, ctx.workspace_id, "Student",
        )
        student_user_id = profile.user_id

    session = TutoringSession(
        workspace_id=ctx.workspace_id,
        tutor_user_id=ctx.user_id,
        student_user_id=student_user_id,
        student_profile_id=body.student_profile_id,
        title=body.title.strip(),
        description=body.description,
        starts_at=body.starts_at,
        ends_at=ends_at,
        status=SessionStatus.SCHEDULED.value,
    )
    db.add(session)
    await db.commit()

    calendar_error = None
    if body.sync_calendar:
        calendar_error = await _sync_best_effort(db, ctx, session)
    return {"session": serialize_session(session), "calendarError": calendar_error}


@router.patch("/{session_id}")
async def update_session(
    session_id: UUID,
    body: SessionUpdate,
    ctx: UserContext = Depends(require_context),
    db: AsyncSession = Depends(get_db),
):
    session = await _visible_session_or_404(db, ctx, session_id)
    changes = body.model_dump(exclude_unset=True)

    if not ctx.is_tutor:
        if set(changes) - {"change_request_text"}:
            raise PermissionDeniedError("Students can only submit change requests")
        session.change_request_text = changes.get("change_request_text")
        session.change_request_at = utcnow()
        await db.commit()
        logger.info(
            "Session change requested",
            extra={"workspace_id": str(ctx.workspace_id), "user_id": str(ctx.user_id)},
        )
        return {"session": serialize_session(session)}

    starts_at = changes.get("starts_at") or session.starts_at
    ends_at = changes.get("ends_at") or session.ends_at
    if "starts_at" in changes or "ends_at" in changes:
        _check_window(starts_at, ends_at)
        session.starts_at = starts_at
        session.ends_at = ends_at
    if changes.get("title"):
        session.title = changes["title"].strip()
    if "description" in changes:
        session.description = changes["description"]
    if body.status is not None:
        session.status = body.status.value
    if "change_request_text" in changes:
        session.change_request_text = changes["change_request_text"]
    await db.commit()

    calendar_error = None
    if session.google_event_id:
        calendar_error = await _sync_best_effort(db, ctx, session)
    return {"session": serialize_session(session), "calendarError": calendar_error}


@router.delete("/{session_id}")
async def delete_session(
    session_id: UUID,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    session = await get_in_workspace_or_404(
        db, TutoringSession, session_id, ctx.workspace_id, "Session",
    )
    if session.google_event_id:
        try:
            client = await google_connection.calendar_client_for(db, ctx.user_id)
            if client is not None:
                await client.delete_event(session.google_event_id)
        except ExternalServiceError as e:
            logger.warning(
                f"Calendar event delete failed for session {session.id}: {e.message}",
                extra={"workspace_id": str(ctx.workspace_id)},
            )
    await db.delete(session)
    await db.commit()
    return {"success": True}


@router.post("/{session_id}/sync")
async def sync_session(
    session_id: UUID,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    session = await get_in_workspace_or_404(
        db, TutoringSession, session_id, ctx.workspace_id, "Session",
    )
    client = await google_connection.calendar_client_for(db, ctx.user_id)
    if client is None:
        raise BusinessRuleError("Google Calendar is not connected", "CALENDAR_NOT_CONNECTED")
    await _push_to_calendar(db, client, session)
    await db.commit()
    return {"session": serialize_session(session)}
