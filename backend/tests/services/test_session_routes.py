"""Tutoring Session Routes — scheduling, change requests and calendar mirroring.

Invariants:
    - ends_at must follow starts_at; duration_minutes derives ends_at
    - Students may only submit change requests on their own sessions
    - Calendar sync on create/patch is best-effort; /sync is strict

Design Decisions:
    - google_connection.calendar_client_for is swapped for a recording fake,
      so no test reaches Google
"""

from datetime import datetime, timedelta, timezone

import pytest

from tutorassist.core.errors import ExternalServiceError
from tutorassist.infrastructure.google_calendar import CalendarEvent
from tutorassist.services import google_connection

START = datetime(2030, 5, 4, 15, 0, tzinfo=timezone.utc)


class FakeCalendar:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.created: list[dict] = []
        self.patched: list[dict] = []
        self.deleted: list[str] = []

    def _check(self):
        if self.fail:
            raise ExternalServiceError("google_calendar", "POST returned 500")

    async def create_event(self, summary, starts_at, ends_at, description=None, attendee_emails=None):
        self._check()
        self.created.append({"summary": summary, "attendees": attendee_emails, "start": starts_at})
        return CalendarEvent(
            id=f"evt-{len(self.created)}", summary=summary,
            start=starts_at.isoformat(), end=ends_at.isoformat(),
            html_link="https://calendar.google.com/event?eid=1",
            meet_link="https://meet.google.com/abc-defg-hij",
        )

    async def patch_event(self, event_id, **fields):
        self._check()
        self.patched.append({"id": event_id, **fields})
        return CalendarEvent(id=event_id, summary=fields.get("summary") or "", start=None, end=None)

    async def delete_event(self, event_id):
        self._check()
        self.deleted.append(event_id)

    async def list_upcoming(self, max_results=10, query=None):
        return [CalendarEvent(id="evt-9", summary="Existing", start="2030-05-01T10:00:00Z", end=None)]


@pytest.fixture
def calendar(monkeypatch):
    fake = FakeCalendar()

    async def client_for(db, user_id):
        return fake

    monkeypatch.setattr(google_connection, "calendar_client_for", client_for)
    return fake


async def _schedule(client, tutor, student=None, **extra):
    payload = {"title": "Algebra review", "starts_at": START.isoformat(), "duration_minutes": 60}
    if student:
        payload["student_profile_id"] = student["profile_id"]
    payload.update(extra)
    return await client.post("/api/v1/sessions", json=payload, headers=tutor["headers"])


# --- scheduling ----------------------------------------------------------------------

async def test_create_without_calendar_connection(client, tutor, student):
    res = await _schedule(client, tutor, student)
    assert res.status_code == 201
    body = res.json()
    assert body["calendarError"] is None
    session = body["session"]
    assert session["status"] == "scheduled"
    assert session["student_user_id"] == student["user_id"]
    assert session["ends_at"] == (START + timedelta(hours=1)).isoformat()
    assert session["google_event_id"] is None


async def test_end_before_start_is_rejected(client, tutor):
    res = await _schedule(
        client, tutor, duration_minutes=None, ends_at=(START - timedelta(minutes=5)).isoformat(),
    )
    assert res.status_code == 400
    assert res.json()["error"]["field"] == "ends_at"


async def test_end_or_duration_required(client, tutor):
    res = await _schedule(client, tutor, duration_minutes=None)
    assert res.status_code == 400


async def test_student_sees_only_own_sessions(client, tutor, student):
    await _schedule(client, tutor, student)
    await _schedule(client, tutor, title="Office hours")

    tutor_view = (await client.get("/api/v1/sessions", headers=tutor["headers"])).json()["sessions"]
    assert len(tutor_view) == 2
    student_view = (await client.get("/api/v1/sessions", headers=student["headers"])).json()["sessions"]
    assert [s["title"] for s in student_view] == ["Algebra review"]


async def test_upcoming_filter(client, tutor):
    await _schedule(client, tutor, starts_at="2001-01-01T10:00:00+00:00")
    await _schedule(client, tutor)
    upcoming = (await client.get(
        "/api/v1/sessions", params={"upcoming": "true"}, headers=tutor["headers"],
    )).json()["sessions"]
    assert [s["starts_at"] for s in upcoming] == [START.isoformat()]


async def test_student_change_request(client, tutor, student):
    session = (await _schedule(client, tutor, student)).json()["session"]
    res = await client.patch(
        f"/api/v1/sessions/{session['id']}",
        json={"change_request_text": "Can we move to 4pm?"},
        headers=student["headers"],
    )
    assert res.status_code == 200
    body = res.json()["session"]
    assert body["change_request_text"] == "Can we move to 4pm?"
    assert body["change_request_at"] is not None


async def test_student_cannot_reschedule(client, tutor, student):
    session = (await _schedule(client, tutor, student)).json()["session"]
    res = await client.patch(
        f"/api/v1/sessions/{session['id']}", json={"title": "Mine now"}, headers=student["headers"],
    )
    assert res.status_code == 403


async def test_tutor_updates_status(client, tutor):
    session = (await _schedule(client, tutor)).json()["session"]
    res = await client.patch(
        f"/api/v1/sessions/{session['id']}", json={"status": "confirmed"}, headers=tutor["headers"],
    )
    assert res.json()["session"]["status"] == "confirmed"


# --- calendar mirroring --------------------------------------------------------------

async def test_create_pushes_event_with_meet_link(client, tutor, student, calendar):
    res = await _schedule(client, tutor, student)
    session = res.json()["session"]
    assert session["google_event_id"] == "evt-1"
    assert session["meet_link"] == "https://meet.google.com/abc-defg-hij"
    assert calendar.created[0]["attendees"] == ["sam@example.com"]


async def test_calendar_failure_does_not_fail_create(client, tutor, calendar):
    calendar.fail = True
    res = await _schedule(client, tutor)
    assert res.status_code == 201
    assert res.json()["calendarError"] == "google_calendar: POST returned 500"


async def test_patch_mirrors_to_existing_event(client, tutor, calendar):
    session = (await _schedule(client, tutor)).json()["session"]
    await client.patch(
        f"/api/v1/sessions/{session['id']}", json={"title": "Moved"}, headers=tutor["headers"],
    )
    assert calendar.patched[0]["id"] == "evt-1"
    assert calendar.patched[0]["summary"] == "Moved"


async def test_delete_removes_event(client, tutor, calendar):
    session = (await _schedule(client, tutor)).json()["session"]
    res = await client.delete(f"/api/v1/sessions/{session['id']}", headers=tutor["headers"])
    assert res.json() == {"success": True}
    assert calendar.deleted == ["evt-1"]


async def test_sync_requires_connection(client, tutor):
    session = (await _schedule(client, tutor, sync_calendar=False)).json()["session"]
    res = await client.post(f"/api/v1/sessions/{session['id']}/sync", headers=tutor["headers"])
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "CALENDAR_NOT_CONNECTED"


async def test_sync_surfaces_calendar_errors(client, tutor, calendar):
    session = (await _schedule(client, tutor, sync_calendar=False)).json()["session"]
    calendar.fail = True
    res = await client.post(f"/api/v1/sessions/{session['id']}/sync", headers=tutor["headers"])
    assert res.status_code == 502


async def test_calendar_listing(client, tutor, calendar):
    res = await client.get("/api/v1/sessions/calendar", headers=tutor["headers"])
    body = res.json()
    assert body["connected"] is True
    assert body["events"][0]["id"] == "evt-9"


async def test_calendar_listing_not_connected(client, tutor):
    res = await client.get("/api/v1/sessions/calendar", headers=tutor["headers"])
    assert res.json() == {"events": [], "connected": False}
