"""Google Connection — encrypted token storage, refresh-before-use, calendar client calls.

Invariants:
    - Stored tokens are ciphertext; decrypt_token recovers the plaintext
    - Tokens expiring within 60s are refreshed; others are used as-is
    - A refresh without a new refresh_token keeps the stored one
    - Calendar HTTP failures surface as ExternalServiceError

Design Decisions:
    - google_oauth.refresh_access_token is monkeypatched; calendar HTTP goes
      through httpx.MockTransport
"""

import json
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import httpx
import pytest

from tutorassist.core.clock import utcnow
from tutorassist.core.errors import ExternalServiceError
from tutorassist.infrastructure import google_calendar, google_oauth
from tutorassist.infrastructure.google_calendar import GoogleCalendarClient
from tutorassist.infrastructure.google_oauth import GoogleTokens
from tutorassist.infrastructure.token_cipher import decrypt_token, encrypt_token
from tutorassist.services import google_connection


def _tokens(access="ya29.first", refresh="1//refresh", expires_in=3600) -> GoogleTokens:
    return GoogleTokens(
        access_token=access,
        refresh_token=refresh,
        expires_at=utcnow() + timedelta(seconds=expires_in),
        scope="https://www.googleapis.com/auth/calendar.events",
    )


@pytest.fixture
def refresh_calls(monkeypatch):
    calls = []

    async def fake_refresh(refresh_token):
        calls.append(refresh_token)
        return GoogleTokens(
            access_token="ya29.refreshed", refresh_token=None,
            expires_at=utcnow() + timedelta(hours=1), scope=None,
        )

    monkeypatch.setattr(google_oauth, "refresh_access_token", fake_refresh)
    return calls


def _route_google(monkeypatch, handler):
    real_client = httpx.AsyncClient

    def client(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(google_calendar.httpx, "AsyncClient", client)


# --- storage -------------------------------------------------------------------------

async def test_tokens_are_encrypted_at_rest(test_db):
    user_id = uuid4()
    connection = await google_connection.save_connection(
        test_db, user_id, _tokens(), "terry@gmail.com",
    )
    assert connection.access_token != "ya29.first"
    assert decrypt_token(connection.access_token) == "ya29.first"
    assert decrypt_token(connection.refresh_token) == "1//refresh"
    assert connection.provider_email == "terry@gmail.com"


async def test_reconnect_overwrites_and_keeps_refresh_token(test_db):
    user_id = uuid4()
    await google_connection.save_connection(test_db, user_id, _tokens(), "terry@gmail.com")
    await google_connection.save_connection(
        test_db, user_id, _tokens(access="ya29.second", refresh=None), "terry@gmail.com",
    )

    connection = await google_connection.get_connection(test_db, user_id)
    assert decrypt_token(connection.access_token) == "ya29.second"
    assert decrypt_token(connection.refresh_token) == "1//refresh"


async def test_remove_connection(test_db):
    user_id = uuid4()
    await google_connection.save_connection(test_db, user_id, _tokens(), None)
    await google_connection.remove_connection(test_db, user_id)
    assert await google_connection.get_connection(test_db, user_id) is None


def test_tampered_ciphertext_is_rejected():
    cipher = encrypt_token("ya29.secret")
    with pytest.raises(ExternalServiceError):
        decrypt_token(cipher[:-4] + "AAAA")


# --- refresh -------------------------------------------------------------------------

async def test_not_connected(test_db):
    assert await google_connection.get_valid_access_token(test_db, uuid4()) is None
    assert await google_connection.calendar_client_for(test_db, uuid4()) is None


async def test_fresh_token_is_used_as_is(test_db, refresh_calls):
    user_id = uuid4()
    await google_connection.save_connection(test_db, user_id, _tokens(), None)
    assert await google_connection.get_valid_access_token(test_db, user_id) == "ya29.first"
    assert refresh_calls == []


async def test_expiring_token_is_refreshed(test_db, refresh_calls):
    user_id = uuid4()
    await google_connection.save_connection(test_db, user_id, _tokens(expires_in=30), None)

    token = await google_connection.get_valid_access_token(test_db, user_id)
    assert token == "ya29.refreshed"
    assert refresh_calls == ["1//refresh"]

    connection = await google_connection.get_connection(test_db, user_id)
    assert decrypt_token(connection.access_token) == "ya29.refreshed"
    assert decrypt_token(connection.refresh_token) == "1//refresh"


async def test_calendar_client_carries_valid_token(test_db, refresh_calls):
    user_id = uuid4()
    await google_connection.save_connection(test_db, user_id, _tokens(expires_in=-10), None)
    client = await google_connection.calendar_client_for(test_db, user_id)
    assert client.access_token == "ya29.refreshed"


# --- calendar client -----------------------------------------------------------------

async def test_create_event_requests_meet_link(monkeypatch):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={
            "id": "evt-1",
            "summary": "Algebra review",
            "start": {"dateTime": "2030-05-04T15:00:00+00:00"},
            "end": {"dateTime": "2030-05-04T16:00:00+00:00"},
            "htmlLink": "https://calendar.google.com/event?eid=1",
            "attendees": [{"email": "sam@example.com"}],
            "conferenceData": {"entryPoints": [
                {"entryPointType": "phone", "uri": "tel:+1-555"},
                {"entryPointType": "video", "uri": "https://meet.google.com/abc-defg-hij"},
            ]},
        })

    _route_google(monkeypatch, handler)
    start = datetime(2030, 5, 4, 15, 0, tzinfo=timezone.utc)
    event = await GoogleCalendarClient("ya29.token").create_event(
        "Algebra review", start, start + timedelta(hours=1), attendee_emails=["sam@example.com"],
    )

    assert event.meet_link == "https://meet.google.com/abc-defg-hij"
    assert event.attendees == ["sam@example.com"]
    request = seen[0]
    assert request.headers["Authorization"] == "Bearer ya29.token"
    assert request.url.params["conferenceDataVersion"] == "1"
    body = json.loads(request.content)
    assert body["conferenceData"]["createRequest"]["conferenceSolutionKey"] == {"type": "hangoutsMeet"}
    assert body["start"] == {"dateTime": "2030-05-04T15:00:00+00:00", "timeZone": "UTC"}


async def test_list_upcoming_parses_all_day_events(monkeypatch):
    def handler(request):
        return httpx.Response(200, json={"items": [
            {"id": "a", "start": {"date": "2030-05-05"}, "end": {"date": "2030-05-06"}},
        ]})

    _route_google(monkeypatch, handler)
    [event] = await GoogleCalendarClient("ya29.token").list_upcoming(query="tutoring")
    assert event.summary == "Untitled"
    assert event.start == "2030-05-05"
    assert event.to_dict()["meetLink"] is None


async def test_http_error_becomes_external_service_error(monkeypatch):
    _route_google(monkeypatch, lambda request: httpx.Response(500))
    with pytest.raises(ExternalServiceError, match="DELETE returned 500"):
        await GoogleCalendarClient("ya29.token").delete_event("evt-1")
