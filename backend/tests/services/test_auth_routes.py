"""Auth Routes — signup, login, status, signout and the Google OAuth handshake.

Invariants:
    - Passwords shorter than 8 characters are rejected with 400
    - /auth/status never returns 401
    - The OAuth callback always 302s back to the app with error=... or success=...

Tests:
    - Signup/login happy paths and failures
    - Status for anonymous, signed-in and workspace members
    - OAuth start cookies and every callback outcome
    - Display name updates through settings/profile
"""

from datetime import timedelta
from urllib.parse import parse_qs, urlparse

from tutorassist.core.clock import utcnow
from tutorassist.core.errors import ExternalServiceError
from tutorassist.infrastructure import google_oauth
from tutorassist.infrastructure.google_oauth import GoogleTokens
from tutorassist.infrastructure.security import create_access_token

from tests.services.actors import PASSWORD, auth_headers, signup


# --- signup / login ------------------------------------------------------------

async def test_signup_returns_token_and_user(client):
    res = await client.post("/api/v1/auth/signup", json={
        "email": "  New.User@Example.com ", "password": PASSWORD, "full_name": "New User",
    })
    assert res.status_code == 201
    body = res.json()
    assert body["token_type"] == "bearer"
    assert body["access_token"]
    assert body["user"]["email"] == "new.user@example.com"
    assert body["user"]["full_name"] == "New User"


async def test_signup_rejects_short_password(client):
    res = await client.post("/api/v1/auth/signup", json={
        "email": "short@example.com", "password": "abc",
    })
    assert res.status_code == 400
    assert res.json()["error"]["field"] == "password"


async def test_signup_rejects_invalid_email(client):
    res = await client.post("/api/v1/auth/signup", json={
        "email": "not-an-email", "password": PASSWORD,
    })
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_duplicate_signup_conflicts(client):
    await signup(client, "dup@example.com")
    res = await client.post("/api/v1/auth/signup", json={
        "email": "DUP@example.com", "password": PASSWORD,
    })
    assert res.status_code == 409


async def test_login_round_trip(client):
    await signup(client, "login@example.com")
    res = await client.post("/api/v1/auth/login", json={
        "email": "login@example.com", "password": PASSWORD,
    })
    assert res.status_code == 200
    me = await client.get("/api/v1/auth/status", headers=auth_headers(res.json()["access_token"]))
    assert me.json()["authenticated"] is True


async def test_login_with_wrong_password_is_401(client):
    await signup(client, "wrong@example.com")
    res = await client.post("/api/v1/auth/login", json={
        "email": "wrong@example.com", "password": "not-the-password",
    })
    assert res.status_code == 401
    assert res.json()["error"]["code"] == "UNAUTHORIZED"


# --- status / signout ----------------------------------------------------------

async def test_status_anonymous_is_not_an_error(client):
    res = await client.get("/api/v1/auth/status")
    assert res.status_code == 200
    assert res.json() == {"authenticated": False, "google_connected": False}


async def test_status_with_garbage_token_reports_signed_out(client):
    res = await client.get("/api/v1/auth/status", headers=auth_headers("garbage"))
    assert res.status_code == 200
    assert res.json()["authenticated"] is False


async def test_status_for_tutor(client, tutor):
    body = (await client.get("/api/v1/auth/status", headers=tutor["headers"])).json()
    assert body["role"] == "tutor"
    assert body["workspace_id"] == tutor["workspace_id"]
    assert body["is_platform_owner"] is False
    assert body["google_connected"] is False


async def test_signout(client):
    res = await client.post("/api/v1/auth/signout")
    assert res.json() == {"success": True}


async def test_protected_route_without_token_is_401(client):
    res = await client.get("/api/v1/topics")
    assert res.status_code == 401


# --- Google OAuth ----------------------------------------------------------------

async def test_google_start_sets_oauth_cookies(client, tutor):
    res = await client.get(
        "/api/v1/auth/google", params={"return_to": "/tutor/calendar"}, headers=tutor["headers"],
    )
    assert res.status_code == 307
    assert res.headers["location"].startswith("https://accounts.google.com/")
    assert "access_type=offline" in res.headers["location"]
    assert res.cookies.get("oauth_return_to") == "/tutor/calendar"
    assert res.cookies.get("oauth_state")
    assert res.cookies.get("oauth_session")


async def test_google_start_is_tutor_only(client, student):
    res = await client.get("/api/v1/auth/google", headers=student["headers"])
    assert res.status_code == 403


def _redirect_query(res) -> dict:
    assert res.status_code == 302
    location = urlparse(res.headers["location"])
    assert f"{location.scheme}://{location.netloc}" == "http://localhost:3000"
    return {k: v[0] for k, v in parse_qs(location.query).items()}


def _set_oauth_cookies(client, user_id, state="state-123"):
    client.cookies.set("oauth_state", state)
    client.cookies.set("oauth_return_to", "/tutor/settings")
    client.cookies.set("oauth_session", create_access_token(user_id, "tutor@example.com"))


async def test_callback_reports_google_error(client):
    res = await client.get("/api/v1/auth/google/callback", params={"error": "access_denied"})
    assert _redirect_query(res) == {"error": "google_auth_failed"}


async def test_callback_requires_code_and_state(client):
    res = await client.get("/api/v1/auth/google/callback", params={"code": "abc"})
    assert _redirect_query(res) == {"error": "missing_params"}


async def test_callback_rejects_state_mismatch(client, tutor):
    _set_oauth_cookies(client, tutor["user_id"])
    res = await client.get(
        "/api/v1/auth/google/callback", params={"code": "abc", "state": "forged"},
    )
    assert _redirect_query(res) == {"error": "invalid_state"}


async def test_callback_requires_session_cookie(client):
    client.cookies.set("oauth_state", "state-123")
    res = await client.get(
        "/api/v1/auth/google/callback", params={"code": "abc", "state": "state-123"},
    )
    assert _redirect_query(res) == {"error": "not_authenticated"}


async def test_callback_reports_exchange_failure(client, tutor, monkeypatch):
    async def failing_exchange(code):
        raise ExternalServiceError("google", "Token request returned 400")

    monkeypatch.setattr(google_oauth, "exchange_code", failing_exchange)
    _set_oauth_cookies(client, tutor["user_id"])
    res = await client.get(
        "/api/v1/auth/google/callback", params={"code": "abc", "state": "state-123"},
    )
    assert _redirect_query(res) == {"error": "token_exchange_failed"}


async def test_callback_saves_connection(client, tutor, monkeypatch):
    async def exchange(code):
        assert code == "auth-code"
        return GoogleTokens(
            access_token="ya29.access",
            refresh_token="1//refresh",
            expires_at=utcnow() + timedelta(hours=1),
            scope="calendar",
        )

    async def userinfo(access_token):
        assert access_token == "ya29.access"
        return {"email": "terry@gmail.com"}

    monkeypatch.setattr(google_oauth, "exchange_code", exchange)
    monkeypatch.setattr(google_oauth, "fetch_userinfo", userinfo)
    _set_oauth_cookies(client, tutor["user_id"])

    res = await client.get(
        "/api/v1/auth/google/callback", params={"code": "auth-code", "state": "state-123"},
    )
    assert _redirect_query(res) == {"success": "google_connected"}

    client.cookies.clear()
    settings = (await client.get("/api/v1/settings/google", headers=tutor["headers"])).json()
    assert settings["connected"] is True
    assert settings["email"] == "terry@gmail.com"


# --- profile settings ---

async def test_update_profile_name(client):
    actor = await signup(client, "pat@example.com", "Pat")
    res = await client.patch(
        "/api/v1/settings/profile", json={"full_name": "  Pat Pupil  "}, headers=actor["headers"],
    )
    assert res.status_code == 200, res.text
    assert res.json()["user"]["full_name"] == "Pat Pupil"

    status = (await client.get("/api/v1/auth/status", headers=actor["headers"])).json()
    assert status["user"]["full_name"] == "Pat Pupil"


async def test_update_profile_requires_name(client):
    actor = await signup(client, "pat@example.com")
    res = await client.patch(
        "/api/v1/settings/profile", json={"full_name": "   "}, headers=actor["headers"],
    )
    assert res.status_code == 400


async def test_update_profile_requires_auth(client):
    res = await client.patch("/api/v1/settings/profile", json={"full_name": "Pat"})
    assert res.status_code == 401
