"""Invite Routes — public preview and account creation through an invite.

Invariants:
    - Unknown tokens are 404; used and expired invites are reported in the preview
    - accept enforces the invited email and refuses existing accounts with 409
    - A claimed profile cannot be claimed again
    - send mails a link to a redeemable invite of the tutor's own workspace, escaping
      every value in the HTML part
"""

from tutorassist.config import get_settings

from tests.services.actors import PASSWORD, signup


async def _create_profile(client, tutor, email="pat@example.com", name="Pat Pupil"):
    res = await client.post(
        "/api/v1/students", json={"name": name, "email": email}, headers=tutor["headers"],
    )
    assert res.status_code == 201, res.text
    return res.json()


async def test_preview_unknown_token(client):
    res = await client.get("/api/v1/invites/does-not-exist")
    assert res.status_code == 404


async def test_preview_profile_invite(client, tutor):
    created = await _create_profile(client, tutor)
    res = await client.get(f"/api/v1/invites/{created['inviteToken']}")
    assert res.status_code == 200
    body = res.json()
    assert body["workspaceName"] == "Algebra Club"
    assert body["studentName"] == "Pat Pupil"
    assert body["expectedEmail"] == "pat@example.com"
    assert body["isExpired"] is False
    assert body["isUsed"] is False
    assert body["isAlreadyClaimed"] is False


async def test_accept_creates_account_and_links_profile(client, tutor):
    created = await _create_profile(client, tutor)
    res = await client.post("/api/v1/invites/accept", json={
        "token": created["inviteToken"], "email": "PAT@example.com", "password": PASSWORD,
    })
    assert res.status_code == 201
    body = res.json()
    assert body["role"] == "student"
    assert body["workspaceId"] == tutor["workspace_id"]
    assert body["user"]["full_name"] == "Pat Pupil"

    preview = (await client.get(f"/api/v1/invites/{created['inviteToken']}")).json()
    assert preview["isUsed"] is True
    assert preview["isAlreadyClaimed"] is True


async def test_accept_with_wrong_email(client, tutor):
    created = await _create_profile(client, tutor)
    res = await client.post("/api/v1/invites/accept", json={
        "token": created["inviteToken"], "email": "someone@example.com", "password": PASSWORD,
    })
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "EMAIL_MISMATCH"


async def test_accept_with_existing_account(client, tutor):
    await signup(client, "pat@example.com")
    created = await _create_profile(client, tutor)
    res = await client.post("/api/v1/invites/accept", json={
        "token": created["inviteToken"], "email": "pat@example.com", "password": PASSWORD,
    })
    assert res.status_code == 409
    assert res.json()["error"]["existingAccount"] is True


async def test_accept_with_short_password(client, tutor):
    created = await _create_profile(client, tutor)
    res = await client.post("/api/v1/invites/accept", json={
        "token": created["inviteToken"], "email": "pat@example.com", "password": "short",
    })
    assert res.status_code == 400


async def test_claimed_profile_cannot_be_claimed_through_new_invite(client, tutor, student):
    res = await client.post(
        "/api/v1/workspaces/invites",
        json={"student_profile_id": student["profile_id"]},
        headers=tutor["headers"],
    )
    token = res.json()["token"]
    res = await client.post("/api/v1/invites/accept", json={
        "token": token, "email": "sam@example.com", "password": PASSWORD,
    })
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "PROFILE_ALREADY_CLAIMED"


async def test_used_invite_cannot_be_accepted_twice(client, tutor):
    created = await _create_profile(client, tutor)
    payload = {"token": created["inviteToken"], "email": "pat@example.com", "password": PASSWORD}
    assert (await client.post("/api/v1/invites/accept", json=payload)).status_code == 201
    res = await client.post("/api/v1/invites/accept", json=payload)
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "INVALID_INVITE"


# --- sending invite emails ---

async def test_send_invite_email(client, tutor, fake_mailer):
    created = await _create_profile(client, tutor)
    res = await client.post("/api/v1/invites/send", json={
        "token": created["inviteToken"], "email": "pat@example.com", "student_name": "Pat",
    }, headers=tutor["headers"])
    assert res.status_code == 200, res.text
    assert res.json() == {"success": True}

    [mail] = fake_mailer.sent
    assert mail["to"] == "pat@example.com"
    assert mail["subject"] == "Terry Tutor has invited you to join Algebra Club"
    link = f"{get_settings().app_url.rstrip('/')}/invite/{created['inviteToken']}"
    assert link in mail["html"]
    assert link in mail["text"]
    assert "Hi Pat," in mail["text"]


async def test_invite_email_escapes_html(client, tutor, fake_mailer):
    created = await _create_profile(client, tutor)
    await client.post("/api/v1/invites/send", json={
        "token": created["inviteToken"], "email": "pat@example.com",
        "student_name": "<script>alert(1)</script>",
    }, headers=tutor["headers"])
    [mail] = fake_mailer.sent
    assert "<script>" not in mail["html"]
    assert "&lt;script&gt;" in mail["html"]
    assert "Hi <script>alert(1)</script>," in mail["text"]


async def test_send_without_smtp_is_503(client, tutor, fake_mailer):
    fake_mailer.configured = False
    created = await _create_profile(client, tutor)
    res = await client.post("/api/v1/invites/send", json={
        "token": created["inviteToken"], "email": "pat@example.com",
    }, headers=tutor["headers"])
    assert res.status_code == 503
    assert res.json()["error"]["code"] == "SERVICE_NOT_CONFIGURED"
    assert fake_mailer.sent == []


async def test_send_used_invite_is_rejected(client, tutor, fake_mailer):
    created = await _create_profile(client, tutor)
    await client.post("/api/v1/invites/accept", json={
        "token": created["inviteToken"], "email": "pat@example.com", "password": PASSWORD,
    })
    res = await client.post("/api/v1/invites/send", json={
        "token": created["inviteToken"], "email": "pat@example.com",
    }, headers=tutor["headers"])
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "INVALID_INVITE"
    assert fake_mailer.sent == []


async def test_send_other_workspace_invite_is_rejected(client, tutor, fake_mailer):
    created = await _create_profile(client, tutor)
    other = await signup(client, "other@example.com", "Olive Other")
    res = await client.post(
        "/api/v1/workspaces", json={"name": "Geometry Group"}, headers=other["headers"],
    )
    assert res.status_code == 201
    res = await client.post("/api/v1/invites/send", json={
        "token": created["inviteToken"], "email": "pat@example.com",
    }, headers=other["headers"])
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "INVALID_INVITE"


async def test_students_cannot_send_invites(client, tutor, student, fake_mailer):
    created = await _create_profile(client, tutor)
    res = await client.post("/api/v1/invites/send", json={
        "token": created["inviteToken"], "email": "pat@example.com",
    }, headers=student["headers"])
    assert res.status_code == 403
