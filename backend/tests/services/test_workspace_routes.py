"""Workspace Routes — creation, membership check, join, members, settings and invites.

Invariants:
    - The creator is the workspace tutor; a second workspace is refused
    - Settings patches merge over stored settings
    - Invite tokens can be redeemed once by a signed-in user
"""

from tests.services.actors import signup


async def test_new_user_has_no_workspace(client):
    actor = await signup(client, "lonely@example.com")
    res = await client.get("/api/v1/workspaces/check", headers=actor["headers"])
    assert res.json() == {"hasWorkspace": False, "role": None, "workspaceId": None}

    res = await client.get("/api/v1/topics", headers=actor["headers"])
    assert res.status_code == 403
    assert res.json()["error"]["code"] == "NO_WORKSPACE"


async def test_create_workspace(client):
    actor = await signup(client, "owner@example.com")
    res = await client.post(
        "/api/v1/workspaces", json={"name": "  My Math Club! "}, headers=actor["headers"],
    )
    assert res.status_code == 201
    body = res.json()
    assert body["role"] == "tutor"
    assert body["workspace"]["name"] == "My Math Club!"
    assert body["workspace"]["slug"].startswith("my-math-club-")
    assert body["workspace"]["settings"]["questionGenerationEnabled"] is True

    check = (await client.get("/api/v1/workspaces/check", headers=actor["headers"])).json()
    assert check == {
        "hasWorkspace": True, "role": "tutor", "workspaceId": body["workspace"]["id"],
    }


async def test_second_workspace_is_refused(client, tutor):
    res = await client.post(
        "/api/v1/workspaces", json={"name": "Another"}, headers=tutor["headers"],
    )
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "ALREADY_IN_WORKSPACE"


async def test_blank_workspace_name_is_rejected(client):
    actor = await signup(client, "blank@example.com")
    res = await client.post("/api/v1/workspaces", json={"name": "   "}, headers=actor["headers"])
    assert res.status_code == 400


async def test_settings_patch_merges(client, tutor):
    res = await client.patch(
        "/api/v1/workspaces/settings",
        json={"name": "Geometry Club", "settings": {"practiceRateLimit": 5}},
        headers=tutor["headers"],
    )
    assert res.status_code == 200

    settings = (await client.get("/api/v1/workspaces/settings", headers=tutor["headers"])).json()
    assert settings["name"] == "Geometry Club"
    assert settings["settings"]["practiceRateLimit"] == 5
    assert settings["settings"]["allowStudentPractice"] is True


async def test_student_cannot_patch_settings_or_list_members(client, student):
    res = await client.patch(
        "/api/v1/workspaces/settings", json={"name": "Hijacked"}, headers=student["headers"],
    )
    assert res.status_code == 403
    res = await client.get("/api/v1/workspaces/members", headers=student["headers"])
    assert res.status_code == 403


async def test_members_lists_tutor_and_student(client, tutor, student):
    res = await client.get("/api/v1/workspaces/members", headers=tutor["headers"])
    members = {m["email"]: m["role"] for m in res.json()["members"]}
    assert members == {"tutor@example.com": "tutor", "sam@example.com": "student"}


async def test_open_invite_join_flow(client, tutor):
    res = await client.post("/api/v1/workspaces/invites", json={}, headers=tutor["headers"])
    assert res.status_code == 201
    invite = res.json()
    assert invite["invite_url"] == f"http://localhost:3000/invite/{invite['token']}"

    joiner = await signup(client, "joiner@example.com")
    res = await client.post(
        "/api/v1/workspaces/join", json={"token": invite["token"]}, headers=joiner["headers"],
    )
    assert res.status_code == 200
    assert res.json() == {
        "success": True, "workspaceId": tutor["workspace_id"], "role": "student",
    }

    other = await signup(client, "late@example.com")
    res = await client.post(
        "/api/v1/workspaces/join", json={"token": invite["token"]}, headers=other["headers"],
    )
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "INVALID_INVITE"


async def test_join_with_unknown_token(client):
    actor = await signup(client, "nobody@example.com")
    res = await client.post(
        "/api/v1/workspaces/join", json={"token": "missing"}, headers=actor["headers"],
    )
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "INVALID_INVITE"
