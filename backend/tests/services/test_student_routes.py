"""Student Routes — tutor profile management and student self-service.

Invariants:
    - Profiles are workspace scoped; a fresh profile lists its pending invite token
    - Students never see private notes, and can only edit their own basics
    - Deleting a profile removes the student's membership, not the account
"""

from uuid import uuid4


async def test_create_and_list_students(client, tutor):
    res = await client.post(
        "/api/v1/students",
        json={"name": "  Alex  ", "email": "Alex@Example.com", "private_notes": "Needs fractions"},
        headers=tutor["headers"],
    )
    assert res.status_code == 201
    created = res.json()
    assert created["student"]["name"] == "Alex"
    assert created["student"]["email"] == "alex@example.com"
    assert created["inviteUrl"].endswith(created["inviteToken"])

    students = (await client.get("/api/v1/students", headers=tutor["headers"])).json()["students"]
    assert [s["name"] for s in students] == ["Alex"]
    assert students[0]["inviteToken"] == created["inviteToken"]
    assert students[0]["private_notes"] == "Needs fractions"


async def test_blank_student_name_is_rejected(client, tutor):
    res = await client.post("/api/v1/students", json={"name": "   "}, headers=tutor["headers"])
    assert res.status_code == 400


async def test_claimed_student_has_no_invite_token(client, tutor, student):
    students = (await client.get("/api/v1/students", headers=tutor["headers"])).json()["students"]
    sam = next(s for s in students if s["id"] == student["profile_id"])
    assert sam["user_id"] == student["user_id"]
    assert sam["inviteToken"] is None


async def test_student_detail_with_stats(client, tutor, student, make_question):
    question = await make_question()
    await client.post(
        "/api/v1/attempts",
        json={"question_id": question["id"], "answer": "2"},
        headers=student["headers"],
    )
    await client.post(
        "/api/v1/attempts",
        json={"question_id": question["id"], "answer": "5"},
        headers=student["headers"],
    )
    res = await client.get(f"/api/v1/students/{student['profile_id']}", headers=tutor["headers"])
    assert res.status_code == 200
    assert res.json()["stats"] == {"totalAttempts": 2, "correctAttempts": 1, "accuracy": 50}


async def test_unknown_student_is_404(client, tutor):
    res = await client.get(f"/api/v1/students/{uuid4()}", headers=tutor["headers"])
    assert res.status_code == 404


async def test_tutor_updates_profile(client, tutor, student):
    res = await client.patch(
        f"/api/v1/students/{student['profile_id']}",
        json={"school": "Lincoln Middle", "tags": ["algebra"], "private_notes": "Strong"},
        headers=tutor["headers"],
    )
    body = res.json()["student"]
    assert body["school"] == "Lincoln Middle"
    assert body["tags"] == ["algebra"]
    assert body["name"] == "Sam Student"


async def test_student_sees_own_profile_without_private_notes(client, tutor, student):
    await client.patch(
        f"/api/v1/students/{student['profile_id']}",
        json={"private_notes": "Tutor only"},
        headers=tutor["headers"],
    )
    res = await client.get("/api/v1/students/me", headers=student["headers"])
    assert res.status_code == 200
    me = res.json()["student"]
    assert me["name"] == "Sam Student"
    assert "private_notes" not in me


async def test_student_self_update_ignores_private_fields(client, tutor, student):
    res = await client.patch(
        "/api/v1/students/me",
        json={"school": "Home School", "private_notes": "sneaky"},
        headers=student["headers"],
    )
    assert res.status_code == 200
    assert res.json()["student"]["school"] == "Home School"

    detail = (await client.get(
        f"/api/v1/students/{student['profile_id']}", headers=tutor["headers"],
    )).json()["student"]
    assert detail["private_notes"] is None


async def test_tutor_without_profile_gets_404_on_me(client, tutor):
    res = await client.get("/api/v1/students/me", headers=tutor["headers"])
    assert res.status_code == 404


async def test_student_cannot_manage_students(client, student):
    res = await client.get("/api/v1/students", headers=student["headers"])
    assert res.status_code == 403


async def test_delete_student_revokes_membership(client, tutor, student):
    res = await client.delete(
        f"/api/v1/students/{student['profile_id']}", headers=tutor["headers"],
    )
    assert res.json() == {"success": True}

    check = (await client.get("/api/v1/workspaces/check", headers=student["headers"])).json()
    assert check["hasWorkspace"] is False
    students = (await client.get("/api/v1/students", headers=tutor["headers"])).json()
    assert students["students"] == []
