"""Attempt Routes — server-side grading, spaced repetition updates, history and topic stats.

Invariants:
    - is_correct comes from the server grader; the client's claim is only recorded
    - Every attempt bumps the question's counters and the student's review schedule
    - Students read only their own attempts
"""

from uuid import UUID

from sqlalchemy import select

from tutorassist.models.attempt import Attempt, SpacedRepetition
from tutorassist.models.question import Question
from tutorassist.models.workspace import WorkspaceMember


async def test_correct_attempt_is_graded_without_answer_key(client, student, make_question):
    question = await make_question()
    res = await client.post(
        "/api/v1/attempts",
        json={"question_id": question["id"], "answer": "x = 2", "time_spent_seconds": 40},
        headers=student["headers"],
    )
    assert res.status_code == 201
    body = res.json()
    assert body["isCorrect"] is True
    assert body["validation"]["matchType"] == "normalized"
    assert "correctAnswer" not in body
    assert "solutionSteps" not in body
    assert body["attempt"]["answer_raw"] == "x = 2"
    assert body["attempt"]["time_spent_seconds"] == 40


async def test_client_claim_does_not_override_grading(client, student, make_question, fake_db_manager):
    question = await make_question()
    res = await client.post(
        "/api/v1/attempts",
        json={"question_id": question["id"], "answer": "7", "is_correct": True},
        headers=student["headers"],
    )
    assert res.json()["isCorrect"] is False

    async with fake_db_manager.session() as db:
        attempt = await db.get(Attempt, UUID(res.json()["attempt"]["id"]))
        assert attempt.is_correct is False
        assert attempt.context_json["clientClaimedCorrect"] is True
        assert attempt.context_json["sessionType"] == "practice"


async def test_attempt_updates_counters_and_schedule(client, student, make_question, fake_db_manager):
    question = await make_question()
    for answer in ("2", "3"):
        await client.post(
            "/api/v1/attempts",
            json={"question_id": question["id"], "answer": answer},
            headers=student["headers"],
        )

    async with fake_db_manager.session() as db:
        row = await db.get(Question, UUID(question["id"]))
        assert (row.times_attempted, row.times_correct) == (2, 1)

        review = (await db.execute(
            select(SpacedRepetition).where(SpacedRepetition.question_id == row.id)
        )).scalar_one()
        assert review.total_reviews == 2
        assert review.total_correct == 1
        assert review.streak == 0
        assert review.interval_days == 1
        assert review.last_outcome == "incorrect"


async def test_disabled_spaced_repetition_skips_schedule(
    client, tutor, student, make_question, fake_db_manager,
):
    await client.patch(
        "/api/v1/workspaces/settings",
        json={"settings": {"enableSpacedRepetition": False}},
        headers=tutor["headers"],
    )
    question = await make_question()
    await client.post(
        "/api/v1/attempts",
        json={"question_id": question["id"], "answer": "2"},
        headers=student["headers"],
    )
    async with fake_db_manager.session() as db:
        rows = (await db.execute(select(SpacedRepetition))).scalars().all()
        assert rows == []


async def test_multiple_choice_attempt(client, student, make_question):
    question = await make_question(
        prompt_text="Pick the prime",
        answer_type="multiple_choice",
        correct_answer_json={"choices": ["4", "7", "9"], "correct": 1},
    )
    res = await client.post(
        "/api/v1/attempts",
        json={"question_id": question["id"], "answer": 1},
        headers=student["headers"],
    )
    assert res.json()["isCorrect"] is True


async def test_attempt_on_unknown_question_is_404(client, student):
    res = await client.post(
        "/api/v1/attempts",
        json={"question_id": "00000000-0000-0000-0000-000000000000", "answer": "1"},
        headers=student["headers"],
    )
    assert res.status_code == 404


async def test_history_is_private_to_each_student(client, tutor, student, make_question):
    question = await make_question()
    await client.post(
        "/api/v1/attempts",
        json={"question_id": question["id"], "answer": "2"},
        headers=student["headers"],
    )
    await client.post(
        "/api/v1/attempts",
        json={"question_id": question["id"], "answer": "2"},
        headers=tutor["headers"],
    )

    mine = (await client.get("/api/v1/attempts", headers=student["headers"])).json()["attempts"]
    assert {a["student_user_id"] for a in mine} == {student["user_id"]}

    everyone = (await client.get(
        "/api/v1/attempts", params={"question_id": question["id"]}, headers=tutor["headers"],
    )).json()["attempts"]
    assert len(everyone) == 2


async def test_topic_stats(client, student, topic, make_question):
    question = await make_question()
    for answer in ("2", "2", "5"):
        await client.post(
            "/api/v1/attempts",
            json={"question_id": question["id"], "answer": answer},
            headers=student["headers"],
        )
    stats = (await client.get("/api/v1/attempts/topic-stats", headers=student["headers"])).json()
    assert stats["topics"] == [{
        "topicId": topic["id"],
        "topicName": "Linear Equations",
        "total": 3,
        "correct": 2,
        "accuracy": 67,
    }]


async def test_answer_key_returned_when_workspace_opts_in(client, tutor, student, make_question):
    await client.patch(
        "/api/v1/workspaces/settings",
        json={"settings": {"revealAnswersAfterAttempt": True}},
        headers=tutor["headers"],
    )
    question = await make_question()
    body = (await client.post(
        "/api/v1/attempts",
        json={"question_id": question["id"], "answer": "5"},
        headers=student["headers"],
    )).json()
    assert body["isCorrect"] is False
    assert body["correctAnswer"] == {"value": "2", "latex": "\\(2\\)"}
    assert body["solutionSteps"][0]["step"] == "2x = 4"


async def test_unknown_member_role_cannot_use_student_routes(
    client, student, fake_db_manager,
):
    async with fake_db_manager.session() as db:
        member = (await db.execute(
            select(WorkspaceMember).where(WorkspaceMember.user_id == UUID(student["user_id"]))
        )).scalar_one()
        member.role = "observer"
        await db.commit()

    res = await client.get("/api/v1/attempts/topic-stats", headers=student["headers"])
    assert res.status_code == 403
    res = await client.get("/api/v1/students/me", headers=student["headers"])
    assert res.status_code == 403
