"""Flag Routes — student flags, tutor review and AI-assisted triage.

Invariants:
    - One pending flag per (student, question, flag_type)
    - claim_correct with an attempt overrides the attempt immediately
    - Accepting claim_correct with add_as_alternate extends the answer's alternates once
    - AI triage returns one normalized recommendation per flag, 502 on garbage output
    - Insights are tutor-only; the AI summary needs 10 flags and never fails the request
"""

import json
from uuid import UUID

from tutorassist.core.errors import ExternalServiceError
from tutorassist.models.attempt import Attempt
from tutorassist.models.flag import QuestionFlag


async def _attempt(client, student, question, answer):
    res = await client.post(
        "/api/v1/attempts",
        json={"question_id": question["id"], "answer": answer},
        headers=student["headers"],
    )
    return res.json()["attempt"]


async def _flag(client, student, question, **extra):
    payload = {"question_id": question["id"], "flag_type": "unclear"}
    payload.update(extra)
    return await client.post("/api/v1/flags", json=payload, headers=student["headers"])


async def test_reasons_are_public(client):
    reasons = (await client.get("/api/v1/flags/reasons")).json()["reasons"]
    assert {"type": "claim_correct", "label": "My answer should be marked correct"} in reasons


async def test_create_and_list_flags(client, tutor, student, make_question):
    question = await make_question()
    res = await _flag(client, student, question, comment="What does x mean?")
    assert res.status_code == 201
    assert res.json()["attemptOverridden"] is False

    tutor_view = (await client.get("/api/v1/flags", headers=tutor["headers"])).json()["flags"]
    assert len(tutor_view) == 1
    assert tutor_view[0]["student"]["name"] == "Sam Student"
    assert tutor_view[0]["question"]["correct_answer_json"] == {"value": "2", "latex": "\\(2\\)"}

    student_view = (await client.get("/api/v1/flags", headers=student["headers"])).json()["flags"]
    assert student_view[0]["question"]["correct_answer_json"] is None


async def test_invalid_flag_type(client, student, make_question):
    question = await make_question()
    res = await _flag(client, student, question, flag_type="rude")
    assert res.status_code == 400
    assert res.json()["error"]["field"] == "flag_type"


async def test_duplicate_pending_flag(client, student, make_question):
    question = await make_question()
    await _flag(client, student, question)
    res = await _flag(client, student, question)
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "DUPLICATE_FLAG"


async def test_claim_correct_overrides_attempt(client, student, make_question, fake_db_manager):
    question = await make_question(correct_answer_json={"value": "1/2", "latex": "\\(\\frac{1}{2}\\)"})
    attempt = await _attempt(client, student, question, "half")
    assert attempt["is_correct"] is False

    res = await _flag(
        client, student, question,
        flag_type="claim_correct", attempt_id=attempt["id"], student_answer="half",
    )
    assert res.json()["attemptOverridden"] is True

    async with fake_db_manager.session() as db:
        row = await db.get(Attempt, UUID(attempt["id"]))
        assert row.is_correct is True
        assert row.override_correct is True
        assert row.original_is_correct is False


async def test_flag_on_someone_elses_attempt_is_404(client, tutor, student, make_question):
    question = await make_question()
    attempt = await _attempt(client, tutor, question, "5")
    res = await _flag(client, student, question, flag_type="claim_correct", attempt_id=attempt["id"])
    assert res.status_code == 404


async def test_accept_with_alternate(client, tutor, student, make_question):
    question = await make_question()
    attempt = await _attempt(client, student, question, "two")
    flag = (await _flag(
        client, student, question,
        flag_type="claim_correct", attempt_id=attempt["id"], student_answer="two",
    )).json()["flag"]

    res = await client.patch(
        f"/api/v1/flags/{flag['id']}",
        json={"status": "accepted", "add_as_alternate": True, "review_notes": "Fair"},
        headers=tutor["headers"],
    )
    body = res.json()
    assert body["alternateAdded"] is True
    assert body["flag"]["status"] == "accepted"
    assert body["flag"]["reviewed_by"] == tutor["user_id"]

    detail = (await client.get(
        f"/api/v1/questions/{question['id']}", headers=tutor["headers"],
    )).json()["question"]
    assert detail["correct_answer_json"]["alternates"] == ["two"]

    # future attempts with the same answer now grade correct
    again = await _attempt(client, student, question, "two")
    assert again["is_correct"] is True


async def test_invalid_status_update(client, tutor, student, make_question):
    question = await make_question()
    flag = (await _flag(client, student, question)).json()["flag"]
    res = await client.patch(
        f"/api/v1/flags/{flag['id']}", json={"status": "maybe"}, headers=tutor["headers"],
    )
    assert res.status_code == 400


async def test_students_cannot_review_flags(client, student, make_question):
    question = await make_question()
    flag = (await _flag(client, student, question)).json()["flag"]
    res = await client.patch(
        f"/api/v1/flags/{flag['id']}", json={"status": "dismissed"}, headers=student["headers"],
    )
    assert res.status_code == 403


# --- AI triage ---------------------------------------------------------------------

async def test_ai_review(client, tutor, student, make_question, fake_llm):
    question = await make_question()
    flag = (await _flag(
        client, student, question, flag_type="claim_correct", student_answer="2.0",
    )).json()["flag"]
    fake_llm.queue(json.dumps({"reviews": [{
        "flagId": flag["id"],
        "recommendation": "accept",
        "confidence": "high",
        "reasoning": "2.0 equals 2",
    }]}))

    res = await client.post(
        "/api/v1/flags/ai-review", json={"flag_ids": [flag["id"]]}, headers=tutor["headers"],
    )
    assert res.status_code == 200
    body = res.json()
    assert body["flagsAnalyzed"] == 1
    assert body["results"][0]["recommendation"] == "accept"
    assert fake_llm.calls[0]["temperature"] == 0.3
    assert "2.0" in fake_llm.calls[0]["messages"][0]["content"]


async def test_ai_review_garbage_response_is_502(client, tutor, student, make_question, fake_llm):
    question = await make_question()
    flag = (await _flag(client, student, question)).json()["flag"]
    fake_llm.queue("Sorry, I can't do that.")
    res = await client.post(
        "/api/v1/flags/ai-review", json={"flag_ids": [flag["id"]]}, headers=tutor["headers"],
    )
    assert res.status_code == 502


async def test_ai_review_requires_flag_ids(client, tutor):
    res = await client.post("/api/v1/flags/ai-review", json={"flag_ids": []}, headers=tutor["headers"])
    assert res.status_code == 400


async def test_ai_review_without_pending_flags(client, tutor, student, make_question):
    question = await make_question()
    flag = (await _flag(client, student, question)).json()["flag"]
    await client.patch(
        f"/api/v1/flags/{flag['id']}", json={"status": "dismissed"}, headers=tutor["headers"],
    )
    res = await client.post(
        "/api/v1/flags/ai-review", json={"flag_ids": [flag["id"]]}, headers=tutor["headers"],
    )
    assert res.status_code == 404


# --- insights ------------------------------------------------------------------------

async def _bulk_flags(db, student, question, count):
    for _ in range(count):
        db.add(QuestionFlag(
            workspace_id=UUID(student["workspace_id"]),
            question_id=UUID(question["id"]),
            student_user_id=UUID(student["user_id"]),
            flag_type="typo",
            comment="Spelling",
            status="pending",
        ))
    await db.commit()


async def test_insights_rules_without_ai_summary(client, tutor, student, make_question, fake_llm):
    for n in range(3):
        question = await make_question(prompt_text=f"Solve x + {n} = 4")
        await _flag(client, student, question)

    res = await client.get("/api/v1/flags/insights", headers=tutor["headers"])
    assert res.status_code == 200
    body = res.json()
    assert body["summary"]["totalFlags"] == 3
    assert body["summary"]["commonTypes"] == [{"type": "unclear", "count": 3}]
    assert [i["title"] for i in body["insights"]] == ["Questions Marked as Unclear"]
    assert body["aiSummary"] is None
    assert fake_llm.calls == []


async def test_insights_ai_summary_from_ten_flags(
    client, tutor, student, make_question, fake_llm, test_db,
):
    question = await make_question()
    await _bulk_flags(test_db, student, question, 10)
    fake_llm.queue("Most flags point at spelling in one question.")

    body = (await client.get("/api/v1/flags/insights", headers=tutor["headers"])).json()
    assert body["aiSummary"] == "Most flags point at spelling in one question."
    assert body["summary"]["problematicQuestionCount"] == 1
    assert "Solve 2x + 3 = 7" in fake_llm.calls[0]["messages"][0]["content"]


async def test_insights_survive_summary_failure(
    client, tutor, student, make_question, fake_llm, test_db,
):
    question = await make_question()
    await _bulk_flags(test_db, student, question, 10)
    fake_llm.queue(ExternalServiceError("anthropic", "overloaded"))

    res = await client.get("/api/v1/flags/insights", headers=tutor["headers"])
    assert res.status_code == 200
    assert res.json()["aiSummary"] is None
    assert res.json()["summary"]["totalFlags"] == 10


async def test_insights_are_tutor_only(client, student):
    res = await client.get("/api/v1/flags/insights", headers=student["headers"])
    assert res.status_code == 403
