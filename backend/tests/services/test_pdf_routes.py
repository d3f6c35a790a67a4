"""PDF Routes — inline worksheets, GENERATE_PDF jobs and stored exports.

Invariants:
    - immediate with <= 20 questions returns application/pdf with a safe filename
    - Otherwise a GENERATE_PDF job is queued at priority 2 and its result points
      at an uploaded export
    - Foreign or unknown question ids are 404; students get 403
"""

from uuid import UUID, uuid4

from sqlalchemy import select

from tutorassist.models.job import Job
from tutorassist.services.handle_materials import extract_pdf_text
from tutorassist.services.job_runner import process_jobs


async def test_immediate_pdf_is_returned_inline(client, tutor, make_question):
    first = await make_question()
    second = await make_question(prompt_text="Solve 5x = 10", prompt_latex="Solve \\(5x = 10\\)")
    res = await client.post(
        "/api/v1/pdf",
        json={
            "title": "Week 3: Algebra",
            "question_ids": [second["id"], first["id"]],
            "include_answers": True,
            "immediate": True,
        },
        headers=tutor["headers"],
    )
    assert res.status_code == 200, res.text
    assert res.headers["content-type"] == "application/pdf"
    assert 'filename="Week_3__Algebra.pdf"' in res.headers["content-disposition"]

    text = extract_pdf_text(res.content)
    assert text.index("Solve 5x = 10") < text.index("Solve 2x + 3 = 7")
    assert "Answer Key" in text


async def test_unknown_question_is_404(client, tutor, make_question):
    question = await make_question()
    res = await client.post(
        "/api/v1/pdf",
        json={"question_ids": [question["id"], str(uuid4())], "immediate": True},
        headers=tutor["headers"],
    )
    assert res.status_code == 404


async def test_empty_question_list_is_400(client, tutor):
    res = await client.post("/api/v1/pdf", json={"question_ids": []}, headers=tutor["headers"])
    assert res.status_code == 400


async def test_students_cannot_export(client, student, make_question):
    question = await make_question()
    res = await client.post(
        "/api/v1/pdf", json={"question_ids": [question["id"]]}, headers=student["headers"],
    )
    assert res.status_code == 403


async def test_queued_pdf_is_rendered_and_stored(
    client, tutor, student, make_question, fake_storage, fake_db_manager,
):
    question = await make_question()
    res = await client.post(
        "/api/v1/pdf",
        json={
            "title": "Take-home",
            "question_ids": [question["id"]],
            "include_hints": True,
            "student_id": student["profile_id"],
        },
        headers=tutor["headers"],
    )
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["status"] == "pending"

    async with fake_db_manager.session() as db:
        job = (await db.execute(select(Job).where(Job.id == UUID(body["jobId"])))).scalar_one()
        assert job.priority == 2
        assert job.payload_json["studentId"] == student["profile_id"]

    assert await process_jobs() == 1

    status = (await client.get(
        "/api/v1/pdf", params={"jobId": body["jobId"]}, headers=tutor["headers"],
    )).json()
    assert status["status"] == "completed", status
    result = status["result"]
    assert result["questionCount"] == 1

    stored = fake_storage.objects[result["storageKey"]]
    assert stored.startswith(b"%PDF")
    text = extract_pdf_text(stored)
    assert "Name:" in text
    assert "Subtract 3 from both sides" in text

    exports = (await client.get("/api/v1/pdf/exports", headers=tutor["headers"])).json()["exports"]
    assert [e["id"] for e in exports] == [result["pdfExportId"]]
    assert exports[0]["file_size"] == len(stored)

    download = await client.get(
        f"/api/v1/pdf/exports/{result['pdfExportId']}/download", headers=tutor["headers"],
    )
    assert download.json()["url"].endswith(result["storageKey"])


async def test_large_immediate_request_is_queued(client, tutor, make_question):
    question = await make_question()
    res = await client.post(
        "/api/v1/pdf",
        json={"question_ids": [question["id"]] * 21, "immediate": True},
        headers=tutor["headers"],
    )
    assert res.status_code == 200
    assert "jobId" in res.json()


async def test_pdf_job_without_questions_fails_terminally(
    client, tutor, make_question, fake_db_manager, fake_storage,
):
    question = await make_question()
    res = await client.post(
        "/api/v1/pdf", json={"question_ids": [question["id"]]}, headers=tutor["headers"],
    )
    job_id = res.json()["jobId"]
    await client.delete(f"/api/v1/questions/{question['id']}", headers=tutor["headers"])

    assert await process_jobs() == 1
    status = (await client.get(
        "/api/v1/pdf", params={"jobId": job_id}, headers=tutor["headers"],
    )).json()
    assert status["status"] == "failed"
    assert status["error"] == "No questions found"
    assert fake_storage.objects == {}


async def test_status_of_other_job_type_is_404(client, tutor, fake_db_manager):
    async with fake_db_manager.session() as db:
        job = Job(
            workspace_id=UUID(tutor["workspace_id"]), type="GENERATE_EMBEDDINGS",
            status="pending", payload_json={},
        )
        db.add(job)
        await db.commit()
    res = await client.get("/api/v1/pdf", params={"jobId": str(job.id)}, headers=tutor["headers"])
    assert res.status_code == 404
