"""Topic Routes — listing with question counts, tutor CRUD, duplicate analysis and merges.

Invariants:
    - Topic names are unique per workspace
    - Deleting a topic keeps its questions, detached
    - Analysis drops ids outside the workspace; canonical = member with most questions
    - Merging re-homes questions and removes the merged topics
"""

import json
from uuid import uuid4


async def test_topic_lists_question_count(client, tutor, topic, make_question):
    await make_question()
    await make_question(prompt_text="Solve 3x = 9", prompt_latex="Solve \\(3x = 9\\)")

    topics = (await client.get("/api/v1/topics", headers=tutor["headers"])).json()["topics"]
    assert topics == [{
        "id": topic["id"],
        "name": "Linear Equations",
        "description": "One-variable equations",
        "created_at": topic["created_at"],
        "questionCount": 2,
    }]


async def test_students_can_list_topics(client, student, topic):
    res = await client.get("/api/v1/topics", headers=student["headers"])
    assert res.status_code == 200
    assert [t["name"] for t in res.json()["topics"]] == ["Linear Equations"]


async def test_duplicate_topic_name_conflicts(client, tutor, topic):
    res = await client.post(
        "/api/v1/topics", json={"name": "Linear Equations"}, headers=tutor["headers"],
    )
    assert res.status_code == 409


async def test_rename_topic(client, tutor, topic):
    res = await client.patch(
        f"/api/v1/topics/{topic['id']}", json={"name": "  Equations  "}, headers=tutor["headers"],
    )
    assert res.status_code == 200
    assert res.json()["topic"]["name"] == "Equations"


async def test_rename_into_existing_name_conflicts(client, tutor, topic):
    await client.post("/api/v1/topics", json={"name": "Fractions"}, headers=tutor["headers"])
    res = await client.patch(
        f"/api/v1/topics/{topic['id']}", json={"name": "Fractions"}, headers=tutor["headers"],
    )
    assert res.status_code == 409


async def test_delete_topic_detaches_questions(client, tutor, topic, make_question):
    question = await make_question()
    res = await client.delete(f"/api/v1/topics/{topic['id']}", headers=tutor["headers"])
    assert res.json() == {"success": True}

    detail = (await client.get(
        f"/api/v1/questions/{question['id']}", headers=tutor["headers"],
    )).json()["question"]
    assert detail["topic_id"] is None


async def test_student_cannot_create_topic(client, student):
    res = await client.post("/api/v1/topics", json={"name": "Nope"}, headers=student["headers"])
    assert res.status_code == 403


# --- analysis and merge ---

async def _create_topic(client, tutor, name):
    res = await client.post("/api/v1/topics", json={"name": name}, headers=tutor["headers"])
    assert res.status_code == 201, res.text
    return res.json()["topic"]


async def test_analyze_groups_duplicates(client, tutor, topic, make_question, fake_llm):
    variant = await _create_topic(client, tutor, "linear equations ")
    other = await _create_topic(client, tutor, "Probability")
    await make_question()
    fake_llm.queue(json.dumps({
        "groups": [{
            "canonicalName": "Linear Equations",
            "members": [variant["id"], topic["id"], str(uuid4())],
            "reason": "Same topic, different spacing",
        }],
        "hierarchySuggestions": [{"parentId": topic["id"], "childId": str(uuid4())}],
        "standaloneTopics": [other["id"]],
    }))

    res = await client.get("/api/v1/topics/analyze", headers=tutor["headers"])
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["totalTopics"] == 3
    assert body["potentialDuplicates"] == 1
    group = body["groups"][0]
    assert group["canonicalId"] == topic["id"]
    assert group["suggestedMerge"] is True
    assert [v["id"] for v in group["variants"]] == [variant["id"], topic["id"]]
    assert body["hierarchySuggestions"] == []
    assert [t["name"] for t in body["standaloneTopics"]] == ["Probability"]
    assert fake_llm.calls[0]["temperature"] == 0.3


async def test_analyze_without_topics_skips_the_model(client, tutor, fake_llm):
    res = await client.get("/api/v1/topics/analyze", headers=tutor["headers"])
    assert res.json()["groups"] == []
    assert fake_llm.calls == []


async def test_analyze_garbage_response_is_502(client, tutor, topic, fake_llm):
    fake_llm.queue("no idea")
    res = await client.get("/api/v1/topics/analyze", headers=tutor["headers"])
    assert res.status_code == 502


async def test_merge_moves_questions_and_renames(client, tutor, topic, make_question):
    duplicate = await _create_topic(client, tutor, "Solving Linear Equations")
    question = await make_question(topic_id=duplicate["id"])

    res = await client.post(
        "/api/v1/topics/merge",
        json={
            "canonical_topic_id": topic["id"],
            "merge_topic_ids": [duplicate["id"]],
            "new_name": "Solving Linear Equations",
        },
        headers=tutor["headers"],
    )
    assert res.status_code == 200, res.text
    assert res.json()["questionsMoved"] == 1

    topics = (await client.get("/api/v1/topics", headers=tutor["headers"])).json()["topics"]
    assert [(t["id"], t["name"], t["questionCount"]) for t in topics] == [
        (topic["id"], "Solving Linear Equations", 1),
    ]
    moved = (await client.get(
        f"/api/v1/questions/{question['id']}", headers=tutor["headers"],
    )).json()["question"]
    assert moved["topic_id"] == topic["id"]


async def test_merge_unknown_topic_is_404(client, tutor, topic):
    res = await client.post(
        "/api/v1/topics/merge",
        json={"canonical_topic_id": topic["id"], "merge_topic_ids": [str(uuid4())]},
        headers=tutor["headers"],
    )
    assert res.status_code == 404


async def test_merge_into_itself_is_400(client, tutor, topic):
    res = await client.post(
        "/api/v1/topics/merge",
        json={"canonical_topic_id": topic["id"], "merge_topic_ids": [topic["id"]]},
        headers=tutor["headers"],
    )
    assert res.status_code == 400


async def test_merge_rename_clash_conflicts(client, tutor, topic):
    duplicate = await _create_topic(client, tutor, "Equations")
    await _create_topic(client, tutor, "Algebra")
    res = await client.post(
        "/api/v1/topics/merge",
        json={
            "canonical_topic_id": topic["id"],
            "merge_topic_ids": [duplicate["id"]],
            "new_name": "Algebra",
        },
        headers=tutor["headers"],
    )
    assert res.status_code == 409
