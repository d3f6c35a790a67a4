"""Service test fixtures — async DB, FastAPI test client, signed-in actors, fake clients.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - get_db dependency overridden to use test DB session
    - db_manager replaced for code that opens its own sessions (job runner, AI usage log)
    - LLM, embedding, storage and mail clients are fakes; no test reaches the network

Design Decisions:
    - SQLite in-memory on a StaticPool: every session shares one connection, so
      sessions opened by the job runner see rows the request committed
      (ADR: PostgreSQL-specific features not exercised here)
    - Actors are created through the public API (signup, workspace, invite accept)
      so auth and membership run exactly as in production
"""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)
from sqlalchemy.pool import StaticPool

from tutorassist.db.base import Base
from tutorassist.infrastructure.database import get_db, DatabaseSessionManager
from tutorassist.infrastructure.mailer import get_mailer
from tutorassist.infrastructure.object_storage import (
    build_key, get_object_storage, validate_upload,
)
from tutorassist.main import app
from tutorassist.services import handle_materials, handle_pdf, llm_gateway
import tutorassist.infrastructure.database as db_module
import tutorassist.models  # noqa: F401

from tests.services.actors import PASSWORD, auth_headers, signup
from tests.services.mock_anthropic import MockAnthropicClient, MockEmbeddingClient


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
async def fake_db_manager(test_engine, test_session_factory):
    """db_manager backed by the test engine, restored afterwards."""
    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager
    yield fake_manager
    db_module.db_manager = original_manager


@pytest.fixture
async def client(test_session_factory, fake_db_manager):
    """FastAPI test client with DB dependency overridden."""
    async def override_get_db():
        async with fake_db_manager.session() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


# ─── Fake external clients ──────────────────────────────────────

@pytest.fixture
def fake_llm(monkeypatch):
    fake = MockAnthropicClient()
    monkeypatch.setattr(llm_gateway, "_anthropic_client", fake)
    return fake


@pytest.fixture
def fake_embeddings(monkeypatch):
    fake = MockEmbeddingClient()
    monkeypatch.setattr(llm_gateway, "_embedding_client", fake)
    return fake


class FakeStorage:
    """In-memory object store with the ObjectStorage call surface."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []

    async def upload(self, workspace_id, folder, data, filename, content_type):
        validate_upload(content_type, len(data))
        key = build_key(workspace_id, folder, filename)
        self.objects[key] = data
        return {"key": key, "url": f"https://files.test/{key}"}

    async def upload_url(self, workspace_id, folder, filename, content_type, expires_in=3600):
        validate_upload(content_type)
        key = build_key(workspace_id, folder, filename)
        return {"key": key, "upload_url": f"https://files.test/{key}?signed=1"}

    async def download_url(self, key, expires_in=3600):
        return f"https://files.test/{key}"

    async def read(self, key):
        return self.objects[key]

    async def delete(self, key):
        self.objects.pop(key, None)
        self.deleted.append(key)


@pytest.fixture
def fake_storage(monkeypatch):
    storage = FakeStorage()
    app.dependency_overrides[get_object_storage] = lambda: storage
    monkeypatch.setattr(handle_materials, "get_object_storage", lambda: storage)
    monkeypatch.setattr(handle_pdf, "get_object_storage", lambda: storage)
    yield storage
    app.dependency_overrides.pop(get_object_storage, None)


class FakeMailer:
    """Records sent mail instead of talking SMTP."""

    def __init__(self, configured: bool = True):
        self.configured = configured
        self.sent: list[dict] = []

    def is_configured(self) -> bool:
        return self.configured

    async def send(self, to, subject, html, text):
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})


@pytest.fixture
def fake_mailer():
    mailer = FakeMailer()
    app.dependency_overrides[get_mailer] = lambda: mailer
    yield mailer
    app.dependency_overrides.pop(get_mailer, None)


# ─── Actors ─────────────────────────────────────────────────────

@pytest.fixture
async def tutor(client):
    """Signed-up user who created a workspace (role tutor)."""
    actor = await signup(client, "tutor@example.com", "Terry Tutor")
    res = await client.post(
        "/api/v1/workspaces", json={"name": "Algebra Club"}, headers=actor["headers"],
    )
    assert res.status_code == 201, res.text
    actor["workspace_id"] = res.json()["workspace"]["id"]
    return actor


@pytest.fixture
async def student(client, tutor):
    """Student profile created by the tutor and claimed through its invite."""
    res = await client.post(
        "/api/v1/students",
        json={"name": "Sam Student", "email": "sam@example.com", "grade_current": "8"},
        headers=tutor["headers"],
    )
    assert res.status_code == 201, res.text
    created = res.json()

    res = await client.post(
        "/api/v1/invites/accept",
        json={
            "token": created["inviteToken"],
            "email": "sam@example.com",
            "password": PASSWORD,
        },
    )
    assert res.status_code == 201, res.text
    body = res.json()
    return {
        "email": "sam@example.com",
        "user_id": body["user"]["id"],
        "profile_id": created["student"]["id"],
        "workspace_id": body["workspaceId"],
        "headers": auth_headers(body["access_token"]),
    }


@pytest.fixture
async def topic(client, tutor):
    res = await client.post(
        "/api/v1/topics",
        json={"name": "Linear Equations", "description": "One-variable equations"},
        headers=tutor["headers"],
    )
    assert res.status_code == 201, res.text
    return res.json()["topic"]


@pytest.fixture
def make_question(client, tutor, topic):
    """Factory: create a question through the API, returns the serialized question."""
    async def _make(**overrides) -> dict:
        payload = {
            "topic_id": topic["id"],
            "prompt_text": "Solve 2x + 3 = 7",
            "prompt_latex": "Solve \\(2x + 3 = 7\\)",
            "answer_type": "short_answer",
            "correct_answer_json": {"value": "2", "latex": "\\(2\\)"},
            "difficulty": 2,
            "hints": ["Subtract 3 from both sides"],
            "solution_steps": [{"step": "2x = 4", "latex": "\\(2x = 4\\)"}],
        }
        payload.update(overrides)
        res = await client.post("/api/v1/questions", json=payload, headers=tutor["headers"])
        assert res.status_code == 201, res.text
        return res.json()["question"]
    return _make
