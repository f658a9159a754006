# FILE: tests/test_api_router.py
"""
Tests for blender_agent/api/router.py
REST surface with scripted services and an in-memory database.
"""

import sys
from pathlib import Path

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from fakes import FakeKnowledge, ScriptedHost, ScriptedRegistry, decision

SCENE = {"name": "Scene", "object_count": 0, "objects": []}
ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}


class SnapshotHost(ScriptedHost):
    def snapshot(self):
        return {"state": "connected" if self.is_connected else "disconnected", "pending": None}


@pytest.fixture
def registry():
    return ScriptedRegistry()


@pytest.fixture
def client(session_factory, registry):
    from blender_agent.api.router import register_error_handlers, router
    from blender_agent.db import get_db
    from blender_agent.llm.driver import LlmDriver
    from blender_agent.memory.service import ConversationStore
    from blender_agent.services import build_services, set_services

    services = build_services(
        connection=SnapshotHost({"get_scene_info": SCENE}),
        driver=LlmDriver(registry=registry),
        knowledge=FakeKnowledge(),
        store=ConversationStore(session_factory),
    )
    set_services(services)

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app = FastAPI()
    register_error_handlers(app)
    app.include_router(router, prefix="/api")
    app.dependency_overrides[get_db] = override_get_db

    yield TestClient(app)
    set_services(None)


class TestGenerate:
    """Test POST /api/generate."""

    def test_requires_user(self, client):
        """Requests without X-User-Id are rejected."""
        assert client.post("/api/generate", json={"prompt": "hi"}).status_code == 401

    def test_generate(self, client, registry):
        """A finished run returns the reply and conversation id."""
        registry.contents.append(decision("Hello there.", "finish_task"))
        resp = client.post("/api/generate", json={"prompt": "say hi", "model": "gemini"}, headers=ALICE)
        assert resp.status_code == 200
        body = resp.json()
        assert body["response"] == "Hello there."
        assert body["finished"] is True
        assert body["conversation_title"] == "say hi"
        assert body["scene_context"] == SCENE

    def test_camel_case_conversation_id(self, client, registry):
        """conversationId continues an existing conversation."""
        first = client.post("/api/generate", json={"prompt": "one"}, headers=ALICE).json()
        resp = client.post(
            "/api/generate", json={"prompt": "two", "conversationId": first["conversation_id"]}, headers=ALICE,
        )
        assert resp.json()["conversation_id"] == first["conversation_id"]

    def test_empty_prompt(self, client):
        """Blank prompts are 400 INVALID_INPUT."""
        resp = client.post("/api/generate", json={"prompt": "  "}, headers=ALICE)
        assert resp.status_code == 400
        assert resp.json()["kind"] == "INVALID_INPUT"

    def test_malformed_agent_output(self, client, registry):
        """Reasoning failures are 502 with the progress log."""
        registry.contents.append("not json at all")
        resp = client.post("/api/generate", json={"prompt": "add a cube"}, headers=ALICE)
        assert resp.status_code == 502
        body = resp.json()
        assert body["kind"] == "AGENT_REASON_FAILED"
        assert body["progress"]

    def test_unconfigured_provider(self, client, registry):
        """Missing credentials are 400 PROVIDER_UNCONFIGURED."""
        registry.available = False
        resp = client.post("/api/generate", json={"prompt": "add a cube"}, headers=ALICE)
        assert resp.status_code == 400
        assert resp.json()["kind"] == "PROVIDER_UNCONFIGURED"


class TestConversations:
    """Test conversation endpoints."""

    def test_list_and_detail(self, client):
        """A generated conversation is listed with its messages."""
        created = client.post("/api/generate", json={"prompt": "add a lamp"}, headers=ALICE).json()

        listed = client.get("/api/conversations", headers=ALICE).json()
        assert [c["id"] for c in listed] == [created["conversation_id"]]

        detail = client.get(f"/api/conversations/{created['conversation_id']}", headers=ALICE).json()
        assert [m["role"] for m in detail["messages"]] == ["user", "assistant"]
        assert detail["messages"][1]["metadata"]["loop_count"] == 1

    def test_other_user_gets_404(self, client):
        """Conversations are private to their owner."""
        created = client.post("/api/conversations", json={"title": "Mine"}, headers=ALICE)
        assert created.status_code == 201
        conversation_id = created.json()["id"]
        assert client.get(f"/api/conversations/{conversation_id}", headers=BOB).status_code == 404
        assert client.get("/api/conversations", headers=BOB).json() == []

    def test_delete(self, client):
        """Deleting removes the conversation."""
        conversation_id = client.post("/api/conversations", json={}, headers=ALICE).json()["id"]
        assert client.delete(f"/api/conversations/{conversation_id}", headers=ALICE).json()["ok"] is True
        assert client.delete(f"/api/conversations/{conversation_id}", headers=ALICE).status_code == 404


class TestJobs:
    """Test queued generation endpoints."""

    def test_submit_and_get(self, client):
        """A submitted job is visible to its owner only."""
        resp = client.post("/api/jobs", json={"prompt": "add a cube"}, headers=ALICE)
        assert resp.status_code == 202
        job_id = resp.json()["id"]
        assert resp.json()["status"] == "queued"

        assert client.get(f"/api/jobs/{job_id}", headers=ALICE).json()["status"] == "queued"
        assert client.get(f"/api/jobs/{job_id}", headers=BOB).status_code == 404

    def test_blank_prompt_rejected(self, client):
        """Blank prompts are not queued."""
        assert client.post("/api/jobs", json={"prompt": " "}, headers=ALICE).status_code == 400


class TestStatusEndpoints:
    """Test scene, models and health endpoints."""

    def test_scene_info(self, client):
        """The live scene is returned."""
        resp = client.post("/api/scene-info", json={}, headers=ALICE)
        assert resp.json() == {"scene_context": SCENE}

    def test_models(self, client):
        """Every provider is listed with its configuration state."""
        models = client.get("/api/models").json()["models"]
        assert {m["id"] for m in models} == {"gemini", "groq", "openai", "anthropic"}
        assert all(isinstance(m["configured"], bool) for m in models)

    def test_health(self, client):
        """Health reports transport, breakers and the queue."""
        body = client.get("/api/health").json()
        assert body["status"] == "ok"
        assert body["blender"]["state"] == "connected"
        assert body["jobs"] == {"running": False, "queued": 0}
        assert body["knowledge_enabled"] is True
