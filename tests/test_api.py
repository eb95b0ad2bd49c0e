"""
Тесты HTTP API AI-функций дневника
"""
import json

import pytest
from fastapi.testclient import TestClient

from diaria.api.main import app, get_rag_manager
from diaria.errors import StreamInterrupted
from diaria.rag.diary_rag_manager import DiaryRAGManager

from conftest import FakeProvider, content_line


OWNER = {"X-Owner-Id": "owner-1"}

FULL_SETTINGS = {
    "api_key": "sk-test",
    "base_url": "http://provider.local",
    "chat_model": "test-chat",
    "embedding_model": "test-embed",
    "enabled": True,
}


def parse_events(body: str):
    return [json.loads(line[len("data: "):]) for line in body.splitlines() if line.startswith("data: ")]


@pytest.fixture
def api_provider():
    return FakeProvider()


@pytest.fixture
def rag_manager(temp_db, api_provider):
    """RAG менеджер на временной БД с фейковым провайдером"""
    return DiaryRAGManager({'db_path': temp_db, 'build_timeout_seconds': 5}, provider=api_provider)


@pytest.fixture
def client(rag_manager):
    app.dependency_overrides[get_rag_manager] = lambda: rag_manager
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def enabled_client(client):
    response = client.put("/api/ai/settings", json=FULL_SETTINGS, headers=OWNER)
    assert response.status_code == 200
    return client


class TestSettingsAPI:
    """Тесты настроек и списка моделей"""

    def test_owner_header_required(self, client):
        assert client.get("/api/ai/settings").status_code == 401

    def test_enable_requires_all_fields(self, client):
        response = client.put(
            "/api/ai/settings",
            json={"api_key": "sk", "base_url": "http://x", "enabled": True},
            headers=OWNER,
        )
        assert response.status_code == 400

    def test_save_and_get(self, enabled_client):
        response = enabled_client.get("/api/ai/settings", headers=OWNER)
        assert response.status_code == 200
        assert response.json() == FULL_SETTINGS

    def test_models(self, client):
        response = client.post(
            "/api/ai/models", json={"api_key": "sk", "base_url": "http://x"}, headers=OWNER
        )
        assert response.status_code == 200
        assert response.json()["models"][0] == {"id": "test-chat", "object": "model"}

        response = client.post("/api/ai/models", json={"api_key": "", "base_url": "http://x"}, headers=OWNER)
        assert response.status_code == 400

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["rag"]["active_builds"] == 0


class TestVectorsAPI:
    """Тесты построения индекса"""

    def test_disabled_owner_forbidden(self, client):
        assert client.post("/api/ai/vectors/build", headers=OWNER).status_code == 403
        assert client.get("/api/ai/vectors/stats", headers=OWNER).status_code == 403

    def test_build_and_stats(self, enabled_client, rag_manager):
        rag_manager.journal_store.save_entry("owner-1", "beach day", "2024-04-01")
        rag_manager.journal_store.save_entry("owner-1", "hiking in the hills", "2024-05-01")

        response = enabled_client.post("/api/ai/vectors/build", headers=OWNER)
        assert response.status_code == 200
        assert response.json() == {"processed": 2, "failed": 0, "skipped": 0}

        response = enabled_client.post("/api/ai/vectors/build-incremental", headers=OWNER)
        assert response.json()["unchanged"] == 2

        response = enabled_client.get("/api/ai/vectors/stats", headers=OWNER)
        assert response.json() == {"total": 2, "indexed": 2, "missing": 0, "outdated": 0}

    def test_build_in_progress(self, enabled_client, rag_manager):
        assert rag_manager.index_manager.locks is rag_manager.build_locks

        token = rag_manager.build_locks.try_acquire("owner-1")
        try:
            response = enabled_client.post("/api/ai/vectors/build", headers=OWNER)
            active_builds = enabled_client.get("/health").json()["rag"]["active_builds"]
        finally:
            rag_manager.build_locks.release("owner-1", token)

        assert response.status_code == 409
        assert active_builds == 1

    def test_build_deadline(self, enabled_client, rag_manager, api_provider):
        rag_manager.config['build_timeout_seconds'] = 0.05
        api_provider.embed_delay = 1.0
        rag_manager.journal_store.save_entry("owner-1", "beach day", "2024-04-01")

        response = enabled_client.post("/api/ai/vectors/build", headers=OWNER)

        assert response.status_code == 504
        assert response.json()["detail"]["processed"] == 0


class TestChatAPI:
    """Тесты стримингового чата"""

    def test_chat_streams_and_persists(self, enabled_client, api_provider):
        api_provider.chat_lines = [content_line("Hel"), content_line("lo"), "data: [DONE]"]

        response = enabled_client.post("/api/ai/chat", json={"content": "Привет"}, headers=OWNER)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = parse_events(response.text)
        assert events[:2] == [{"content": "Hel"}, {"content": "lo"}]
        assert events[-1]["done"] is True

        conversation_id = events[-1]["conversation_id"]
        messages = enabled_client.get(
            f"/api/ai/conversations/{conversation_id}/messages", headers=OWNER
        ).json()["messages"]
        assert [(m["role"], m["content"]) for m in messages] == [
            ("user", "Привет"), ("assistant", "Hello")
        ]

        conversations = enabled_client.get("/api/ai/conversations", headers=OWNER).json()["conversations"]
        assert conversations[0]["title"] == "Привет"

    def test_unknown_conversation(self, enabled_client):
        response = enabled_client.post(
            "/api/ai/chat", json={"conversation_id": "missing", "content": "hi"}, headers=OWNER
        )
        assert response.status_code == 404

    def test_foreign_conversation_messages(self, enabled_client, rag_manager):
        conversation = rag_manager.history_store.create_conversation("owner-2")
        response = enabled_client.get(f"/api/ai/conversations/{conversation.id}/messages", headers=OWNER)
        assert response.status_code == 404

    def test_chat_disabled_forbidden(self, client):
        client.put(
            "/api/ai/settings",
            json={**FULL_SETTINGS, "enabled": False, "chat_model": ""},
            headers=OWNER,
        )
        assert client.post("/api/ai/chat", json={"content": "hi"}, headers=OWNER).status_code == 403

    def test_interrupted_stream_sends_error(self, enabled_client, api_provider, rag_manager):
        api_provider.chat_lines = [content_line("Par"), StreamInterrupted("error reading stream")]

        response = enabled_client.post("/api/ai/chat", json={"content": "hi"}, headers=OWNER)

        events = parse_events(response.text)
        assert events[0] == {"content": "Par"}
        assert events[-1]["partial"] is True
        assert "error" in events[-1]

        conversation = rag_manager.history_store.list_conversations("owner-1")[0]
        messages = rag_manager.history_store.list_messages(conversation.id)
        assert [m.content for m in messages] == ["hi", "Par"]
