"""
Test suite for the HTTP API.

Routers are mounted on a bare FastAPI app with the singleton dependencies
overridden, so no database or network is touched.
"""

import time

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from chatbench.api import router as api_router
from chatbench.manager_singleton import ManagerSingleton
from chatbench.runner.runner import ChatRunner
from chatbench.sessions.session import MessageRole


@pytest.fixture
def runner(store):
    return ChatRunner(store)


@pytest.fixture
def client(store, runner):
    app = FastAPI()
    app.include_router(api_router)
    app.dependency_overrides[ManagerSingleton.get_store] = lambda: store
    app.dependency_overrides[ManagerSingleton.get_runner] = lambda: runner
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def session_id(store):
    session_id = store.create_session()
    store.add_message(MessageRole.SYSTEM, "You are a helpful AI assistant.")
    return session_id


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestSessionEndpoints:
    def test_create_and_list(self, client):
        created = client.post("/sessions", json={"title": "Research"})
        assert created.status_code == 200
        new_id = created.json()["id"]

        listing = client.get("/sessions").json()
        assert listing["current_session_id"] == new_id
        assert listing["total_count"] == 1
        assert listing["sessions"][0]["title"] == "Research"
        assert listing["sessions"][0]["is_current"] is True

    def test_create_without_body(self, client):
        response = client.post("/sessions")
        assert response.status_code == 200
        assert response.json()["title"] == "New Chat"

    def test_get_unknown_session(self, client):
        assert client.get("/sessions/missing").status_code == 404

    def test_switch_rename_duplicate_delete(self, client, store, session_id):
        other = store.create_session()

        assert client.post(f"/sessions/{session_id}/switch").json()["current_session_id"] == session_id
        assert client.post(f"/sessions/{session_id}/title", json={"title": "Renamed"}).status_code == 200
        assert store.get_session(session_id).title == "Renamed"

        duplicate = client.post(f"/sessions/{session_id}/duplicate").json()
        assert duplicate["title"] == "Renamed (Copy)"
        assert store.current_session_id == duplicate["id"]

        assert client.delete(f"/sessions/{other}").status_code == 200
        assert not store.has_session(other)
        assert client.delete(f"/sessions/{other}").status_code == 404

    def test_switch_unknown_session(self, client):
        assert client.post("/sessions/missing/switch").status_code == 404


class TestMessageEndpoints:
    def test_add_message_at_index(self, client, store, session_id):
        client.post(f"/sessions/{session_id}/messages", json={"role": "user", "content": "second"})
        response = client.post(
            f"/sessions/{session_id}/messages",
            json={"role": "note", "content": "first", "index": 1},
        )

        assert response.status_code == 200
        assert response.json()["role"] == "note"
        assert [m.content for m in store.get_session(session_id).messages] == [
            "You are a helpful AI assistant.",
            "first",
            "second",
        ]

    def test_duplicate_message_id(self, client, session_id):
        payload = {"role": "user", "content": "x", "id": "m-1"}
        assert client.post(f"/sessions/{session_id}/messages", json=payload).status_code == 200
        assert client.post(f"/sessions/{session_id}/messages", json=payload).status_code == 409

    def test_invalid_role(self, client, session_id):
        response = client.post(f"/sessions/{session_id}/messages", json={"role": "narrator"})
        assert response.status_code == 422

    def test_patch_merges_fields(self, client, store, session_id):
        message_id = store.add_message(MessageRole.USER, "draft", meta={"isExpanded": True})

        response = client.patch(f"/sessions/{session_id}/messages/{message_id}", json={"content": "final"})

        assert response.status_code == 200
        body = response.json()
        assert body["content"] == "final"
        assert body["role"] == "user"
        assert body["meta"] == {"isExpanded": True}

    def test_patch_unknown_message(self, client, session_id):
        response = client.patch(f"/sessions/{session_id}/messages/missing", json={"content": "x"})
        assert response.status_code == 404

    def test_delete_and_clear(self, client, store, session_id):
        message_id = store.add_message(MessageRole.USER, "bye")

        assert client.delete(f"/sessions/{session_id}/messages/{message_id}").status_code == 200
        assert client.delete(f"/sessions/{session_id}/messages/{message_id}").status_code == 404

        assert client.delete(f"/sessions/{session_id}/messages").status_code == 200
        assert store.get_session(session_id).messages == []


class TestExportEndpoints:
    def test_export_and_import(self, client, store, session_id):
        exported = client.get(f"/sessions/{session_id}/export").json()

        imported = client.post("/sessions/import", json=exported)

        assert imported.status_code == 200
        assert imported.json()["session_id"] != session_id
        assert len(store.list_sessions()) == 2

    def test_import_invalid(self, client):
        assert client.post("/sessions/import", json={"messages": "nope"}).status_code == 400

    def test_backup_round_trip(self, client, store, session_id):
        response = client.get("/backup")
        assert response.status_code == 200
        assert "chat-backup-" in response.headers["content-disposition"]
        backup = response.json()
        assert backup["version"] == 1

        store.delete_session(session_id)
        restored = client.post("/backup", json=backup)

        assert restored.status_code == 200
        assert restored.json()["restored"]["sessions"] == 1
        assert store.has_session(session_id)

    def test_restore_wrong_version(self, client):
        assert client.post("/backup", json={"version": 99}).status_code == 400


class TestConfigEndpoints:
    def test_providers(self, client):
        providers = client.get("/config/providers").json()["providers"]
        assert {"id": "test-mock", "name": "Test Mock"} in providers

    def test_model_config_crud(self, client, store):
        created = client.post(
            "/config/models",
            json={"name": "My DeepSeek", "providerId": "deepseek-official", "settings": {"apiKey": "sk-1"}},
        )
        assert created.status_code == 200
        config = created.json()
        assert config["settings"]["endpoint"] == "https://api.deepseek.com"
        assert config["settings"]["apiKey"] == "sk-1"

        updated = client.put(f"/config/models/{config['id']}", json={"name": "Renamed", "settings": {"temperature": 0.2}})
        assert updated.status_code == 200
        assert store.get_model_config(config["id"]).settings.temperature == 0.2
        assert store.get_model_config(config["id"]).name == "Renamed"

        invalid = client.put(f"/config/models/{config['id']}", json={"settings": {"temperature": 5}})
        assert invalid.status_code == 422

        assert client.delete(f"/config/models/{config['id']}").status_code == 200
        assert client.get("/config/models").json()["model_configs"] == []

    def test_update_unknown_config(self, client):
        assert client.put("/config/models/missing", json={"name": "x"}).status_code == 404


class TestRunEndpoints:
    def test_start_without_config(self, client, session_id):
        response = client.post("/runs/start", json={"model_config_id": "missing"})
        assert response.status_code == 400

    def test_stop_when_idle(self, client):
        response = client.post("/runs/stop")
        assert response.status_code == 200
        assert response.json()["stopped"] is False
        assert response.json()["state"] == "idle"

    def test_mock_run(self, client, store, session_id):
        store.add_message(MessageRole.USER, "ping")
        config = client.post(
            "/config/models",
            json={"name": "Mock", "providerId": "test-mock", "settings": {"mockReply": "pong", "mockDelay": 0}},
        ).json()

        started = client.post("/runs/start", json={"model_config_id": config["id"]})
        assert started.status_code == 200

        for _ in range(100):
            if client.get("/runs/state").json()["state"] == "finished":
                break
            time.sleep(0.01)

        assert client.get("/runs/state").json()["is_generating"] is False
        messages = store.get_session(session_id).messages
        assert messages[-1].role == MessageRole.ASSISTANT
        assert messages[-1].content == "pong"
