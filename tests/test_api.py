"""
Tests for the HTTP surface
"""

import pytest
from fastapi.testclient import TestClient

from fusion_agent.application.api.api_server import PROCESSING_ERROR_REPLY, create_app
from fusion_agent.application.runtime import AgentRuntime
from fusion_agent.domain.context.memory.session_memory_store import SessionMemoryStore
from fusion_agent.infrastructure.config.settings import Settings


class StaticLLM:
    is_available = True

    async def complete(self, messages) -> str:
        return "Here you go."


class FailingMemory(SessionMemoryStore):
    async def append(self, session_id, role, content):
        raise RuntimeError("disk full")


@pytest.fixture
def docs(tmp_path):
    (tmp_path / "python.md").write_text(
        "Python is a programming language. " * 10, encoding="utf-8"
    )
    (tmp_path / "README.md").write_text("ignored", encoding="utf-8")
    return tmp_path


@pytest.fixture
def runtime(docs):
    settings = Settings(documents_path=str(docs), log_format="console", chunk_window_size=10)
    return AgentRuntime(settings, llm=StaticLLM())


@pytest.fixture
def client(runtime):
    with TestClient(create_app(runtime=runtime)) as test_client:
        yield test_client


class TestAgentRoutes:
    def test_message_round_trip(self, client):
        response = client.post("/agent/message", json={"session_id": "s1", "message": "What is 4*3?"})

        assert response.status_code == 200
        body = response.json()
        assert body["reply"] == "Here you go."
        assert body["session_id"] == "s1"
        assert body["plugins_used"][0]["name"] == "math"
        assert body["plugins_used"][0]["data"]["result"] == 12
        assert [e["role"] for e in body["memory_snapshot"]] == ["user", "assistant"]

    @pytest.mark.parametrize("payload", [
        {"session_id": "s1", "message": ""},
        {"session_id": "", "message": "hi"},
        {"message": "hi"},
        {"session_id": "s1", "message": "   "},
        {"session_id": "s1", "message": "x" * 1001},
    ])
    def test_invalid_requests_get_400_envelope(self, client, payload):
        response = client.post("/agent/message", json=payload)

        assert response.status_code == 400
        body = response.json()
        assert body["error"]["code"] == "VALIDATION_ERROR"
        assert set(body) >= {"reply", "used_chunks", "plugins_used", "memory_snapshot", "session_id"}
        assert body["used_chunks"] == []

    def test_malformed_json_gets_400(self, client):
        response = client.post(
            "/agent/message", content=b"{not json", headers={"content-type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_field_errors_are_listed_in_details(self, client):
        response = client.post("/agent/message", json={"session_id": "s1"})

        assert response.status_code == 400
        body = response.json()
        assert body["session_id"] == "s1"
        errors = body["error"]["details"]["errors"]
        assert [e["loc"] for e in errors] == [["body", "message"]]
        assert errors[0]["type"] == "missing"

    def test_session_snapshot_and_clear(self, client):
        client.post("/agent/message", json={"session_id": "s2", "message": "hello"})

        snapshot = client.get("/agent/session/s2").json()
        assert [e["content"] for e in snapshot] == ["hello", "Here you go."]

        cleared = client.delete("/agent/session/s2")
        assert cleared.json()["success"] is True
        assert client.get("/agent/session/s2").json() == []

    def test_processing_failure_gets_500_envelope(self, docs):
        runtime = AgentRuntime(Settings(documents_path=str(docs)), llm=StaticLLM())
        runtime.memory = FailingMemory()
        runtime.orchestrator.memory = runtime.memory

        with TestClient(create_app(runtime=runtime)) as test_client:
            response = test_client.post("/agent/message", json={"session_id": "s1", "message": "hi"})

        assert response.status_code == 500
        body = response.json()
        assert body["reply"] == PROCESSING_ERROR_REPLY
        assert body["session_id"] == "s1"
        assert body["error"]["code"] == "PROCESSING_FAILED"
        assert body["error"]["details"]["stage"] == "memory_user"


class TestRagRoutes:
    def test_process_then_search(self, client):
        report = client.post("/rag/process").json()

        assert report["files_processed"] == 1
        assert report["chunks_indexed"] == 5
        assert report["failures"] == []

        stats = client.get("/rag/stats").json()
        assert stats["data"]["total_chunks"] == 5

        results = client.post("/rag/search", json={"query": "python programming", "max_results": 2}).json()
        assert results["count"] == 2
        assert all(r["source"] == "python.md" for r in results["results"])
        assert all(r["score"] >= 0.7 for r in results["results"])

    def test_agent_uses_indexed_documents(self, client):
        client.post("/rag/process")

        body = client.post("/agent/message", json={"session_id": "s1", "message": "python language"}).json()

        assert body["used_chunks"]
        assert body["used_chunks"][0]["source"] == "python.md"

    def test_clear_index(self, client):
        client.post("/rag/process")

        assert client.delete("/rag/clear").json()["success"] is True
        assert client.get("/rag/stats").json()["data"]["total_chunks"] == 0

    def test_search_rejects_bad_threshold(self, client):
        response = client.post("/rag/search", json={"query": "x", "similarity_threshold": 2})

        assert response.status_code == 422


class TestHealthRoute:
    def test_health(self, client):
        body = client.get("/health").json()

        assert body["status"] == "ok"
        assert body["services"]["memory"] == "ok"
        assert body["services"]["plugins"] == "ok"
        assert body["services"]["language-model"] == "ok"
        assert body["uptime_seconds"] >= 0

    def test_health_reports_metrics(self, client):
        client.post("/agent/message", json={"session_id": "s1", "message": "What is 4*3?"})

        body = client.get("/health").json()

        process = body["metrics"]["latency.agent.process"]
        assert process["count"] >= 1
        assert process["min"] <= process["avg"] <= process["max"]
        assert "latency.plugin.math" in body["metrics"]


class TestLifespan:
    def test_runtime_runs_while_app_is_served(self, runtime):
        app = create_app(runtime=runtime)
        assert not runtime.memory.running

        with TestClient(app):
            assert runtime.memory.running

        assert not runtime.memory.running
