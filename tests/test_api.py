"""
Tests for the HTTP API.
"""

import json

from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock

from oncall_agent.agent import Agent, SessionStore
from oncall_agent.api.app import create_app
from oncall_agent.config import Settings
from oncall_agent.errors import LLMError
from oncall_agent.llm.base import LLMResponse
from oncall_agent.rag import Document, InMemoryVectorStore, RAGService
from oncall_agent.tools.base import FunctionTool, ToolParameter, ToolResult
from oncall_agent.tools.registry import ToolRegistry

PLAN = (
    '{"steps": ['
    '{"id": 1, "description": "Query api logs", "tool_name": "log_query", "tool_params": {"service": "api"}},'
    '{"id": 2, "description": "Memory limit is too low."}'
    ']}'
)


async def fake_logs(service: str = "") -> ToolResult:
    return ToolResult(success=True, output="OOMKilled")


async def failing_logs(service: str = "") -> ToolResult:
    return ToolResult(success=False, error="log backend down")


def make_client(handler=fake_logs, plan_reply: str = PLAN, retriever=None, settings=None) -> TestClient:
    llm = MagicMock()
    llm.provider_name = "openai"
    llm.generate = AsyncMock(return_value=LLMResponse(content=plan_reply))
    llm.complete = AsyncMock(return_value='{"no_change": true}')

    registry = ToolRegistry()
    registry.register(FunctionTool(
        tool_name="log_query",
        description="Query logs",
        parameters=[ToolParameter("service", "string", "Service name", required=True)],
        handler=handler,
    ))

    settings = settings or Settings(_env_file=None)
    agent = Agent(
        llm=llm,
        tool_registry=registry,
        session_store=SessionStore(),
        retriever=retriever,
        settings=settings,
    )
    return TestClient(create_app(settings=settings, agent=agent))


def read_events(response) -> list[str]:
    return [line[len("data: "):] for line in response.text.splitlines() if line.startswith("data: ")]


def test_health():
    with make_client() as client:
        response = client.get("/api/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["tools"] == 1
    assert data["session_sweep_running"] is True


def test_list_tools():
    with make_client() as client:
        response = client.get("/api/tools")

    body = response.json()
    assert body["code"] == "OK"
    assert body["data"][0]["name"] == "log_query"


def test_chat():
    with make_client() as client:
        response = client.post("/api/chat", json={"user_id": "alice", "session_id": "s1", "message": "api?"})

    assert response.status_code == 200
    body = response.json()
    assert body["code"] == "OK"
    assert body["data"]["response"] == "OOMKilled\n\nMemory limit is too low."
    assert body["data"]["plan"]["status"] == "completed"


def test_chat_blank_message_is_400():
    with make_client() as client:
        response = client.post("/api/chat", json={"user_id": "alice", "message": " "})

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_INPUT"


def test_chat_step_failure_is_500():
    with make_client(handler=failing_logs) as client:
        response = client.post("/api/chat", json={"user_id": "alice", "message": "api?"})

    assert response.status_code == 500
    body = response.json()
    assert body["code"] == "TOOL_EXEC_FAILED"
    assert "log backend down" in body["message"]


def test_chat_llm_failure_is_502():
    with make_client() as client:
        client.app.state.agent.llm.generate.side_effect = LLMError("provider down")
        response = client.post("/api/chat", json={"user_id": "alice", "message": "api?"})

    assert response.status_code == 502
    assert response.json()["code"] == "LLM_FAILED"


def test_chat_stream():
    with make_client() as client:
        response = client.post("/api/chat/stream", json={"user_id": "alice", "message": "api?"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = read_events(response)
    assert events[-1] == "[DONE]"
    contents = [json.loads(e)["content"] for e in events[:-1]]
    assert contents == [
        "✅ Query api logs\nOOMKilled\n\n",
        "✅ Memory limit is too low.\nMemory limit is too low.\n\n",
    ]


def test_chat_stream_failure_ends_with_error_event():
    with make_client(handler=failing_logs) as client:
        response = client.post("/api/chat/stream", json={"user_id": "alice", "message": "api?"})

    events = [json.loads(e) for e in read_events(response)]
    assert events[0] == {"content": "❌ Query api logs: log backend down\n\n"}
    assert "error" in events[-1]


def test_session_lookup_and_delete():
    with make_client() as client:
        client.post("/api/chat", json={"user_id": "alice", "session_id": "s1", "message": "api?"})

        found = client.get("/api/sessions/alice/s1")
        assert found.status_code == 200
        assert [m["role"] for m in found.json()["data"]["messages"]] == ["user", "assistant"]

        deleted = client.delete("/api/sessions/alice/s1")
        assert deleted.status_code == 200

        missing = client.get("/api/sessions/alice/s1")
        assert missing.status_code == 404
        assert missing.json()["code"] == "SESSION_NOT_FOUND"


def test_unknown_session_is_404():
    with make_client() as client:
        assert client.get("/api/sessions/bob/s1").status_code == 404
        assert client.delete("/api/sessions/bob/s1").status_code == 404


def make_rag_service() -> RAGService:
    embedder = MagicMock()
    embedder.embed = AsyncMock(return_value=[1.0, 0.0])
    embedder.embed_batch = AsyncMock(side_effect=lambda texts: [[1.0, 0.0] for _ in texts])
    return RAGService(embedder, InMemoryVectorStore(), chunk_size=100, chunk_overlap=0)


def test_chat_returns_retrieved_knowledge():
    retriever = MagicMock()
    retriever.retrieve = AsyncMock(return_value=[
        Document(id="runbook_0", content="Raise the memory limit", metadata={"source": "runbook"}, score=0.9),
    ])

    with make_client(retriever=retriever) as client:
        response = client.post("/api/chat", json={"user_id": "alice", "message": "api?"})

    knowledge = response.json()["data"]["knowledge"]
    assert knowledge == [{
        "id": "runbook_0",
        "content": "Raise the memory limit",
        "metadata": {"source": "runbook"},
        "score": 0.9,
    }]


def test_chat_stream_unexpected_error_ends_with_error_event():
    with make_client() as client:
        client.app.state.agent.llm.generate.side_effect = RuntimeError("boom")
        response = client.post("/api/chat/stream", json={"user_id": "alice", "message": "api?"})

    events = read_events(response)
    assert events
    assert json.loads(events[-1]) == {"error": "internal error"}


def test_add_knowledge_then_chat_uses_it():
    with make_client(retriever=make_rag_service()) as client:
        added = client.post("/api/knowledge", json={"content": "Restart api pods on OOM", "source": "runbook"})
        assert added.status_code == 200
        assert added.json()["data"] == {"chunks": 1, "ids": ["runbook_0"]}

        response = client.post("/api/chat", json={"user_id": "alice", "message": "api?"})

    assert response.json()["data"]["knowledge"][0]["content"] == "Restart api pods on OOM"


def test_add_knowledge_without_retrieval_is_400():
    with make_client() as client:
        response = client.post("/api/knowledge", json={"content": "anything"})

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_INPUT"


def test_knowledge_dir_is_indexed_at_startup(tmp_path):
    (tmp_path / "disk.md").write_text("Clean /var/log when the disk is full", encoding="utf-8")
    service = make_rag_service()
    settings = Settings(_env_file=None, knowledge_dir=str(tmp_path))

    with make_client(retriever=service, settings=settings):
        assert len(service.vector_store) == 1
