from __future__ import annotations

from fastapi.testclient import TestClient
import pytest

from datapilot.agents.orchestrator import Orchestrator
from datapilot.core.dependencies import get_orchestrator, get_query_executor, get_semantic_metadata
from datapilot.main import app
from datapilot.services.response_cache import ResponseCache

client = TestClient(app)


@pytest.fixture
def orchestrator(happy_oracle, semantic_metadata, executor):
    orchestrator = Orchestrator(happy_oracle, cache=ResponseCache(ttl_ms=60_000, max_size=10))
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_semantic_metadata] = lambda: semantic_metadata
    app.dependency_overrides[get_query_executor] = lambda: executor
    yield orchestrator
    app.dependency_overrides.clear()


def test_repeat_ask_is_served_from_cache(orchestrator, happy_oracle, executor) -> None:
    first = client.post("/ask", json={"question": "Show me revenue trend for January"})
    assert first.status_code == 200
    calls_after_first = happy_oracle.call_count

    second = client.post("/ask", json={"question": "show me revenue trend for january"})
    assert second.status_code == 200
    assert second.json() == first.json()
    assert happy_oracle.call_count == calls_after_first
    assert len(executor.calls) == 1


def test_stats_and_clear(orchestrator) -> None:
    assert client.get("/cache/stats").json() == {"enabled": True, "size": 0, "max_size": 10, "ttl_ms": 60_000}

    client.post("/ask", json={"question": "Show me revenue trend for January"})
    assert client.get("/cache/stats").json()["size"] == 1

    cleared = client.delete("/cache")
    assert cleared.status_code == 200
    assert cleared.json() == {"cleared": 1}
    assert client.get("/cache/stats").json()["size"] == 0


def test_health_and_root() -> None:
    for path in ("/", "/health"):
        response = client.get(path, headers={"X-Request-Id": f"health{path}"})
        assert response.status_code == 200
        assert response.headers["x-request-id"] == f"health{path}"
        assert response.json() == {"status": "ok", "app": "datapilot-api", "env": "test"}
