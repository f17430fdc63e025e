# tests/unit/infrastructure/web/test_analysis_api.py
import pytest

from fastapi import FastAPI
from fastapi.testclient import TestClient

from application.orchestrators.analysis_coordinator import create_development_coordinator
from infrastructure.providers.text_generation import MockTextGenerator
from infrastructure.web.analysis_api import router

@pytest.fixture
def coordinator():
    return create_development_coordinator()

@pytest.fixture
def client(coordinator):
    app = FastAPI()
    app.include_router(router)
    app.state.coordinator = coordinator
    return TestClient(app)

class TestAnalysisApi:

    def test_run_analysis(self, client, composite_request):
        response = client.post("/analysis", json=composite_request)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["requestId"].startswith("req_")
        assert body["marketResearch"]["metadata"]["taskId"] == "market-research"

    def test_invalid_request(self, client):
        response = client.post("/analysis", json={"idea": {"title": "X"}})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_REQUEST"

    def test_partial_failure_is_still_ok(self, composite_request):
        coordinator = create_development_coordinator(
            text_generator=MockTextGenerator(responses={"founder fit": "not json"})
        )
        app = FastAPI()
        app.include_router(router)
        app.state.coordinator = coordinator

        response = TestClient(app).post("/analysis", json=composite_request)

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["metadata"]["agentsFailed"] == ["founder-fit"]

    def test_list_executions(self, client):
        response = client.get("/analysis/executions")

        assert response.status_code == 200
        assert response.json() == []

    def test_cancel_unknown_execution(self, client):
        response = client.delete("/analysis/executions/req_missing")

        assert response.status_code == 404

    def test_task_metrics(self, client, composite_request):
        client.post("/analysis", json=composite_request)

        response = client.get("/analysis/metrics/market-research", params={"hours": 1})

        assert response.status_code == 200
        assert response.json()["aggregated"]["totalExecutions"] == 1

    def test_unknown_task_metrics(self, client):
        assert client.get("/analysis/metrics/legal-review").status_code == 404

    def test_coordinator_missing(self):
        app = FastAPI()
        app.include_router(router)

        response = TestClient(app).get("/analysis/executions")

        assert response.status_code == 503

class TestApplication:

    def test_lifespan_health_and_root(self, monkeypatch):
        monkeypatch.setenv("LLM_PROVIDER", "mock")
        monkeypatch.setenv("CACHE_BACKEND", "memory")
        monkeypatch.setenv("MARKET_DATA_SOURCE", "none")
        monkeypatch.setenv("JSON_LOGS", "false")

        from main import app

        with TestClient(app) as client:
            health = client.get("/health")
            root = client.get("/")

        assert health.status_code == 200
        assert health.json()["status"] == "healthy"
        assert health.json()["activeExecutions"] == 0
        assert root.json()["service"] == "Idea Analysis Service"
