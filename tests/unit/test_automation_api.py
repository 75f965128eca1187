"""Tests for the automation admin API (FastAPI TestClient, temp database)"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from biosynth.api.app import create_app
from biosynth.automation.models import (
    AlgorithmRecord,
    AutomationLogEntry,
    LogStatus,
    TaskSummary,
    TaskType,
)
from biosynth.observability.telemetry import counter, time_block

API_KEY = "test-admin-key"
AUTH = {"Authorization": f"Bearer {API_KEY}"}


class RecordingOrchestrator:
    def __init__(self, fail: bool = False):
        self.calls: list[str] = []
        self.fail = fail

    def _run(self, name: str, task_type: TaskType):
        self.calls.append(name)
        if self.fail:
            raise RuntimeError("/srv/biosynth/automation/orchestrator.py exploded")
        return TaskSummary(task_type)

    def generate_daily_algorithms(self):
        return self._run("generate", TaskType.DAILY_GENERATION)

    def auto_synthesize_algorithms(self):
        return self._run("synthesize", TaskType.AUTO_SYNTHESIS)

    def improve_algorithms(self):
        return self._run("improve", TaskType.ALGORITHM_IMPROVEMENT)

    def run_full_cycle(self):
        return [self._run("all", TaskType.DAILY_GENERATION)]


@pytest.fixture
def orchestrator():
    return RecordingOrchestrator()


@pytest.fixture
def client(pool, orchestrator, monkeypatch):
    monkeypatch.setenv("BIOSYNTH_ADMIN_API_KEY", API_KEY)
    app = create_app(pool=pool, orchestrator=orchestrator, start_scheduler=False)
    with TestClient(app) as test_client:
        yield test_client


def test_missing_header_is_401(client):
    response = client.get("/api/automation/status")

    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_malformed_header_is_401(client):
    response = client.get("/api/automation/logs", headers={"Authorization": "Token abc"})
    assert response.status_code == 401


def test_wrong_key_is_403(client):
    response = client.get("/api/automation/logs", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 403


def test_trigger_rejects_unknown_task(client, orchestrator):
    response = client.post("/api/automation/trigger", json={"task": "destroy"}, headers=AUTH)

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid task. Use: generate, synthesize, improve, or all"
    assert orchestrator.calls == []


@pytest.mark.parametrize("task", ["generate", "synthesize", "improve", "all"])
def test_trigger_runs_requested_task(client, orchestrator, task):
    response = client.post("/api/automation/trigger", json={"task": task}, headers=AUTH)

    assert response.status_code == 200
    assert orchestrator.calls == [task]
    assert "completed" in response.json()["message"]


def test_trigger_without_task_runs_everything(client, orchestrator):
    response = client.post("/api/automation/trigger", json={}, headers=AUTH)

    assert response.status_code == 200
    assert orchestrator.calls == ["all"]


def test_trigger_failure_is_sanitized(pool, monkeypatch):
    monkeypatch.setenv("BIOSYNTH_ADMIN_API_KEY", API_KEY)
    app = create_app(pool=pool, orchestrator=RecordingOrchestrator(fail=True), start_scheduler=False)

    with TestClient(app) as test_client:
        response = test_client.post("/api/automation/trigger", json={"task": "generate"}, headers=AUTH)

    assert response.status_code == 500
    assert response.json()["detail"] == "Automation task failed"


def test_logs_endpoint_filters(client, repository):
    repository.log_activity(
        AutomationLogEntry(task_type=TaskType.DAILY_GENERATION, status=LogStatus.SUCCESS, details={"n": 1})
    )
    repository.log_activity(
        AutomationLogEntry(task_type=TaskType.AUTO_SYNTHESIS, status=LogStatus.FAILED, details={"n": 2})
    )

    response = client.get("/api/automation/logs", params={"taskType": "auto_synthesis"}, headers=AUTH)

    assert response.status_code == 200
    logs = response.json()["logs"]
    assert len(logs) == 1
    assert logs[0]["taskType"] == "auto_synthesis"
    assert logs[0]["details"] == {"n": 2}


def test_logs_limit_is_bounded(client):
    response = client.get("/api/automation/logs", params={"limit": 100000}, headers=AUTH)

    assert response.status_code == 422
    assert response.json()["invalid_fields"] == ["limit"]


def test_status_reports_stats_and_recent_logs(client, repository, make_payload):
    system_id = repository.ensure_system_user()
    repository.save_algorithm(system_id, AlgorithmRecord.from_payload(make_payload()))
    repository.log_activity(
        AutomationLogEntry(task_type=TaskType.DAILY_GENERATION, status=LogStatus.SUCCESS)
    )

    body = client.get("/api/automation/status", headers=AUTH).json()

    assert body["statistics"][0]["taskType"] == "daily_generation"
    assert body["statistics"][0]["count"] == 1
    assert len(body["recentLogs"]) == 1
    assert body["systemGeneratedAlgorithms"] == 1
    assert body["schedulerEnabled"] is False


def test_scheduler_status_when_disabled(client):
    body = client.get("/api/automation/scheduler/status", headers=AUTH).json()
    assert body == {"enabled": False, "running": False, "schedules": {}}


def test_algorithms_lists_system_output(client, repository, make_payload, add_algorithm):
    system_id = repository.ensure_system_user()
    add_algorithm("Someone else's")
    repository.save_algorithm(system_id, AlgorithmRecord.from_payload(make_payload("System Made")))

    body = client.get("/api/automation/algorithms", headers=AUTH).json()

    assert [algo["name"] for algo in body["algorithms"]] == ["System Made"]
    assert body["algorithms"][0]["steps"] == ["Explore", "Reinforce", "Prune"]


def test_health_endpoints_are_public(client):
    assert client.get("/health").json()["status"] == "healthy"
    db = client.get("/health/db").json()
    assert db["status"] == "healthy"
    assert db["pool"]["pool_size"] == 2


def test_debug_stats_reports_counters_and_latency(client):
    counter("llm.calls")
    with time_block("llm.generate_json"):
        pass

    assert client.get("/debug/stats").status_code == 401
    body = client.get("/debug/stats", headers=AUTH).json()

    assert body["counters"]["llm.calls"] == 1
    assert body["latency"]["llm.generate_json"]["count"] == 1
