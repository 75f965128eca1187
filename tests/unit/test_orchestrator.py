"""Unit tests for AutomationOrchestrator

Real processors and repository, scripted model responses, recorded sleeps.
"""

from __future__ import annotations

import random
import sqlite3

import pytest

from biosynth.automation.models import LogStatus, TaskType
from biosynth.automation.orchestrator import (
    FALLBACK_SEEDS,
    AutomationConfig,
    AutomationOrchestrator,
)
from biosynth.automation.processors import JobProcessors
from biosynth.llm.errors import RemoteCallError

SEED = {"domain": "Energy", "inspiration": "Photosynthesis", "category": "Storage"}


@pytest.fixture
def sleeps():
    return []


def make_orchestrator(repository, client, sleeps, **overrides):
    overrides.setdefault("existing_problem_probability", 0.0)
    settings = AutomationConfig(**overrides)
    return AutomationOrchestrator(
        repository,
        JobProcessors(client, repository),
        settings=settings,
        sleep=sleeps.append,
        rng=random.Random(7),
    )


def test_generate_continues_after_item_failure(repository, scripted_client, sleeps, make_payload):
    scripted_client.queue(
        SEED,
        make_payload("First"),
        SEED,
        RemoteCallError("upstream exploded", status_code=500),
        SEED,
        make_payload("Third"),
    )
    orchestrator = make_orchestrator(repository, scripted_client, sleeps)

    summary = orchestrator.generate_daily_algorithms(count=3)

    assert (summary.attempted, summary.succeeded, summary.failed) == (3, 2, 1)
    logs = repository.list_logs(task_type="daily_generation", limit=10)
    assert sorted(entry.status.value for entry in logs) == ["failed", "success", "success"]
    failed = next(entry for entry in logs if entry.status == LogStatus.FAILED)
    assert failed.details == {"error": "upstream exploded", "attempt": 2}
    assert failed.algorithm_id is None
    assert sleeps == [2.0, 2.0]


def test_generate_success_log_and_saved_record(repository, scripted_client, sleeps, make_payload):
    scripted_client.queue(SEED, make_payload("Leaf Cache"))
    orchestrator = make_orchestrator(repository, scripted_client, sleeps)

    orchestrator.generate_daily_algorithms(count=1)

    entry = repository.list_logs()[0]
    assert entry.status == LogStatus.SUCCESS
    assert entry.details["problem"] == SEED
    assert entry.details["algorithmName"] == "Leaf Cache"
    saved = repository.get_algorithm(entry.algorithm_id)
    assert saved.type == "generated"
    assert saved.visibility == "public"
    assert saved.user_id == repository.ensure_system_user()
    generate_prompt = scripted_client.calls[1][0]
    assert '"Photosynthesis"' in generate_prompt
    assert '"Energy - Storage"' in generate_prompt
    assert sleeps == []


def test_generate_incomplete_payload_is_logged_as_failure(repository, scripted_client, sleeps):
    scripted_client.queue(SEED, {"name": "Half"})
    orchestrator = make_orchestrator(repository, scripted_client, sleeps)

    summary = orchestrator.generate_daily_algorithms(count=1)

    assert summary.failed == 1
    entry = repository.list_logs()[0]
    assert entry.status == LogStatus.FAILED
    assert "missing required fields" in entry.details["error"]
    assert repository.list_system_algorithms(limit=10) == []


def test_generate_count_defaults_to_configured_range(repository, scripted_client, sleeps, make_payload):
    scripted_client.queue(SEED, make_payload("A"), SEED, make_payload("B"))
    orchestrator = make_orchestrator(
        repository, scripted_client, sleeps, daily_algorithms_min=2, daily_algorithms_max=2
    )

    assert orchestrator.generate_daily_algorithms().attempted == 2


def test_failed_problem_idea_uses_static_fallback(repository, scripted_client, sleeps, make_payload):
    scripted_client.queue(RemoteCallError("no ideas today"), make_payload())
    orchestrator = make_orchestrator(repository, scripted_client, sleeps)

    summary = orchestrator.generate_daily_algorithms(count=1)

    assert summary.succeeded == 1
    problem = repository.list_logs()[0].details["problem"]
    assert problem in [seed.to_dict() for seed in FALLBACK_SEEDS]


def test_existing_problem_fallback_when_suggestion_fails(
    repository, pool, scripted_client, sleeps, make_payload
):
    user_id = repository.ensure_system_user()
    with pool.transaction() as conn:
        conn.execute(
            "INSERT INTO problems (user_id, title, description, domain, category, priority, status) "
            "VALUES (?, 'Grid balancing', 'Peaks', 'Energy', 'Grid', 'critical', 'active')",
            (user_id,),
        )
    scripted_client.queue(RemoteCallError("suggestion failed"), make_payload())
    orchestrator = make_orchestrator(
        repository, scripted_client, sleeps, existing_problem_probability=1.0
    )

    orchestrator.generate_daily_algorithms(count=1)

    assert repository.list_logs()[0].details["problem"] == {
        "domain": "Energy",
        "inspiration": "Biological Systems",
        "category": "Grid",
    }
    assert '"Grid balancing"' in scripted_client.calls[0][0]


def test_existing_problem_uses_suggested_inspiration(
    repository, pool, scripted_client, sleeps, make_payload
):
    user_id = repository.ensure_system_user()
    with pool.transaction() as conn:
        conn.execute(
            "INSERT INTO problems (user_id, title, description, domain, category, priority, status) "
            "VALUES (?, 'Grid balancing', 'Peaks', 'Energy', 'Grid', 'high', 'draft')",
            (user_id,),
        )
    scripted_client.queue(
        {"inspiration": "Slime Mold Networks", "domain": "Energy", "category": "Distribution"},
        make_payload("Mold Grid"),
    )
    orchestrator = make_orchestrator(
        repository, scripted_client, sleeps, existing_problem_probability=1.0
    )

    summary = orchestrator.generate_daily_algorithms(count=1)

    assert summary.succeeded == 1
    assert repository.list_logs()[0].details["problem"] == {
        "domain": "Energy",
        "inspiration": "Slime Mold Networks",
        "category": "Distribution",
    }
    assert '"Slime Mold Networks"' in scripted_client.calls[1][0]
    assert '"Energy - Distribution"' in scripted_client.calls[1][0]


def test_synthesize_needs_two_algorithms(repository, scripted_client, sleeps, add_algorithm):
    add_algorithm("Lonely")
    orchestrator = make_orchestrator(repository, scripted_client, sleeps)

    summary = orchestrator.auto_synthesize_algorithms(count=3)

    assert summary.skipped
    assert summary.attempted == 0
    assert scripted_client.calls == []
    assert repository.list_logs() == []


def test_synthesize_saves_hybrid_with_parents(repository, scripted_client, sleeps, add_algorithm, make_payload):
    ids = {add_algorithm(name, domain="Swarm Robotics") for name in ("A", "B", "C")}
    scripted_client.queue(make_payload("Hybrid One"), make_payload("Hybrid Two"))
    orchestrator = make_orchestrator(repository, scripted_client, sleeps)

    summary = orchestrator.auto_synthesize_algorithms(count=2)

    assert summary.succeeded == 2
    assert sleeps == [3.0]
    for entry in repository.list_logs(task_type="auto_synthesis"):
        parent_ids = entry.details["parentIds"]
        assert 2 <= len(parent_ids) <= 3
        assert len(set(parent_ids)) == len(parent_ids)
        assert set(parent_ids) <= ids
        assert entry.details["focusDomain"] == "Swarm Robotics"
        saved = repository.get_algorithm(entry.algorithm_id)
        assert saved.type == "hybrid"
        assert saved.parent_ids == parent_ids
    assert "solve complex problems in Swarm Robotics" in scripted_client.calls[0][0]


def test_improve_logs_only_high_risk_findings(repository, scripted_client, sleeps, add_algorithm):
    risky = add_algorithm("Risky")
    add_algorithm("Safe")

    def respond(prompt):
        if "hostile reviewer" in prompt:
            severity = "High" if "Name: Risky" in prompt else "Low"
            return {"risks": [{"risk": "Drift", "explanation": "It drifts", "severity": severity}]}
        return {"ideas": [{"name": "Anchor", "description": "Add anchors", "benefit": "Stability"}]}

    scripted_client.queue(respond, respond, respond)
    orchestrator = make_orchestrator(repository, scripted_client, sleeps)

    summary = orchestrator.improve_algorithms()

    assert (summary.attempted, summary.succeeded, summary.failed) == (2, 2, 0)
    assert len(scripted_client.calls) == 3
    logs = repository.list_logs(task_type="algorithm_improvement")
    assert len(logs) == 1
    assert logs[0].status == LogStatus.ANALYSIS_COMPLETE
    assert logs[0].details["algorithmId"] == risky
    assert logs[0].details["algorithmName"] == "Risky"
    assert logs[0].details["improvements"][0]["name"] == "Anchor"
    assert sleeps == [2.0]


def test_improve_failure_is_logged_with_algorithm_id(repository, scripted_client, sleeps, add_algorithm):
    algorithm_id = add_algorithm("Flaky")
    scripted_client.queue(RemoteCallError("analysis failed"))
    orchestrator = make_orchestrator(repository, scripted_client, sleeps)

    summary = orchestrator.improve_algorithms()

    assert summary.failed == 1
    entry = repository.list_logs()[0]
    assert entry.status == LogStatus.FAILED
    assert entry.details == {"error": "analysis failed", "algorithmId": algorithm_id}


def test_log_write_failures_do_not_stop_the_run(
    repository, scripted_client, sleeps, make_payload, monkeypatch
):
    def broken_log(entry):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(repository, "log_activity", broken_log)
    scripted_client.queue(SEED, make_payload("Survivor"))
    orchestrator = make_orchestrator(repository, scripted_client, sleeps)

    summary = orchestrator.generate_daily_algorithms(count=1)

    assert summary.succeeded == 1
    assert [algo.name for algo in repository.list_system_algorithms(limit=5)] == ["Survivor"]


def test_full_cycle_runs_all_tasks_in_order(repository, scripted_client, sleeps, make_payload):
    scripted_client.queue(
        SEED,
        make_payload("Only One"),
        {"risks": [{"risk": "None", "explanation": "Fine", "severity": "Low"}]},
    )
    orchestrator = make_orchestrator(
        repository, scripted_client, sleeps, daily_algorithms_min=1, daily_algorithms_max=1
    )

    summaries = orchestrator.run_full_cycle()

    assert [summary.task_type for summary in summaries] == [
        TaskType.DAILY_GENERATION,
        TaskType.AUTO_SYNTHESIS,
        TaskType.ALGORITHM_IMPROVEMENT,
    ]
    assert summaries[1].skipped
    assert summaries[2].succeeded == 1
