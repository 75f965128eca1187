"""Unit tests for AutomationScheduler"""

from __future__ import annotations

import pytest

from biosynth.automation.scheduler import AutomationScheduler
from biosynth.observability.telemetry import get_counter


class StubOrchestrator:
    def __init__(self):
        self.runs = []

    def run_full_cycle(self):
        self.runs.append("daily")

    def generate_daily_algorithms(self):
        self.runs.append("generation")

    def auto_synthesize_algorithms(self):
        self.runs.append("synthesis")


@pytest.fixture
def scheduler():
    sched = AutomationScheduler(StubOrchestrator(), timezone="UTC")
    yield sched
    sched.stop()


def test_start_registers_three_cron_jobs(scheduler):
    scheduler.start()

    job_ids = sorted(job.id for job in scheduler._scheduler.get_jobs())
    assert job_ids == ["automation_daily", "automation_generation", "automation_synthesis"]
    assert scheduler.status()["running"] is True


def test_start_and_stop_are_idempotent(scheduler):
    scheduler.start()
    first = scheduler._scheduler
    scheduler.start()
    assert scheduler._scheduler is first

    scheduler.stop()
    scheduler.stop()
    assert scheduler.status()["enabled"] is False


def test_status_reports_schedules():
    sched = AutomationScheduler(
        StubOrchestrator(),
        schedules={"daily": "30 1 * * *", "generation": "15 * * * *", "synthesis": "0 5 * * *"},
        timezone="UTC",
    )

    status = sched.status()

    assert status["enabled"] is False
    assert status["schedules"]["daily"] == "30 1 * * *"
    assert status["timezone"] == "UTC"


def test_invalid_crontab_is_rejected():
    sched = AutomationScheduler(StubOrchestrator(), schedules={"daily": "not a cron"}, timezone="UTC")

    with pytest.raises(ValueError):
        sched.start()
    assert not sched.running


def test_job_exceptions_are_contained():
    def explode():
        raise RuntimeError("boom")

    AutomationScheduler._run_job("generation", explode)

    assert get_counter("scheduler.generation.failed") == 1


def test_job_success_is_counted():
    orchestrator = StubOrchestrator()

    AutomationScheduler._run_job("synthesis", orchestrator.auto_synthesize_algorithms)

    assert orchestrator.runs == ["synthesis"]
    assert get_counter("scheduler.synthesis.completed") == 1


def test_unknown_schedule_name_is_rejected():
    with pytest.raises(ValueError, match="weekly"):
        AutomationScheduler(StubOrchestrator(), schedules={"daily": "0 2 * * *", "weekly": "0 3 * * 0"})
