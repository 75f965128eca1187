"""
Cron scheduling for automation runs (APScheduler BackgroundScheduler).

Three crontab jobs drive the orchestrator: the full cycle, hourly generation,
and a separate synthesis pass. Job bodies log and swallow their exceptions so
one bad run never unschedules the job.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from biosynth.automation.orchestrator import AutomationOrchestrator
from biosynth.config import AUTOMATION_CRON, GENERATION_CRON, SCHEDULER_TIMEZONE, SYNTHESIS_CRON
from biosynth.observability.logging import get_logger
from biosynth.observability.telemetry import counter

logger = get_logger(__name__)

DEFAULT_SCHEDULES: dict[str, str] = {
    "daily": AUTOMATION_CRON,
    "generation": GENERATION_CRON,
    "synthesis": SYNTHESIS_CRON,
}


class AutomationScheduler:
    """
    Owns one BackgroundScheduler with the automation cron jobs.

    Raises:
        ValueError: if schedules names a job other than daily, generation or synthesis
    """

    def __init__(
        self,
        orchestrator: AutomationOrchestrator,
        schedules: dict[str, str] | None = None,
        timezone: str = SCHEDULER_TIMEZONE,
    ):
        self.orchestrator = orchestrator
        self.schedules = dict(DEFAULT_SCHEDULES if schedules is None else schedules)
        unknown = sorted(set(self.schedules) - set(DEFAULT_SCHEDULES))
        if unknown:
            raise ValueError(
                f"Unknown automation schedule(s): {', '.join(unknown)}. "
                f"Expected a subset of: {', '.join(DEFAULT_SCHEDULES)}"
            )
        self.timezone = timezone
        self._scheduler: BackgroundScheduler | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """
        Register the cron jobs and start the background thread.

        Calling start() on a running scheduler is a no-op.

        Raises:
            ValueError: if a crontab expression is invalid
        """
        with self._lock:
            if self.running:
                return

            jobs: dict[str, Callable[[], Any]] = {
                "daily": self.orchestrator.run_full_cycle,
                "generation": self.orchestrator.generate_daily_algorithms,
                "synthesis": self.orchestrator.auto_synthesize_algorithms,
            }

            scheduler = BackgroundScheduler(timezone=self.timezone)
            for name, expression in self.schedules.items():
                scheduler.add_job(
                    self._run_job,
                    CronTrigger.from_crontab(expression, timezone=self.timezone),
                    args=[name, jobs[name]],
                    id=f"automation_{name}",
                    max_instances=1,
                    coalesce=True,
                    replace_existing=True,
                )
            scheduler.start()
            self._scheduler = scheduler

        logger.info("Automation scheduler started (timezone=%s)", self.timezone)
        for name, expression in self.schedules.items():
            logger.info("  - %s: %s", name, expression)

    def stop(self) -> None:
        """Shut the scheduler down without waiting for running jobs. Idempotent."""
        with self._lock:
            if self._scheduler is None:
                return
            if self._scheduler.running:
                self._scheduler.shutdown(wait=False)
            self._scheduler = None
        logger.info("Automation scheduler stopped")

    def status(self) -> dict[str, Any]:
        return {
            "enabled": self.running,
            "running": self.running,
            "schedules": dict(self.schedules),
            "timezone": self.timezone,
        }

    @staticmethod
    def _run_job(name: str, job: Callable[[], Any]) -> None:
        logger.info("Running scheduled %s automation", name)
        try:
            job()
        except Exception:
            counter(f"scheduler.{name}.failed")
            logger.exception("Scheduled %s automation failed", name)
        else:
            counter(f"scheduler.{name}.completed")
            logger.info("Scheduled %s automation completed", name)
