"""
Automation orchestrator - scheduled generation, synthesis and improvement runs.

Each task processes its items one at a time. A failing item is logged to
automation_logs and the run moves on; nothing raised by a single item ever
escapes a task method. Log writes are best effort: a failed insert is logged
and dropped.
"""

from __future__ import annotations

import random
import sqlite3
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from biosynth import config
from biosynth.automation.models import (
    AlgorithmRecord,
    AlgorithmType,
    AnalysisType,
    AutomationLogEntry,
    GenerationRequest,
    LogStatus,
    ProblemSeed,
    StoredAlgorithm,
    TaskSummary,
    TaskType,
)
from biosynth.automation.processors import JobProcessors, JobResult
from biosynth.automation.repository import AutomationRepository
from biosynth.llm.errors import LLMError
from biosynth.llm.gemini import GeminiInitializationError
from biosynth.observability.logging import get_logger
from biosynth.observability.telemetry import counter, log_event

logger = get_logger(__name__)

FALLBACK_SEEDS: tuple[ProblemSeed, ...] = (
    ProblemSeed(domain="Optimization", inspiration="Evolutionary Processes", category="Computing"),
    ProblemSeed(domain="Pattern Recognition", inspiration="Neural Networks", category="AI"),
    ProblemSeed(domain="Resource Allocation", inspiration="Ecosystem Balance", category="Management"),
    ProblemSeed(domain="Problem Solving", inspiration="Biological Systems", category="General"),
)

DEFAULT_FOCUS_DOMAIN = "Complex Problem Solving"


class IncompleteResultError(RuntimeError):
    """A processor came back with a result the orchestrator cannot persist."""

    def __init__(self, result: JobResult):
        super().__init__(result.message or f"Processor returned {result.kind.value}")
        self.result = result


@dataclass
class AutomationConfig:
    """Knobs for one orchestrator instance. Defaults come from biosynth.config."""

    daily_algorithms_min: int = config.DAILY_ALGORITHMS_MIN
    daily_algorithms_max: int = config.DAILY_ALGORITHMS_MAX
    daily_syntheses_min: int = config.DAILY_SYNTHESES_MIN
    daily_syntheses_max: int = config.DAILY_SYNTHESES_MAX
    top_algorithms_for_synthesis: int = config.TOP_ALGORITHMS_FOR_SYNTHESIS
    unanalyzed_algorithms_limit: int = config.UNANALYZED_ALGORITHMS_LIMIT
    analysis_interval_days: int = config.ANALYSIS_INTERVAL_DAYS
    problem_candidate_limit: int = config.PROBLEM_CANDIDATE_LIMIT
    existing_problem_probability: float = config.EXISTING_PROBLEM_PROBABILITY
    generate_delay_seconds: float = config.GENERATE_DELAY_SECONDS
    synthesize_delay_seconds: float = config.SYNTHESIZE_DELAY_SECONDS
    improve_delay_seconds: float = config.IMPROVE_DELAY_SECONDS


def _require_ok(result: JobResult) -> dict[str, Any]:
    if not result.is_ok:
        raise IncompleteResultError(result)
    return result.payload


class AutomationOrchestrator:
    """
    Drives the three automation tasks against a repository and processors.

    Task methods are serialized by a re-entrant lock so a manual trigger and
    a scheduled run never interleave; run_full_cycle holds the lock across
    all three tasks.
    """

    def __init__(
        self,
        repository: AutomationRepository,
        processors: JobProcessors,
        settings: AutomationConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ):
        self.repository = repository
        self.processors = processors
        self.settings = settings or AutomationConfig()
        self.sleep = sleep
        self.rng = rng or random.Random()
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def generate_daily_algorithms(self, count: int | None = None) -> TaskSummary:
        """
        Generate `count` new algorithms (random in the configured range by default).

        Side Effects:
            - Inserts one algorithms row per successful item (system user, public)
            - Appends one automation_logs row per item
            - Calls Gemini at least once per item
            - Sleeps between items
        """
        with self._lock:
            summary = TaskSummary(TaskType.DAILY_GENERATION)
            total = count if count is not None else self.rng.randint(
                self.settings.daily_algorithms_min, self.settings.daily_algorithms_max
            )
            logger.info("Starting daily algorithm generation (%d items)", total)
            system_user_id = self.repository.ensure_system_user()

            for attempt in range(1, total + 1):
                summary.attempted += 1
                try:
                    seed = self._pick_problem_seed()
                    payload = _require_ok(
                        self.processors.generate(
                            GenerationRequest(inspiration=seed.inspiration, domain=seed.domain_label())
                        )
                    )
                    record = AlgorithmRecord.from_payload(payload, AlgorithmType.GENERATED)
                    algorithm_id = self.repository.save_algorithm(system_user_id, record)
                except Exception as e:
                    summary.failed += 1
                    logger.error("Error generating algorithm %d: %s", attempt, e)
                    self._record(
                        AutomationLogEntry(
                            task_type=TaskType.DAILY_GENERATION,
                            status=LogStatus.FAILED,
                            details={"error": str(e), "attempt": attempt},
                        )
                    )
                else:
                    summary.succeeded += 1
                    logger.info("Generated algorithm: %s (ID: %d)", record.name, algorithm_id)
                    self._record(
                        AutomationLogEntry(
                            task_type=TaskType.DAILY_GENERATION,
                            status=LogStatus.SUCCESS,
                            details={
                                "problem": seed.to_dict(),
                                "algorithmId": algorithm_id,
                                "algorithmName": record.name,
                            },
                            algorithm_id=algorithm_id,
                        )
                    )

                if attempt < total:
                    self.sleep(self.settings.generate_delay_seconds)

            self._finish(summary)
            return summary

    def auto_synthesize_algorithms(self, count: int | None = None) -> TaskSummary:
        """
        Combine 2-3 top-ranked algorithms into hybrids.

        Skips the whole run (no AI call, no log row) when fewer than two
        algorithms are available.

        Side Effects:
            - Inserts one hybrid algorithms row per successful item
            - Appends one automation_logs row per item
            - Sleeps between items
        """
        with self._lock:
            summary = TaskSummary(TaskType.AUTO_SYNTHESIS)
            system_user_id = self.repository.ensure_system_user()
            pool = self.repository.top_algorithms(self.settings.top_algorithms_for_synthesis)

            if len(pool) < 2:
                logger.info("Not enough algorithms for synthesis (%d available)", len(pool))
                summary.skipped = True
                self._finish(summary)
                return summary

            total = count if count is not None else self.rng.randint(
                self.settings.daily_syntheses_min, self.settings.daily_syntheses_max
            )
            logger.info("Starting auto-synthesis (%d items from %d candidates)", total, len(pool))

            for attempt in range(1, total + 1):
                summary.attempted += 1
                try:
                    parents = self._pick_parents(pool)
                    parent_ids = [algo.id for algo in parents]
                    focus_domain = parents[0].domain or DEFAULT_FOCUS_DOMAIN
                    payload = _require_ok(
                        self.processors.synthesize(
                            parents,
                            focus=f"Create a hybrid system to solve complex problems in {focus_domain}",
                        )
                    )
                    record = AlgorithmRecord.from_payload(payload, AlgorithmType.HYBRID, parent_ids)
                    algorithm_id = self.repository.save_algorithm(system_user_id, record)
                except Exception as e:
                    summary.failed += 1
                    logger.error("Error synthesizing algorithm %d: %s", attempt, e)
                    self._record(
                        AutomationLogEntry(
                            task_type=TaskType.AUTO_SYNTHESIS,
                            status=LogStatus.FAILED,
                            details={"error": str(e), "attempt": attempt},
                        )
                    )
                else:
                    summary.succeeded += 1
                    logger.info("Synthesized algorithm: %s (ID: %d)", record.name, algorithm_id)
                    self._record(
                        AutomationLogEntry(
                            task_type=TaskType.AUTO_SYNTHESIS,
                            status=LogStatus.SUCCESS,
                            details={
                                "parentIds": parent_ids,
                                "algorithmId": algorithm_id,
                                "algorithmName": record.name,
                                "focusDomain": focus_domain,
                            },
                            algorithm_id=algorithm_id,
                        )
                    )

                if attempt < total:
                    self.sleep(self.settings.synthesize_delay_seconds)

            self._finish(summary)
            return summary

    def improve_algorithms(self) -> TaskSummary:
        """
        Review recently unanalyzed algorithms for high-severity risks.

        An analysis_complete row is written only when a High risk turns up;
        clean reviews count as succeeded but leave no log row.

        Side Effects:
            - Inserts algorithm_analysis rows (via JobProcessors.analyze)
            - Appends automation_logs rows for High-risk findings and failures
            - Sleeps between items
        """
        with self._lock:
            summary = TaskSummary(TaskType.ALGORITHM_IMPROVEMENT)
            candidates = self.repository.unanalyzed_algorithms(
                self.settings.unanalyzed_algorithms_limit,
                self.settings.analysis_interval_days,
            )
            if not candidates:
                logger.info("No algorithms need improvement analysis")
                self._finish(summary)
                return summary

            logger.info("Starting improvement analysis for %d algorithms", len(candidates))
            for index, algo in enumerate(candidates):
                summary.attempted += 1
                try:
                    self._review(algo)
                except Exception as e:
                    summary.failed += 1
                    logger.error("Error improving algorithm %d: %s", algo.id, e)
                    self._record(
                        AutomationLogEntry(
                            task_type=TaskType.ALGORITHM_IMPROVEMENT,
                            status=LogStatus.FAILED,
                            details={"error": str(e), "algorithmId": algo.id},
                            algorithm_id=algo.id,
                        )
                    )
                else:
                    summary.succeeded += 1

                if index < len(candidates) - 1:
                    self.sleep(self.settings.improve_delay_seconds)

            self._finish(summary)
            return summary

    def run_full_cycle(self) -> list[TaskSummary]:
        """Generate, then synthesize, then improve."""
        with self._lock:
            logger.info("Starting full automation cycle")
            summaries = [
                self.generate_daily_algorithms(),
                self.auto_synthesize_algorithms(),
                self.improve_algorithms(),
            ]
            logger.info("Full automation cycle completed")
            return summaries

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _review(self, algo: StoredAlgorithm) -> None:
        blind_spots = _require_ok(self.processors.analyze(algo.id, AnalysisType.BLIND_SPOT))
        risks = blind_spots.get("risks") or []
        if not any(isinstance(risk, dict) and risk.get("severity") == "High" for risk in risks):
            logger.debug("No High risks for algorithm %d", algo.id)
            return

        extension = _require_ok(self.processors.analyze(algo.id, AnalysisType.EXTENSION))
        counter("automation.high_risk_found")
        self._record(
            AutomationLogEntry(
                task_type=TaskType.ALGORITHM_IMPROVEMENT,
                status=LogStatus.ANALYSIS_COMPLETE,
                details={
                    "algorithmId": algo.id,
                    "algorithmName": algo.name,
                    "risks": risks,
                    "improvements": extension.get("ideas") or [],
                },
                algorithm_id=algo.id,
            )
        )
        logger.info("Analyzed algorithm: %s (ID: %d)", algo.name, algo.id)

    def _pick_parents(self, pool: list[StoredAlgorithm]) -> list[StoredAlgorithm]:
        size = min(self.rng.randint(2, 3), len(pool))
        return self.rng.sample(pool, size)

    def _pick_problem_seed(self) -> ProblemSeed:
        """
        Choose where the next generated algorithm comes from.

        Usually an open high-priority problem (with an AI-suggested
        inspiration), otherwise an AI-invented problem, otherwise a fixed
        fallback. AI failures here only downgrade the seed.
        """
        if self.rng.random() < self.settings.existing_problem_probability:
            problems = self.repository.list_problem_candidates(self.settings.problem_candidate_limit)
            if problems:
                problem = self.rng.choice(problems)
                try:
                    result = self.processors.suggest_inspiration(problem)
                except (LLMError, GeminiInitializationError) as e:
                    logger.warning("Failed to get AI inspiration, using fallback: %s", e)
                    result = None
                if result is not None and result.is_ok:
                    payload = result.payload
                    return ProblemSeed(
                        domain=payload.get("domain") or problem.domain or "Problem Solving",
                        inspiration=payload["inspiration"],
                        category=payload.get("category") or problem.category or "General",
                    )
                return ProblemSeed(
                    domain=problem.domain or problem.title,
                    inspiration="Biological Systems",
                    category=problem.category or "General",
                )

        try:
            result = self.processors.invent_problem()
        except (LLMError, GeminiInitializationError) as e:
            logger.warning("Failed to generate problem idea, using fallback: %s", e)
            result = None
        if result is not None and result.is_ok:
            payload = result.payload
            return ProblemSeed(
                domain=payload["domain"],
                inspiration=payload["inspiration"],
                category=payload["category"],
            )

        counter("automation.fallback_seed")
        return self.rng.choice(FALLBACK_SEEDS)

    def _record(self, entry: AutomationLogEntry) -> None:
        try:
            self.repository.log_activity(entry)
        except sqlite3.Error as e:
            counter("automation.log_write_failed")
            logger.error(
                "Failed to write automation log (%s/%s): %s",
                entry.task_type.value,
                entry.status.value,
                e,
            )

    @staticmethod
    def _finish(summary: TaskSummary) -> None:
        log_event("automation.task_complete", **summary.to_dict())
