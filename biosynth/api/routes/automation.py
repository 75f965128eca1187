"""
Automation admin endpoints.

Every route requires the admin bearer key. Runtime objects (repository,
orchestrator, scheduler) live on app.state and are built in the app lifespan.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from biosynth.api.middleware.auth import require_admin_auth
from biosynth.automation.orchestrator import AutomationOrchestrator
from biosynth.automation.repository import AutomationRepository
from biosynth.automation.scheduler import AutomationScheduler
from biosynth.config import (
    API_ALGORITHM_LIMIT_DEFAULT,
    API_LIST_LIMIT_MAX,
    API_LOG_LIMIT_DEFAULT,
    API_STATUS_RECENT_LIMIT,
    API_STATUS_WINDOW_DAYS,
    API_SYSTEM_ALGORITHM_WINDOW_DAYS,
)
from biosynth.observability.logging import get_logger
from biosynth.observability.telemetry import counter
from biosynth.utils.error_sanitizer import get_safe_error_detail

router = APIRouter(
    prefix="/api/automation",
    tags=["automation"],
    dependencies=[Depends(require_admin_auth)],
)
logger = get_logger(__name__)

INVALID_TASK_MESSAGE = "Invalid task. Use: generate, synthesize, improve, or all"


# ============================================================================
# Dependencies
# ============================================================================


def _state(request: Request, name: str) -> Any:
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status_code=503, detail="Service temporarily unavailable.")
    return value


def get_repository(request: Request) -> AutomationRepository:
    return _state(request, "repository")


def get_orchestrator(request: Request) -> AutomationOrchestrator:
    return _state(request, "orchestrator")


def get_scheduler(request: Request) -> AutomationScheduler | None:
    return getattr(request.app.state, "scheduler", None)


# ============================================================================
# Request Models
# ============================================================================


class TriggerRequest(BaseModel):
    """Manual run request; a missing task means all three tasks."""

    task: str | None = None


# ============================================================================
# Endpoints
# ============================================================================


@router.get("/status")
def automation_status(
    repository: AutomationRepository = Depends(get_repository),
    scheduler: AutomationScheduler | None = Depends(get_scheduler),
) -> dict[str, Any]:
    """Task statistics for the last 30 days plus the most recent log entries."""
    return {
        "statistics": repository.task_statistics(API_STATUS_WINDOW_DAYS),
        "recentLogs": [entry.to_api() for entry in repository.recent_logs(API_STATUS_RECENT_LIMIT)],
        "systemGeneratedAlgorithms": repository.count_recent_system_algorithms(
            API_SYSTEM_ALGORITHM_WINDOW_DAYS
        ),
        "schedulerEnabled": scheduler is not None and scheduler.running,
    }


@router.get("/logs")
def automation_logs(
    task_type: str | None = Query(None, alias="taskType"),
    status: str | None = Query(None),
    limit: int = Query(API_LOG_LIMIT_DEFAULT, ge=1, le=API_LIST_LIMIT_MAX),
    offset: int = Query(0, ge=0),
    repository: AutomationRepository = Depends(get_repository),
) -> dict[str, Any]:
    entries = repository.list_logs(task_type=task_type, status=status, limit=limit, offset=offset)
    return {"logs": [entry.to_api() for entry in entries]}


@router.get("/scheduler/status")
def scheduler_status(
    scheduler: AutomationScheduler | None = Depends(get_scheduler),
) -> dict[str, Any]:
    if scheduler is None:
        return {"enabled": False, "running": False, "schedules": {}}
    return scheduler.status()


@router.post("/trigger")
def trigger_automation(
    body: TriggerRequest | None = None,
    orchestrator: AutomationOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """
    Run one automation task (or all) synchronously.

    Side Effects:
        - Calls Gemini and writes algorithms/automation_logs rows
    """
    task = (body.task if body else None) or "all"
    tasks: dict[str, tuple[Callable[[], Any], str]] = {
        "generate": (orchestrator.generate_daily_algorithms, "Algorithm generation completed"),
        "synthesize": (orchestrator.auto_synthesize_algorithms, "Algorithm synthesis completed"),
        "improve": (orchestrator.improve_algorithms, "Algorithm improvement completed"),
        "all": (orchestrator.run_full_cycle, "Full automation cycle completed"),
    }
    if task not in tasks:
        raise HTTPException(status_code=400, detail=INVALID_TASK_MESSAGE)

    run, message = tasks[task]
    counter(f"api.automation.trigger.{task}")
    logger.info("Manual automation trigger: %s", task)
    try:
        run()
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=get_safe_error_detail(e, 500, context="Automation task failed"),
        ) from e

    return {"message": message}


@router.get("/algorithms")
def system_algorithms(
    limit: int = Query(API_ALGORITHM_LIMIT_DEFAULT, ge=1, le=API_LIST_LIMIT_MAX),
    offset: int = Query(0, ge=0),
    repository: AutomationRepository = Depends(get_repository),
) -> dict[str, Any]:
    """Algorithms owned by the system user, newest first."""
    algorithms = repository.list_system_algorithms(limit=limit, offset=offset)
    return {"algorithms": [algo.to_api() for algo in algorithms]}
