"""Health check endpoints for the BioSynth API.

/health is the liveness probe; /health/db reports connection pool state.
"""

from __future__ import annotations

import os
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, Request

from biosynth.api.middleware.auth import require_admin_auth
from biosynth.config import APP_VERSION
from biosynth.observability.telemetry import get_counters, get_latency_metrics, get_latency_stats

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Service status, version and Gemini credential readiness (presence only, no API call)."""
    has_api_key = bool(os.getenv("GOOGLE_API_KEY"))
    has_project = bool(os.getenv("GOOGLE_CLOUD_PROJECT"))

    return {
        "status": "healthy",
        "service": "BioSynth API",
        "version": APP_VERSION,
        "timestamp": datetime.now(UTC).isoformat(),
        "llm": {
            "ready": has_api_key or has_project,
            "google_api_key": has_api_key,
            "google_cloud_project": has_project,
        },
    }


@router.get("/health/db")
def database_health(request: Request) -> dict[str, Any]:
    pool = getattr(request.app.state, "pool", None)
    if pool is None:
        return {"status": "unavailable"}
    return {"status": "closed" if pool.closed else "healthy", "pool": pool.stats()}


@router.get("/debug/stats", dependencies=[Depends(require_admin_auth)])
def debug_stats() -> dict[str, Any]:
    """In-process telemetry counters and timed-block latencies."""
    return {
        "counters": get_counters(),
        "latency": {name: get_latency_stats(name) for name in get_latency_metrics()},
    }
