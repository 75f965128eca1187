"""FastAPI server for the BioSynth automation backend"""

from __future__ import annotations

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from biosynth.api.middleware.auth import APIKeyAuth
from biosynth.api.routes.automation import router as automation_router
from biosynth.api.routes.health import router as health_router
from biosynth.automation.orchestrator import AutomationOrchestrator
from biosynth.automation.processors import JobProcessors
from biosynth.automation.repository import AutomationRepository
from biosynth.automation.scheduler import AutomationScheduler
from biosynth.config import API_HOST, API_PORT, APP_VERSION, SCHEDULER_ENABLED, is_development
from biosynth.infrastructure.database import DatabaseConnectionPool, get_db_path
from biosynth.infrastructure.database_schema import init_database
from biosynth.llm.client import GeminiJsonClient
from biosynth.observability.logging import get_logger
from biosynth.observability.telemetry import counter, log_event

# Load environment variables from .env file
load_dotenv()

logger = get_logger(__name__)

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("BIOSYNTH_ALLOWED_ORIGINS", "").split(",")
    if origin.strip()
]
if is_development():
    ALLOWED_ORIGINS.extend(
        [
            "http://localhost:3000",
            "http://localhost:5173",
            "http://localhost:8000",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:8000",
        ]
    )


def create_app(
    pool: DatabaseConnectionPool | None = None,
    orchestrator: AutomationOrchestrator | None = None,
    start_scheduler: bool | None = None,
) -> FastAPI:
    """
    Build the API.

    The pool, repository, orchestrator and scheduler are created in the
    lifespan and stored on app.state. Passing a pool or orchestrator lets
    callers (tests, scripts) supply their own; a supplied pool is not closed
    on shutdown.
    """
    run_scheduler = SCHEDULER_ENABLED if start_scheduler is None else start_scheduler

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owns_pool = pool is None
        db_pool = pool or DatabaseConnectionPool(get_db_path())
        init_database(db_pool)

        repository = AutomationRepository(db_pool)
        runner = orchestrator or AutomationOrchestrator(
            repository,
            JobProcessors(GeminiJsonClient(), repository),
        )
        scheduler = AutomationScheduler(runner) if run_scheduler else None

        app.state.pool = db_pool
        app.state.repository = repository
        app.state.orchestrator = runner
        app.state.scheduler = scheduler
        if scheduler is not None:
            scheduler.start()
        else:
            logger.info("Automation scheduler disabled")

        log_event("api.startup", service="biosynth-api", version=APP_VERSION)
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.stop()
            if owns_pool:
                db_pool.close_all()
            log_event("api.shutdown", service="biosynth-api")

    app = FastAPI(title="BioSynth Automation API", version=APP_VERSION, lifespan=lifespan)
    app.state.admin_auth = APIKeyAuth()

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Validation errors without the validation rules themselves."""
        logger.warning("Validation error on %s: %s", request.url.path, exc.errors())
        counter("api.validation_errors")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": "Invalid request format. Please check your request and try again.",
                "error_count": len(exc.errors()),
                "invalid_fields": [str(err["loc"][-1]) for err in exc.errors()],
            },
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )

    app.include_router(health_router)
    app.include_router(automation_router)

    @app.get("/")
    def root() -> dict[str, Any]:
        return {
            "service": "BioSynth Automation API",
            "version": APP_VERSION,
            "status": "running",
            "endpoints": {
                "health": "/health",
                "health_db": "/health/db",
                "status": "/api/automation/status",
                "logs": "/api/automation/logs",
                "scheduler": "/api/automation/scheduler/status",
                "trigger": "/api/automation/trigger",
                "algorithms": "/api/automation/algorithms",
            },
        }

    return app


app = create_app()


def main() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    uvicorn.run("biosynth.api.app:app", host=API_HOST, port=API_PORT)
