"""FastAPI application factory."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from festflow import __version__
from festflow.errors import ApprovalNotFoundError, InvalidTransitionError, TaskNotFoundError
from festflow.server.lifespan import lifespan
from festflow.server.routes.health import health_router
from festflow.server.routes.plan import plan_router

if TYPE_CHECKING:
    from festflow.config.settings import Settings
    from festflow.core.orchestrator import PlanOrchestrator

logger = logging.getLogger("festflow.server")


def build_orchestrator(settings: Settings) -> PlanOrchestrator:
    """Wire store, collaborators and orchestrator from settings."""
    from festflow.agents import create_collaborators
    from festflow.core.orchestrator import PlanOrchestrator
    from festflow.tasks.store import PlanStore

    decomposer, generator = create_collaborators(settings)
    store = PlanStore(settings.state_path)
    return PlanOrchestrator(settings, store, decomposer, generator)


def create_app(settings: Settings, orchestrator: PlanOrchestrator | None = None) -> FastAPI:
    """Build the FastAPI application.

    1. Creates the app with our lifespan (resume on startup, shutdown on exit)
    2. Stores settings and the orchestrator on app.state for the routes
    3. Maps domain errors to HTTP status codes
    4. Registers the health and plan routes
    """
    app = FastAPI(
        title="FestFlow",
        version=__version__,
        description="Event planning orchestrator: goals, tasks, approvals and timeline",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.orchestrator = orchestrator or build_orchestrator(settings)

    @app.exception_handler(TaskNotFoundError)
    @app.exception_handler(ApprovalNotFoundError)
    async def _not_found(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(InvalidTransitionError)
    async def _conflict(request: Request, exc: Exception) -> JSONResponse:
        logger.info("Rejected %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    app.include_router(health_router)
    app.include_router(plan_router)
    return app
