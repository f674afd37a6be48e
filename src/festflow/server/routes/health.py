"""Health and status endpoints."""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Request
from pydantic import BaseModel

from festflow import __version__

health_router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float
    model_provider: str
    offline: bool
    active_executions: int


@health_router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    settings = request.app.state.settings
    orchestrator = request.app.state.orchestrator
    started_at = getattr(request.app.state, "started_at", datetime.now(UTC))
    uptime = (datetime.now(UTC) - started_at).total_seconds()
    return HealthResponse(
        status="ok",
        version=__version__,
        uptime_seconds=round(uptime, 1),
        model_provider=settings.model.provider,
        offline=settings.execution.offline,
        active_executions=len(orchestrator.guard),
    )
