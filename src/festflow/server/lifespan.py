"""Application lifespan management."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI

logger = logging.getLogger("festflow.server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown hooks for festflow."""
    settings = app.state.settings
    orchestrator = app.state.orchestrator

    # --- Startup ---
    logger.info(
        "FestFlow server starting: provider=%s, offline=%s, host=%s, port=%d",
        settings.model.provider,
        settings.execution.offline,
        settings.server.host,
        settings.server.port,
    )
    app.state.started_at = datetime.now(UTC)

    # Resume a persisted plan: anything In Progress is dispatched again.
    if orchestrator.state.tasks:
        started = orchestrator.run_pass()
        logger.info(
            "Resumed plan with %d tasks (%d dispatched)",
            len(orchestrator.state.tasks),
            len(started),
        )

    yield

    # --- Shutdown ---
    logger.info("FestFlow server shutting down")
    await orchestrator.shutdown()
