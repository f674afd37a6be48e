"""Fixtures for the HTTP API tests."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from festflow.agents.offline import OfflineContentGenerator, OfflineGoalDecomposer
from festflow.core import PlanOrchestrator
from festflow.server.app import create_app
from festflow.tasks.store import PlanStore


@pytest.fixture
def orchestrator(test_settings) -> PlanOrchestrator:
    """An orchestrator that settles but never dispatches, so responses are deterministic."""
    return PlanOrchestrator(
        test_settings,
        PlanStore(),
        OfflineGoalDecomposer(),
        OfflineContentGenerator(),
        dispatch=False,
    )


@pytest.fixture
def client(test_settings, orchestrator):
    app = create_app(test_settings, orchestrator=orchestrator)
    with TestClient(app) as client:
        yield client


def seed(orchestrator: PlanOrchestrator, *tasks) -> None:
    orchestrator.store.update(lambda state: state.model_copy(update={"tasks": tuple(tasks)}))
    orchestrator.run_pass()
