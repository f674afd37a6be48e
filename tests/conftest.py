"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from festflow.config.models import ExecutionConfig, ModelConfig
from festflow.config.settings import Settings
from festflow.tasks.models import AgentName, Task, TaskStatus


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path):
    """Never read or write the real ~/.festflow/config.json."""
    with patch("festflow.config.settings.CONFIG_FILE", tmp_path / "config.json"):
        yield


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings configured for testing: offline, fast simulation, temp state file."""
    return Settings(
        model=ModelConfig(provider="ollama", model_id="llama3.1"),
        execution=ExecutionConfig(
            max_retries=3,
            simulation_min_seconds=0.01,
            simulation_max_seconds=0.02,
            tick_seconds=0.005,
            offline=True,
            rate_limit_retries=2,
            rate_limit_initial_delay=0.0,
        ),
        state_file=str(tmp_path / "plan_state.json"),
    )


def make_task(
    task_id: str,
    *,
    depends_on: tuple[str, ...] | list[str] = (),
    agent: AgentName = AgentName.LOGISTICS_COORDINATOR,
    status: TaskStatus = TaskStatus.PENDING,
    **fields,
) -> Task:
    """Build a task whose title is derived from its id."""
    return Task(
        id=task_id,
        title=fields.pop("title", task_id.replace("-", " ").title()),
        assigned_agent=agent,
        depends_on=tuple(depends_on),
        status=status,
        **fields,
    )
