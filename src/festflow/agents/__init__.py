"""Planner and content collaborators."""

from __future__ import annotations

from typing import TYPE_CHECKING

from festflow.agents.base import ContentGenerator, GoalDecomposer

if TYPE_CHECKING:
    from festflow.config.settings import Settings

__all__ = ["ContentGenerator", "GoalDecomposer", "create_collaborators"]


def create_collaborators(settings: Settings) -> tuple[GoalDecomposer, ContentGenerator]:
    """Pick offline or model-backed collaborators from ``settings.execution.offline``."""
    if settings.execution.offline:
        from festflow.agents.offline import OfflineContentGenerator, OfflineGoalDecomposer

        return OfflineGoalDecomposer(), OfflineContentGenerator()

    from festflow.agents.llm import AgnoContentGenerator, AgnoGoalDecomposer

    return AgnoGoalDecomposer(settings), AgnoContentGenerator(settings)
