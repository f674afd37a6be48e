"""Collaborator interfaces: content generation and goal decomposition."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from festflow.tasks.models import Task


@runtime_checkable
class ContentGenerator(Protocol):
    """Turns a task (and its optional custom prompt) into candidate content.

    Latency and failure are unconstrained; any exception counts as a
    failed attempt.
    """

    async def generate(self, task: Task) -> str: ...


@runtime_checkable
class GoalDecomposer(Protocol):
    """Turns a free-text goal into an initial task plan.

    Raises ``DecompositionError`` when no plan can be produced.
    """

    async def decompose(self, goal: str) -> list[Task]: ...
