"""Task lifecycle rules: activation, parent rollup, retries, operator overrides.

Every function takes an immutable task tuple and returns an ``Outcome``
holding the new tuple plus the activity log entries the change produced.
Nothing here touches the store or performs I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date

from festflow.errors import InvalidTransitionError, TaskNotFoundError
from festflow.tasks.graph import children_of, container_ids, dependencies_met, index_by_id
from festflow.tasks.models import (
    ORCHESTRATOR,
    ActivityLogEntry,
    AgentName,
    Task,
    TaskStatus,
    requires_approval,
)

logger = logging.getLogger("festflow.tasks.lifecycle")

# Statuses from which an operator override may force completion.
_OVERRIDABLE = frozenset(
    {TaskStatus.PENDING, TaskStatus.IN_PROGRESS, TaskStatus.AWAITING_APPROVAL}
)


@dataclass(frozen=True)
class Outcome:
    """Result of a lifecycle step: the next task tuple and what to log."""

    tasks: tuple[Task, ...]
    logs: tuple[ActivityLogEntry, ...] = ()
    changed: bool = False

    def then(self, other: Outcome) -> Outcome:
        return Outcome(
            tasks=other.tasks,
            logs=self.logs + other.logs,
            changed=self.changed or other.changed,
        )


@dataclass(frozen=True)
class FailureOutcome(Outcome):
    """Outcome of an execution error; ``exhausted`` means the task is now Failed."""

    exhausted: bool = False
    agent: AgentName | None = field(default=None)


def _log(agent: AgentName, message: str) -> ActivityLogEntry:
    return ActivityLogEntry(agent=agent, message=message)


def _find(tasks: Sequence[Task], task_id: str) -> Task:
    for task in tasks:
        if task.id == task_id:
            return task
    raise TaskNotFoundError(task_id)


def _replace(tasks: Sequence[Task], updated: Task) -> tuple[Task, ...]:
    return tuple(updated if t.id == updated.id else t for t in tasks)


def is_container(
    task: Task, tasks: Iterable[Task], *, containers: set[str] | None = None
) -> bool:
    if containers is None:
        containers = container_ids(tasks)
    return task.id in containers


# -- Dependency-gated activation ----------------------------------------------


def activate_ready(tasks: Sequence[Task], *, containers: set[str] | None = None) -> Outcome:
    """Move Pending tasks whose start is unblocked to In Progress.

    A task is unblocked when it has a fixed start date or every dependency
    is Completed. Container tasks are skipped; rollup drives them.
    """
    tasks = tuple(tasks)
    if containers is None:
        containers = container_ids(tasks)
    index = index_by_id(tasks)
    ready = {
        t.id
        for t in tasks
        if t.status == TaskStatus.PENDING
        and t.id not in containers
        and (t.start_date is not None or dependencies_met(t, index))
    }
    if not ready:
        return Outcome(tasks=tasks)

    logger.debug("Activating %d task(s): %s", len(ready), sorted(ready))
    updated = tuple(
        t.model_copy(update={"status": TaskStatus.IN_PROGRESS}) if t.id in ready else t
        for t in tasks
    )
    entry = _log(ORCHESTRATOR, f"Dependencies met for {len(ready)} task(s). Starting now.")
    return Outcome(tasks=updated, logs=(entry,), changed=True)


# -- Parent rollup --------------------------------------------------------------


def rollup_containers(tasks: Sequence[Task], *, containers: set[str] | None = None) -> Outcome:
    """Derive every container's progress and status from its children."""
    tasks = tuple(tasks)
    if containers is None:
        containers = container_ids(tasks)
    if not containers:
        return Outcome(tasks=tasks)

    index = index_by_id(tasks)
    logs: list[ActivityLogEntry] = []
    replacements: dict[str, Task] = {}

    for task in tasks:
        if task.id not in containers:
            continue
        children = children_of(tasks, task.id)
        total = len(children)
        completed = sum(1 for c in children if c.status == TaskStatus.COMPLETED)
        progress = round(100 * completed / total) if total else 0

        status = task.status
        if completed == total and total > 0:
            if status != TaskStatus.COMPLETED:
                status = TaskStatus.COMPLETED
                logs.append(_log(task.assigned_agent, f'"{task.title}": all sub-tasks complete.'))
        elif status == TaskStatus.COMPLETED:
            status = TaskStatus.IN_PROGRESS
            logs.append(
                _log(task.assigned_agent, f'"{task.title}": sub-task no longer complete, reverting.')
            )
        elif status == TaskStatus.PENDING and any(dependencies_met(c, index) for c in children):
            status = TaskStatus.IN_PROGRESS
            logs.append(_log(ORCHESTRATOR, f'Sub-tasks of "{task.title}" are ready. Starting parent task.'))
        elif status in (TaskStatus.FAILED, TaskStatus.AWAITING_APPROVAL):
            # Containers are never failed or awaiting approval themselves.
            status = TaskStatus.IN_PROGRESS

        if status != task.status or progress != task.progress:
            replacements[task.id] = task.model_copy(update={"status": status, "progress": progress})

    if not replacements:
        return Outcome(tasks=tasks)
    updated = tuple(replacements.get(t.id, t) for t in tasks)
    return Outcome(tasks=updated, logs=tuple(logs), changed=True)


def settle(tasks: Sequence[Task], *, rollup: bool = True) -> Outcome:
    """Apply activation and rollup until nothing changes.

    A completed container can unblock tasks that depend on it, and an
    activated child can advance its parent, so one round is not enough.
    The loop is bounded by the task count.
    """
    tasks = tuple(tasks)
    containers = container_ids(tasks) if rollup else set()
    outcome = Outcome(tasks=tasks)
    for _ in range(len(tasks) + 1):
        step = activate_ready(outcome.tasks, containers=containers)
        if rollup:
            step = step.then(rollup_containers(step.tasks, containers=containers))
        if not step.changed:
            break
        outcome = outcome.then(step)
    return outcome


# -- Execution results ----------------------------------------------------------


def apply_execution_error(
    tasks: Sequence[Task],
    task_id: str,
    error: str,
    *,
    max_retries: int,
) -> FailureOutcome:
    """Record a failed execution attempt: retry while under the limit, else fail."""
    tasks = tuple(tasks)
    task = _find(tasks, task_id)
    agent = task.assigned_agent

    if task.retries < max_retries:
        attempt = task.retries + 1
        updated = task.model_copy(update={"retries": attempt, "progress": 0})
        entry = _log(
            agent,
            f'Error on task "{task.title}": {error}. Retrying ({attempt}/{max_retries}).',
        )
        return FailureOutcome(
            tasks=_replace(tasks, updated), logs=(entry,), changed=True, agent=agent
        )

    updated = task.model_copy(update={"status": TaskStatus.FAILED, "progress": 0})
    entry = _log(
        agent,
        f'Error on task "{task.title}": {error}. Task failed after {max_retries} retries.',
    )
    return FailureOutcome(
        tasks=_replace(tasks, updated), logs=(entry,), changed=True, exhausted=True, agent=agent
    )


def await_approval(tasks: Sequence[Task], task_id: str) -> Outcome:
    """Generated content arrived: park the task until a human decides.

    Unchanged when the task is no longer In Progress; the caller treats
    that as a stale result.
    """
    tasks = tuple(tasks)
    task = _find(tasks, task_id)
    if task.status != TaskStatus.IN_PROGRESS:
        return Outcome(tasks=tasks)
    updated = task.model_copy(
        update={"status": TaskStatus.AWAITING_APPROVAL, "progress": 100, "custom_prompt": None}
    )
    entry = _log(task.assigned_agent, f'Task "{task.title}" requires approval.')
    return Outcome(tasks=_replace(tasks, updated), logs=(entry,), changed=True)


def record_progress(tasks: Sequence[Task], task_id: str, progress: int) -> Outcome:
    """Update simulated progress; ignored once the task left In Progress."""
    tasks = tuple(tasks)
    task = _find(tasks, task_id)
    progress = max(0, min(100, int(progress)))
    if task.status != TaskStatus.IN_PROGRESS or task.progress == progress:
        return Outcome(tasks=tasks)
    return Outcome(
        tasks=_replace(tasks, task.model_copy(update={"progress": progress})), changed=True
    )


def finish_simulated_work(tasks: Sequence[Task], task_id: str) -> Outcome:
    """Simulated work reached 100%; the task now waits for manual completion."""
    tasks = tuple(tasks)
    task = _find(tasks, task_id)
    if task.status != TaskStatus.IN_PROGRESS:
        return Outcome(tasks=tasks)
    entry = _log(
        task.assigned_agent,
        f'Task "{task.title}" work is finished. Awaiting manual completion.',
    )
    updated = task.model_copy(update={"progress": 100})
    return Outcome(tasks=_replace(tasks, updated), logs=(entry,), changed=True)


# -- Operator actions -----------------------------------------------------------


def can_complete(
    task: Task, tasks: Iterable[Task], *, containers: set[str] | None = None
) -> bool:
    """Whether the operator may mark the task Completed without an override."""
    return (
        task.status == TaskStatus.IN_PROGRESS
        and task.progress >= 100
        and not requires_approval(task.assigned_agent)
        and not is_container(task, tasks, containers=containers)
    )


def complete_task(
    tasks: Sequence[Task],
    task_id: str,
    *,
    force: bool = False,
    containers: set[str] | None = None,
) -> Outcome:
    """Operator marks a task Completed.

    Without ``force`` only finished, non-approval work qualifies. With
    ``force`` any non-terminal, non-container task may be completed.
    """
    tasks = tuple(tasks)
    task = _find(tasks, task_id)
    if containers is None:
        containers = container_ids(tasks)
    if is_container(task, tasks, containers=containers):
        raise InvalidTransitionError(
            f'"{task.title}" is a parent task; its status follows its sub-tasks'
        )
    if not can_complete(task, tasks, containers=containers):
        if not force:
            raise InvalidTransitionError(
                f'"{task.title}" is not ready for manual completion '
                f"(status={task.status.value}, progress={task.progress})"
            )
        if task.status not in _OVERRIDABLE:
            raise InvalidTransitionError(
                f'"{task.title}" cannot be completed from status {task.status.value}'
            )

    updated = task.model_copy(update={"status": TaskStatus.COMPLETED, "progress": 100})
    entry = _log(ORCHESTRATOR, f'User marked task "{task.title}" as complete.')
    return Outcome(tasks=_replace(tasks, updated), logs=(entry,), changed=True)


def reassign_task(tasks: Sequence[Task], task_id: str, new_agent: AgentName) -> Outcome:
    """Restart a Failed task under a different worker."""
    tasks = tuple(tasks)
    task = _find(tasks, task_id)
    if task.status != TaskStatus.FAILED:
        raise InvalidTransitionError(
            f'Only failed tasks can be reassigned; "{task.title}" is {task.status.value}'
        )
    if new_agent == ORCHESTRATOR:
        raise InvalidTransitionError(f"{ORCHESTRATOR.value} does not take executable tasks")
    if new_agent == task.assigned_agent:
        raise InvalidTransitionError(f'"{task.title}" is already assigned to {new_agent.value}')

    updated = task.model_copy(
        update={
            "assigned_agent": new_agent,
            "status": TaskStatus.IN_PROGRESS,
            "progress": 0,
            "retries": 0,
        }
    )
    entry = _log(
        new_agent,
        f'Task "{task.title}" has been reassigned to me. Resetting and starting work.',
    )
    return Outcome(tasks=_replace(tasks, updated), logs=(entry,), changed=True)


def update_task(
    tasks: Sequence[Task],
    task_id: str,
    *,
    title: str | None = None,
    description: str | None = None,
    start_date: date | None = None,
    clear_start_date: bool = False,
    estimated_duration: int | None = None,
) -> Outcome:
    """Operator edit of a task's descriptive and calendar fields."""
    tasks = tuple(tasks)
    task = _find(tasks, task_id)
    changes: dict[str, object] = {}
    if title is not None:
        changes["title"] = title
    if description is not None:
        changes["description"] = description
    if clear_start_date:
        changes["start_date"] = None
    elif start_date is not None:
        changes["start_date"] = start_date
    if estimated_duration is not None:
        if estimated_duration < 1:
            raise InvalidTransitionError("estimated_duration must be at least 1 day")
        changes["estimated_duration"] = estimated_duration
    if not changes:
        return Outcome(tasks=tasks)

    updated = task.model_copy(update=changes)
    if "start_date" in changes or "estimated_duration" in changes:
        message = f'Task "{updated.title}" was rescheduled via the timeline.'
    else:
        message = f'Task "{updated.title}" was edited.'
    return Outcome(tasks=_replace(tasks, updated), logs=(_log(ORCHESTRATOR, message),), changed=True)


def reset_for_new_plan(tasks: Iterable[Task]) -> tuple[Task, ...]:
    """Clear all execution state so a revised plan runs from a clean slate."""
    return tuple(
        t.model_copy(
            update={
                "status": TaskStatus.PENDING,
                "progress": 0,
                "retries": 0,
                "approved_content": None,
            }
        )
        for t in tasks
    )


def plan_progress(tasks: Sequence[Task]) -> int:
    """Overall completion percentage across every task in the plan."""
    if not tasks:
        return 0
    completed = sum(1 for t in tasks if t.status == TaskStatus.COMPLETED)
    return round(100 * completed / len(tasks))
