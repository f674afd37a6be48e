"""Interactive timeline editing on a working copy with linear undo."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import date
from enum import StrEnum

from festflow.errors import TaskNotFoundError
from festflow.scheduler.layout import Timeline, compute_dates, compute_timeline
from festflow.tasks.graph import has_path, topological_order
from festflow.tasks.lifecycle import reset_for_new_plan
from festflow.tasks.models import Task

logger = logging.getLogger("festflow.scheduler.editor")


class LinkResult(StrEnum):
    """What ``create_dependency`` ended up doing."""

    LINKED = "linked"
    PARALLEL = "parallel"
    UNCHANGED = "unchanged"


def _with_deps(task: Task, deps: Iterable[str]) -> Task:
    cleaned: list[str] = []
    for dep in deps:
        if dep != task.id and dep not in cleaned:
            cleaned.append(dep)
    return task.model_copy(update={"depends_on": tuple(cleaned)})


def prune_forward_references(tasks: Sequence[Task]) -> tuple[Task, ...]:
    """Drop every dependency that points at a task positioned at or after its dependent."""
    position = {t.id: i for i, t in enumerate(tasks)}
    result: list[Task] = []
    for i, task in enumerate(tasks):
        kept = [d for d in task.depends_on if not (d in position and position[d] >= i)]
        if len(kept) != len(task.depends_on):
            logger.debug(
                "Dropping forward dependencies of %s: %s",
                task.id,
                [d for d in task.depends_on if d not in kept],
            )
            task = _with_deps(task, kept)
        result.append(task)
    return tuple(result)


def stable_order(tasks: Sequence[Task]) -> tuple[Task, ...]:
    by_id = {t.id: t for t in tasks}
    return tuple(by_id[tid] for tid in topological_order(tasks))


class ScheduleEditor:
    """Editable copy of the plan's task list.

    Every edit pushes the pre-edit copy onto a linear undo stack. Nothing
    touches the authoritative plan until ``commit``.
    """

    def __init__(self, tasks: Iterable[Task], anchor: date) -> None:
        self._anchor = anchor
        self._tasks: tuple[Task, ...] = stable_order(list(tasks))
        self._history: list[tuple[Task, ...]] = []
        self._closed = False

    # -- Inspection --------------------------------------------------------------

    @property
    def tasks(self) -> tuple[Task, ...]:
        return self._tasks

    @property
    def anchor(self) -> date:
        return self._anchor

    @property
    def can_undo(self) -> bool:
        return bool(self._history)

    @property
    def history_depth(self) -> int:
        return len(self._history)

    def timeline(self) -> Timeline:
        return compute_timeline(self._tasks, self._anchor)

    def _index(self, task_id: str) -> int:
        for i, task in enumerate(self._tasks):
            if task.id == task_id:
                return i
        raise TaskNotFoundError(task_id)

    def _push(self, new_tasks: Sequence[Task]) -> None:
        if self._closed:
            raise RuntimeError("Schedule edit session is already closed")
        self._history.append(self._tasks)
        self._tasks = tuple(new_tasks)

    # -- Edits -------------------------------------------------------------------

    def reschedule(self, task_id: str, new_start: date) -> Task:
        """Pin a task to ``new_start``.

        Dependencies that would still be running after the new start are
        dropped instead of being violated.
        """
        i = self._index(task_id)
        dates, _ = compute_dates(self._tasks, self._anchor)
        task = self._tasks[i]
        kept = [d for d in task.depends_on if not (d in dates and dates[d][1] > new_start)]
        dropped = [d for d in task.depends_on if d not in kept]
        if dropped:
            logger.info("Reschedule of %s drops dependencies %s", task_id, dropped)

        updated = _with_deps(task, kept).model_copy(update={"start_date": new_start})
        new_tasks = list(self._tasks)
        new_tasks[i] = updated
        self._push(prune_forward_references(new_tasks))
        return self._tasks[i]

    def reorder(self, task_id: str, new_index: int) -> None:
        """Move a task to ``new_index``; dependencies on later tasks are dropped."""
        i = self._index(task_id)
        new_index = max(0, min(new_index, len(self._tasks) - 1))
        if new_index == i:
            return
        new_tasks = list(self._tasks)
        moved = new_tasks.pop(i)
        new_tasks.insert(new_index, moved)
        self._push(prune_forward_references(new_tasks))

    def create_dependency(self, task_id: str, depends_on_id: str) -> LinkResult:
        """Make ``task_id`` (A) depend on ``depends_on_id`` (B).

        When B already depends on A through some other chain, a new link
        would close a cycle; A and B are made parallel instead by giving B
        A's dependencies. A direct B → A link is replaced by A → B.
        """
        a_index = self._index(task_id)
        b_index = self._index(depends_on_id)
        if task_id == depends_on_id:
            return LinkResult.UNCHANGED

        a = self._tasks[a_index]
        b = self._tasks[b_index]
        new_tasks = list(self._tasks)

        if has_path(self._tasks, depends_on_id, task_id, skip_edge=(depends_on_id, task_id)):
            # Keep B's new dependencies free of anything downstream of B.
            deps = [
                d for d in a.depends_on if d != b.id and not has_path(self._tasks, d, b.id)
            ]
            new_tasks[b_index] = _with_deps(b, deps).model_copy(update={"start_date": None})
            result = LinkResult.PARALLEL
        else:
            if depends_on_id in a.depends_on and a.start_date is None:
                return LinkResult.UNCHANGED
            new_tasks[a_index] = _with_deps(a, [*a.depends_on, depends_on_id]).model_copy(
                update={"start_date": None}
            )
            if task_id in b.depends_on:
                new_tasks[b_index] = _with_deps(b, [d for d in b.depends_on if d != task_id])
            result = LinkResult.LINKED

        self._push(prune_forward_references(stable_order(new_tasks)))
        logger.info("create_dependency(%s -> %s): %s", task_id, depends_on_id, result.value)
        return result

    def undo(self) -> bool:
        """Restore the copy from before the last edit. Returns False if none."""
        if not self._history:
            return False
        self._tasks = self._history.pop()
        return True

    # -- Session end -------------------------------------------------------------

    def commit(self) -> tuple[Task, ...]:
        """Close the session and return the new plan, reset for a fresh run."""
        self._history.clear()
        self._closed = True
        return reset_for_new_plan(prune_forward_references(self._tasks))

    def cancel(self) -> None:
        self._history.clear()
        self._closed = True
