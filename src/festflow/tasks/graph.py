"""Dependency graph queries over a task collection.

Every traversal uses an explicit work queue and a visited set, so all of
these terminate on malformed input (cycles, dangling ids, self loops).
Dependency ids that do not name a task in the collection are ignored by
the structural queries.
"""

from __future__ import annotations

import heapq
from collections import deque
from collections.abc import Iterable, Mapping, Sequence

from festflow.tasks.models import Task, TaskStatus


def index_by_id(tasks: Iterable[Task]) -> dict[str, Task]:
    return {task.id: task for task in tasks}


def container_ids(tasks: Iterable[Task]) -> set[str]:
    """Ids of tasks that some other task names as its parent."""
    tasks = list(tasks)
    known = {task.id for task in tasks}
    return {task.parent_id for task in tasks if task.parent_id in known and task.parent_id != task.id}


def children_of(tasks: Iterable[Task], parent_id: str) -> list[Task]:
    return [task for task in tasks if task.parent_id == parent_id and task.id != parent_id]


def dependents_of(tasks: Iterable[Task]) -> dict[str, list[str]]:
    """Reverse adjacency: dependency id -> ids of tasks that depend on it."""
    tasks = list(tasks)
    dependents: dict[str, list[str]] = {task.id: [] for task in tasks}
    for task in tasks:
        for dep in task.depends_on:
            if dep in dependents:
                dependents[dep].append(task.id)
    return dependents


def _walk(start: str, edges: Mapping[str, Iterable[str]]) -> set[str]:
    seen: set[str] = set()
    queue = deque(edges.get(start, ()))
    while queue:
        node = queue.popleft()
        if node in seen or node not in edges:
            continue
        seen.add(node)
        queue.extend(edges[node])
    return seen


def ancestors(tasks: Iterable[Task], task_id: str) -> set[str]:
    """Every task that ``task_id`` transitively depends on."""
    edges = {task.id: task.depends_on for task in tasks}
    return _walk(task_id, edges)


def descendants(tasks: Iterable[Task], task_id: str) -> set[str]:
    """Every task that transitively depends on ``task_id``."""
    return _walk(task_id, dependents_of(tasks))


def has_path(
    tasks: Iterable[Task],
    source: str,
    target: str,
    skip_edge: tuple[str, str] | None = None,
) -> bool:
    """Whether ``source`` transitively depends on ``target``.

    ``skip_edge`` is a ``(task_id, dependency_id)`` pair ignored during the
    walk, used to ask whether a path exists other than a direct link.
    """
    edges: dict[str, tuple[str, ...]] = {}
    for task in tasks:
        deps = task.depends_on
        if skip_edge is not None and task.id == skip_edge[0]:
            deps = tuple(d for d in deps if d != skip_edge[1])
        edges[task.id] = deps
    if source not in edges:
        return False
    seen: set[str] = set()
    queue = deque(edges[source])
    while queue:
        node = queue.popleft()
        if node == target:
            return True
        if node in seen or node not in edges:
            continue
        seen.add(node)
        queue.extend(edges[node])
    return False


def would_create_cycle(tasks: Iterable[Task], task_id: str, dependency_id: str) -> bool:
    """Whether making ``task_id`` depend on ``dependency_id`` closes a cycle."""
    if task_id == dependency_id:
        return True
    return has_path(tasks, dependency_id, task_id)


def dependencies_met(task: Task, index: Mapping[str, Task]) -> bool:
    """Every dependency resolves to a Completed task.

    An empty list is satisfied; an id that names no task is not.
    """
    for dep in task.depends_on:
        other = index.get(dep)
        if other is None or other.status != TaskStatus.COMPLETED:
            return False
    return True


def topological_order(tasks: Sequence[Task]) -> list[str]:
    """Stable Kahn ordering: input position breaks ties.

    Tasks caught in (or downstream of) a cycle are appended in input order.
    """
    position = {task.id: i for i, task in enumerate(tasks)}
    in_degree = {
        task.id: sum(1 for dep in task.depends_on if dep in position) for task in tasks
    }
    dependents = dependents_of(tasks)

    heap = [position[tid] for tid, degree in in_degree.items() if degree == 0]
    heapq.heapify(heap)
    order: list[str] = []
    while heap:
        tid = tasks[heapq.heappop(heap)].id
        order.append(tid)
        for dependent in dependents[tid]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                heapq.heappush(heap, position[dependent])

    placed = set(order)
    order.extend(task.id for task in tasks if task.id not in placed)
    return order


def forward_references(tasks: Sequence[Task]) -> dict[str, list[str]]:
    """Per task, the dependencies positioned at or after it in the sequence."""
    position = {task.id: i for i, task in enumerate(tasks)}
    result: dict[str, list[str]] = {}
    for i, task in enumerate(tasks):
        forward = [dep for dep in task.depends_on if dep in position and position[dep] >= i]
        if forward:
            result[task.id] = forward
    return result
