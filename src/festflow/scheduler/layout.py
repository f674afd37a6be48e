"""Calendar layout: forward propagation over dependencies, cycle fallback, lanes."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta

from festflow.tasks.graph import dependents_of
from festflow.tasks.models import Task

logger = logging.getLogger("festflow.scheduler.layout")

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class Placement:
    """Where one task sits on the timeline (inclusive day range)."""

    task_id: str
    start: date
    end: date
    lane: int = 0
    fallback: bool = False

    @property
    def duration(self) -> int:
        return (self.end - self.start).days + 1


@dataclass(frozen=True)
class Timeline:
    anchor: date
    placements: dict[str, Placement] = field(default_factory=dict)
    fallback_ids: tuple[str, ...] = ()
    critical_path: tuple[str, ...] = ()

    def __getitem__(self, task_id: str) -> Placement:
        return self.placements[task_id]

    def __contains__(self, task_id: object) -> bool:
        return task_id in self.placements

    def __len__(self) -> int:
        return len(self.placements)

    @property
    def start(self) -> date:
        if not self.placements:
            return self.anchor
        return min(p.start for p in self.placements.values())

    @property
    def end(self) -> date:
        if not self.placements:
            return self.anchor
        return max(p.end for p in self.placements.values())

    @property
    def total_days(self) -> int:
        if not self.placements:
            return 0
        return (self.end - self.start).days + 1

    @property
    def lane_count(self) -> int:
        if not self.placements:
            return 0
        return max(p.lane for p in self.placements.values()) + 1


def _span(start: date, duration: int) -> date:
    return start + timedelta(days=max(duration, 1) - 1)


def compute_dates(tasks: Sequence[Task], anchor: date) -> tuple[dict[str, tuple[date, date]], list[str]]:
    """Forward-propagate start/end dates in topological (FIFO) order.

    Returns the ``{task_id: (start, end)}`` map and the ids that could not
    be reached because they sit in, or downstream of, a dependency cycle.
    """
    by_id = {t.id: t for t in tasks}
    dependents = dependents_of(tasks)
    in_degree = {t.id: sum(1 for dep in t.depends_on if dep in by_id) for t in tasks}

    queue: deque[str] = deque(
        t.id for t in tasks if t.start_date is not None or in_degree[t.id] == 0
    )
    queued = set(queue)
    dates: dict[str, tuple[date, date]] = {}

    while queue:
        tid = queue.popleft()
        task = by_id[tid]
        if task.start_date is not None:
            start = task.start_date
        else:
            dep_ends = [dates[dep][1] for dep in task.depends_on if dep in dates]
            start = max(dep_ends) + ONE_DAY if dep_ends else anchor
        dates[tid] = (start, _span(start, task.estimated_duration))

        for dependent in dependents[tid]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0 and dependent not in queued:
                queue.append(dependent)
                queued.add(dependent)

    unreached = [t.id for t in tasks if t.id not in dates]
    return dates, unreached


def pack_lanes(intervals: Sequence[tuple[str, date, date]]) -> dict[str, int]:
    """Greedy interval packing: each task takes the lowest free lane.

    ``intervals`` are ``(task_id, start, end)`` with inclusive ends, in the
    order ties should be broken. A lane is free when its last task ended
    before this one starts.
    """
    ordered = sorted(enumerate(intervals), key=lambda item: (item[1][1], item[0]))
    lane_ends: list[date] = []
    lanes: dict[str, int] = {}
    for _, (tid, start, end) in ordered:
        for i, lane_end in enumerate(lane_ends):
            if lane_end < start:
                lane_ends[i] = end
                lanes[tid] = i
                break
        else:
            lanes[tid] = len(lane_ends)
            lane_ends.append(end)
    return lanes


def critical_path(tasks: Sequence[Task], dates: dict[str, tuple[date, date]]) -> tuple[str, ...]:
    """Trace back from the latest-ending task through its latest-ending dependency."""
    if not dates:
        return ()
    by_id = {t.id: t for t in tasks}
    current = max(dates, key=lambda tid: dates[tid][1])
    path = [current]
    seen = {current}
    while True:
        deps = [d for d in by_id[current].depends_on if d in dates and d not in seen]
        if not deps:
            break
        current = max(deps, key=lambda tid: dates[tid][1])
        path.append(current)
        seen.add(current)
    return tuple(reversed(path))


def compute_timeline(tasks: Sequence[Task], anchor: date) -> Timeline:
    """Place every task on the calendar, starting from ``anchor``.

    Tasks caught in a dependency cycle fall back to their fixed start date
    or the anchor, and are named in a warning.
    """
    tasks = list(tasks)
    dates, unreached = compute_dates(tasks, anchor)

    if unreached:
        titles = {t.id: t.title for t in tasks}
        logger.warning(
            "Dependency cycle detected; using fallback placement for: %s",
            ", ".join(f"{titles[tid]} ({tid})" for tid in unreached),
        )
        by_id = {t.id: t for t in tasks}
        for tid in unreached:
            task = by_id[tid]
            start = task.start_date or anchor
            dates[tid] = (start, _span(start, task.estimated_duration))

    lanes = pack_lanes([(t.id, *dates[t.id]) for t in tasks])
    fallback = set(unreached)
    placements = {
        t.id: Placement(
            task_id=t.id,
            start=dates[t.id][0],
            end=dates[t.id][1],
            lane=lanes[t.id],
            fallback=t.id in fallback,
        )
        for t in tasks
    }
    return Timeline(
        anchor=anchor,
        placements=placements,
        fallback_ids=tuple(unreached),
        critical_path=critical_path(tasks, dates),
    )
