"""Turn raw planner output into plan tasks."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from festflow.errors import DecompositionError
from festflow.tasks.models import ORCHESTRATOR, AgentName, Task, TaskStatus

logger = logging.getLogger("festflow.agents.planning")

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


class PlannedTask(BaseModel):
    """One task as the planner describes it. Accepts snake_case or camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str
    title: str
    description: str = ""
    assigned_agent: AgentName = Field(
        default=AgentName.LOGISTICS_COORDINATOR,
        validation_alias="assignedTo",
    )
    depends_on: list[str] = Field(default_factory=list)
    estimated_duration: int = 1
    parent_id: str | None = None

    @field_validator("estimated_duration", mode="before")
    @classmethod
    def whole_days(cls, value: Any) -> int:
        try:
            return max(1, round(float(value)))
        except (TypeError, ValueError):
            return 1


_PLAN_ADAPTER = TypeAdapter(list[PlannedTask])


def parse_plan(text: str) -> list[PlannedTask]:
    """Parse the planner's JSON array, tolerating a markdown code fence."""
    cleaned = _FENCE.sub("", (text or "").strip())
    try:
        return _PLAN_ADAPTER.validate_python(json.loads(cleaned))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise DecompositionError(f"Planner returned an unusable plan: {exc}") from exc


def build_plan(drafts: list[PlannedTask]) -> list[Task]:
    """Post-process planner drafts into Pending / In Progress tasks.

    Sub-tasks inherit their parent's dependencies, ids that name no task in
    the plan are dropped, and work assigned to the planner itself goes to
    the Logistics Coordinator. A task with dependencies after that starts
    Pending; every other task starts In Progress and is dispatched on the
    next pass.
    """
    if not drafts:
        raise DecompositionError("Planner returned an empty plan")

    known = {d.id for d in drafts}
    by_id = {d.id: d for d in drafts}
    tasks: list[Task] = []
    for draft in drafts:
        deps = list(draft.depends_on)
        parent = by_id.get(draft.parent_id) if draft.parent_id != draft.id else None
        if parent is not None:
            deps.extend(d for d in parent.depends_on if d not in deps)
        unknown = [d for d in deps if d not in known]
        if unknown:
            logger.warning("Dropping unknown dependencies of %s: %s", draft.id, unknown)
            deps = [d for d in deps if d in known]

        agent = draft.assigned_agent
        if agent == ORCHESTRATOR:
            agent = AgentName.LOGISTICS_COORDINATOR

        tasks.append(
            Task(
                id=draft.id,
                title=draft.title,
                description=draft.description,
                assigned_agent=agent,
                depends_on=tuple(deps),
                parent_id=draft.parent_id if parent is not None else None,
                estimated_duration=draft.estimated_duration,
                status=TaskStatus.PENDING if deps else TaskStatus.IN_PROGRESS,
            )
        )
    return tasks
