"""Pydantic models for the plan: tasks, approvals, activity log, whole-plan state."""

from __future__ import annotations

import secrets
from datetime import UTC, date, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AgentName(StrEnum):
    """The fixed set of worker identities."""

    MASTER_PLANNER = "Master Planner"
    LOGISTICS_COORDINATOR = "Logistics Coordinator"
    SPONSORSHIP_OUTREACH = "Sponsorship Outreach"
    MARKETING = "Marketing"


# The planning identity decomposes goals and is never assigned executable work.
ORCHESTRATOR = AgentName.MASTER_PLANNER

# Agents whose output is generated content that a human must approve.
CONTENT_AGENTS: frozenset[AgentName] = frozenset(
    {AgentName.SPONSORSHIP_OUTREACH, AgentName.MARKETING}
)

WORKER_AGENTS: tuple[AgentName, ...] = tuple(a for a in AgentName if a != ORCHESTRATOR)


def requires_approval(agent: AgentName) -> bool:
    return agent in CONTENT_AGENTS


class AgentStatus(StrEnum):
    IDLE = "Idle"
    WORKING = "Working"
    ERROR = "Error"


class TaskStatus(StrEnum):
    """Lifecycle states for a plan task."""

    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    AWAITING_APPROVAL = "Awaiting Approval"
    COMPLETED = "Completed"
    FAILED = "Failed"


class ApprovalStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def _generate_id() -> str:
    return secrets.token_hex(6)


class Task(BaseModel):
    """A single unit of work in the plan.

    Tasks are immutable; every change produces a copy via ``model_copy``.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_generate_id)
    title: str
    description: str = ""
    assigned_agent: AgentName = AgentName.LOGISTICS_COORDINATOR
    depends_on: tuple[str, ...] = ()
    parent_id: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    retries: int = Field(default=0, ge=0)
    approved_content: str | None = None
    custom_prompt: str | None = None
    start_date: date | None = None
    estimated_duration: int = Field(default=1, ge=1)  # days

    @model_validator(mode="before")
    @classmethod
    def normalize_dependencies(cls, values: Any) -> Any:
        """De-duplicate ``depends_on`` (keeping order) and drop self references."""
        if not isinstance(values, dict):
            return values
        deps = values.get("depends_on")
        if deps is None:
            return values
        own_id = values.get("id")
        seen: list[str] = []
        for dep in deps:
            if dep != own_id and dep not in seen:
                seen.append(dep)
        return {**values, "depends_on": tuple(seen)}

    @property
    def is_retrying(self) -> bool:
        return self.status == TaskStatus.IN_PROGRESS and self.retries > 0


class Approval(BaseModel):
    """Candidate output of a content agent waiting for a human decision."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"approval-{_generate_id()}")
    task_id: str
    agent: AgentName
    title: str
    content: str
    status: ApprovalStatus = ApprovalStatus.PENDING


class ActivityLogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    agent: AgentName
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


def _idle_agents() -> dict[AgentName, AgentStatus]:
    return {agent: AgentStatus.IDLE for agent in AgentName}


def _no_work() -> dict[AgentName, str | None]:
    return {agent: None for agent in AgentName}


class PlanState(BaseModel):
    """The whole authoritative snapshot of one plan.

    Never mutated: the store replaces it with ``model_copy(update=...)``.
    """

    model_config = ConfigDict(frozen=True)

    goal: str = ""
    tasks: tuple[Task, ...] = ()
    approvals: tuple[Approval, ...] = ()
    logs: tuple[ActivityLogEntry, ...] = ()
    agent_status: dict[AgentName, AgentStatus] = Field(default_factory=_idle_agents)
    agent_work: dict[AgentName, str | None] = Field(default_factory=_no_work)
    is_started: bool = False
    error: str | None = None
    revision: int = 0

    def get_task(self, task_id: str) -> Task | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def get_approval(self, approval_id: str) -> Approval | None:
        for approval in self.approvals:
            if approval.id == approval_id:
                return approval
        return None

    def pending_approvals(self) -> list[Approval]:
        return [a for a in self.approvals if a.status == ApprovalStatus.PENDING]
