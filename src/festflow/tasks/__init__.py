"""Plan model, dependency graph, lifecycle rules and the state store."""

from festflow.tasks.models import (
    ActivityLogEntry,
    AgentName,
    AgentStatus,
    Approval,
    ApprovalStatus,
    PlanState,
    Task,
    TaskStatus,
)
from festflow.tasks.store import PlanStore

__all__ = [
    "ActivityLogEntry",
    "AgentName",
    "AgentStatus",
    "Approval",
    "ApprovalStatus",
    "PlanState",
    "PlanStore",
    "Task",
    "TaskStatus",
]
