"""Approval creation and resolution for content-generating agents."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

from festflow.errors import ApprovalNotFoundError
from festflow.tasks.models import (
    ORCHESTRATOR,
    ActivityLogEntry,
    Approval,
    ApprovalStatus,
    Task,
    TaskStatus,
)

logger = logging.getLogger("festflow.tasks.approvals")


class Decision(StrEnum):
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Resolution:
    """Tasks and approvals after a decision, plus the log entries it produced."""

    tasks: tuple[Task, ...]
    approvals: tuple[Approval, ...]
    logs: tuple[ActivityLogEntry, ...]
    task: Task | None = None


def create_approval(task: Task, content: str) -> Approval:
    return Approval(
        task_id=task.id,
        agent=task.assigned_agent,
        title=f"Approval for: {task.title}",
        content=content,
    )


def add_pending_approval(approvals: Sequence[Approval], approval: Approval) -> tuple[Approval, ...]:
    """Append ``approval``, dropping any other pending approval for the same task."""
    kept = tuple(
        a
        for a in approvals
        if not (a.task_id == approval.task_id and a.status == ApprovalStatus.PENDING)
    )
    return (*kept, approval)


def drop_task_approvals(approvals: Sequence[Approval], task_id: str) -> tuple[Approval, ...]:
    return tuple(a for a in approvals if a.task_id != task_id)


def resolve_approval(
    tasks: Sequence[Task],
    approvals: Sequence[Approval],
    approval_id: str,
    decision: Decision | str,
    *,
    edited_content: str | None = None,
    instruction: str | None = None,
    allow_instruction: bool = True,
) -> Resolution:
    """Apply a human decision to the approval's task.

    The approval is removed from the pending set, so a second resolution of
    the same id raises ``ApprovalNotFoundError``.
    """
    decision = Decision(decision)
    approval = next(
        (a for a in approvals if a.id == approval_id and a.status == ApprovalStatus.PENDING),
        None,
    )
    if approval is None:
        raise ApprovalNotFoundError(approval_id)

    remaining = tuple(a for a in approvals if a.id != approval_id)
    task = next((t for t in tasks if t.id == approval.task_id), None)
    if task is None:
        logger.warning("Approval %s refers to missing task %s", approval_id, approval.task_id)
        return Resolution(tasks=tuple(tasks), approvals=remaining, logs=())

    logs = [
        ActivityLogEntry(
            agent=ORCHESTRATOR,
            message=f'Decision received for "{task.title}": {decision.value.upper()}',
        )
    ]

    if decision == Decision.APPROVED:
        updated = task.model_copy(
            update={
                "status": TaskStatus.COMPLETED,
                "progress": 100,
                "approved_content": edited_content if edited_content is not None else approval.content,
                "custom_prompt": None,
            }
        )
        logs.append(
            ActivityLogEntry(
                agent=task.assigned_agent,
                message=f'Task approved: "{task.title}". Finalizing.',
            )
        )
    else:
        prompt = instruction if allow_instruction and instruction else None
        updated = task.model_copy(
            update={
                "status": TaskStatus.IN_PROGRESS,
                "progress": 0,
                "retries": 0,
                "custom_prompt": prompt,
                "approved_content": None,
            }
        )
        if prompt:
            message = f'Task rejected: "{task.title}". Will attempt to regenerate with a new prompt.'
        else:
            message = f'Task rejected: "{task.title}". Will attempt to regenerate.'
        logs.append(ActivityLogEntry(agent=task.assigned_agent, message=message))

    new_tasks = tuple(updated if t.id == task.id else t for t in tasks)
    return Resolution(tasks=new_tasks, approvals=remaining, logs=tuple(logs), task=updated)
