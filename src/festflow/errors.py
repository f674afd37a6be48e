"""Exception hierarchy shared by the engine, the CLI and the HTTP routes."""

from __future__ import annotations


class FestFlowError(Exception):
    """Base class for all festflow errors."""


class TaskNotFoundError(FestFlowError, KeyError):
    """Raised when an operation names a task id that is not in the plan."""

    def __init__(self, task_id: str) -> None:
        super().__init__(task_id)
        self.task_id = task_id

    def __str__(self) -> str:
        return f"Task '{self.task_id}' not found"


class ApprovalNotFoundError(FestFlowError, KeyError):
    """Raised when an approval is unknown or was already resolved."""

    def __init__(self, approval_id: str) -> None:
        super().__init__(approval_id)
        self.approval_id = approval_id

    def __str__(self) -> str:
        return f"Approval '{self.approval_id}' not found or already resolved"


class InvalidTransitionError(FestFlowError, ValueError):
    """Raised when an operator action is not allowed in the task's current state."""


class DecompositionError(FestFlowError):
    """Raised when a goal cannot be turned into a task plan."""


class ContentGenerationError(FestFlowError):
    """Raised by content generators when the model call fails."""
