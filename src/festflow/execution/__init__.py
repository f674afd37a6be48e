"""Per-task execution: strategies and the at-most-one-in-flight guard."""

from festflow.execution.guard import Execution, ExecutionGuard, ExecutionSink
from festflow.execution.strategies import (
    ContentGenerationStrategy,
    ExecutionStrategy,
    SimulatedProgressStrategy,
)

__all__ = [
    "ContentGenerationStrategy",
    "Execution",
    "ExecutionGuard",
    "ExecutionSink",
    "ExecutionStrategy",
    "SimulatedProgressStrategy",
]
