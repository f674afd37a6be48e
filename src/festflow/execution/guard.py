"""At-most-one-in-flight execution per task id."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Mapping
from typing import Protocol

from festflow.execution.strategies import ExecutionStrategy
from festflow.tasks.models import AgentName, Task

logger = logging.getLogger("festflow.execution.guard")


class ExecutionSink(Protocol):
    """Where executions report back; implemented by the orchestrator."""

    def report_progress(self, task_id: str, progress: int) -> bool:
        """Store simulated progress. False tells the strategy to stop."""
        ...

    def finish_simulation(self, task_id: str) -> None: ...

    def accept_generation(self, task_id: str, content: str) -> bool:
        """Turn generated content into an approval unless the task moved on."""
        ...

    def discard_generation(self, task_id: str, reason: str) -> None: ...

    def record_failure(self, task_id: str, error: BaseException) -> None: ...

    def execution_settled(self, task_id: str) -> None:
        """Called after the guard entry is released, on every exit path."""
        ...


class Execution:
    """Handle for one running attempt of one task."""

    def __init__(self, guard: ExecutionGuard, task: Task, strategy: ExecutionStrategy) -> None:
        self._guard = guard
        self.task_id = task.id
        self.agent = task.assigned_agent
        self.title = task.title
        self.strategy = strategy
        self._task: asyncio.Task | None = None

    @property
    def current(self) -> bool:
        """Whether this attempt still owns the guard entry for its task."""
        return self._guard.owner(self.task_id) is self

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait(self) -> None:
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    def __repr__(self) -> str:
        return f"<Execution {self.task_id} {self.strategy.name} current={self.current}>"


class ExecutionGuard:
    """Keyed set of in-flight executions.

    ``dispatch`` checks and inserts without awaiting in between, so on a
    single event loop two dispatches of the same task can never both run.
    """

    def __init__(
        self,
        sink: ExecutionSink,
        strategies: Mapping[AgentName, ExecutionStrategy],
    ) -> None:
        self._sink = sink
        self._strategies = dict(strategies)
        self._active: dict[str, Execution] = {}
        self._running: set[asyncio.Task] = set()

    # -- Queries -----------------------------------------------------------------

    def strategy_for(self, agent: AgentName) -> ExecutionStrategy:
        try:
            return self._strategies[agent]
        except KeyError:
            raise ValueError(f"No execution strategy for agent {agent.value}") from None

    def owner(self, task_id: str) -> Execution | None:
        return self._active.get(task_id)

    def is_active(self, task_id: str) -> bool:
        return task_id in self._active

    @property
    def active_ids(self) -> set[str]:
        return set(self._active)

    def active_executions(self) -> list[Execution]:
        return list(self._active.values())

    def __len__(self) -> int:
        return len(self._active)

    # -- Dispatch ----------------------------------------------------------------

    def dispatch(self, task: Task) -> Execution | None:
        """Start executing ``task`` unless it is already in flight."""
        if task.id in self._active:
            logger.debug("Task %s already executing; skipping dispatch", task.id)
            return None

        execution = Execution(self, task, self.strategy_for(task.assigned_agent))
        self._active[task.id] = execution

        runner = asyncio.get_running_loop().create_task(
            self._run(execution, task), name=f"execute-{task.id}"
        )
        execution._task = runner
        self._running.add(runner)
        runner.add_done_callback(self._running.discard)
        logger.info(
            "Dispatched task %s to %s (%s)", task.id, task.assigned_agent.value, execution.strategy.name
        )
        return execution

    async def _run(self, execution: Execution, task: Task) -> None:
        try:
            await execution.strategy.run(execution, task, self._sink)
        except asyncio.CancelledError:
            logger.debug("Execution of %s cancelled", task.id)
            raise
        except Exception as exc:
            logger.exception("Execution of task %s crashed", task.id)
            if execution.current:
                self._sink.record_failure(task.id, exc)
        finally:
            self._release(execution)
            self._sink.execution_settled(task.id)

    def _release(self, execution: Execution) -> None:
        if self._active.get(execution.task_id) is execution:
            del self._active[execution.task_id]

    def release(self, task_id: str) -> bool:
        """Clear the guard entry for an operator override.

        Simulated work is stopped; an outstanding content call keeps running
        and is discarded when it returns. Returns True if an entry existed.
        """
        execution = self._active.pop(task_id, None)
        if execution is None:
            return False
        if execution.strategy.cancel_on_release:
            execution.cancel()
        logger.info("Released guard entry for task %s", task_id)
        return True

    # -- Lifecycle ---------------------------------------------------------------

    @property
    def busy(self) -> bool:
        return bool(self._running)

    async def wait_idle(self) -> None:
        """Wait for every running attempt, including superseded ones."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel everything that is still running."""
        for runner in list(self._running):
            runner.cancel()
        if self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)
        self._active.clear()
