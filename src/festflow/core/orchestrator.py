"""Plan orchestrator: the reactive pass, the execution sink and operator intents."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Iterable
from datetime import date
from typing import TYPE_CHECKING

from festflow.errors import DecompositionError, InvalidTransitionError, TaskNotFoundError
from festflow.execution import (
    ContentGenerationStrategy,
    Execution,
    ExecutionGuard,
    SimulatedProgressStrategy,
)
from festflow.scheduler import ScheduleEditor, Timeline, compute_timeline
from festflow.tasks import lifecycle
from festflow.tasks.approvals import (
    Decision,
    add_pending_approval,
    create_approval,
    drop_task_approvals,
    resolve_approval,
)
from festflow.tasks.graph import container_ids
from festflow.tasks.models import (
    ORCHESTRATOR,
    WORKER_AGENTS,
    ActivityLogEntry,
    AgentName,
    AgentStatus,
    PlanState,
    Task,
    TaskStatus,
    requires_approval,
)

if TYPE_CHECKING:
    from festflow.agents.base import ContentGenerator, GoalDecomposer
    from festflow.config.settings import Settings
    from festflow.tasks.store import PlanStore

logger = logging.getLogger("festflow.core.orchestrator")


def _log(agent: AgentName, message: str) -> ActivityLogEntry:
    return ActivityLogEntry(agent=agent, message=message)


class PlanOrchestrator:
    """Owns one plan: decomposes goals, drives execution, applies operator actions.

    Every change goes through the store. After each change ``run_pass``
    settles the plan (activation and parent rollup) and dispatches every
    runnable task that is not already in flight.

    Dispatch needs a running event loop. With ``dispatch=False`` the
    orchestrator only settles and records, which is what one-shot CLI
    commands use.
    """

    def __init__(
        self,
        settings: Settings,
        store: PlanStore,
        decomposer: GoalDecomposer,
        generator: ContentGenerator,
        *,
        dispatch: bool = True,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._decomposer = decomposer
        self._dispatch = dispatch

        execution = settings.execution
        simulated = SimulatedProgressStrategy(
            execution.simulation_min_seconds,
            execution.simulation_max_seconds,
            execution.tick_seconds,
            rng=rng,
        )
        content = ContentGenerationStrategy(generator)
        self._guard = ExecutionGuard(
            self,
            {agent: content if requires_approval(agent) else simulated for agent in WORKER_AGENTS},
        )
        self._pass_scheduled = False
        self._planning = False
        self._closed = False

    # -- Inspection --------------------------------------------------------------

    @property
    def state(self) -> PlanState:
        return self._store.state

    @property
    def store(self) -> PlanStore:
        return self._store

    @property
    def guard(self) -> ExecutionGuard:
        return self._guard

    @property
    def settings(self) -> Settings:
        return self._settings

    def get_task(self, task_id: str) -> Task:
        task = self._store.state.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def timeline(self, anchor: date | None = None) -> Timeline:
        return compute_timeline(self._store.state.tasks, anchor or date.today())

    # -- State helpers -----------------------------------------------------------

    def _commit(
        self,
        tasks: Iterable[Task] | None = None,
        logs: Iterable[ActivityLogEntry] = (),
        **changes,
    ) -> PlanState:
        logs = tuple(logs)

        def mutate(state: PlanState) -> PlanState:
            update = dict(changes)
            if tasks is not None:
                update["tasks"] = tuple(tasks)
            if logs:
                update["logs"] = state.logs + logs
            if not update:
                return state
            return state.model_copy(update=update)

        return self._store.update(mutate)

    def _containers(self, tasks: Iterable[Task]) -> set[str]:
        if not self._settings.features.container_tasks:
            return set()
        return container_ids(tasks)

    # -- Goal decomposition ------------------------------------------------------

    async def submit_goal(self, goal: str) -> PlanState:
        """Replace the current plan with a fresh decomposition of ``goal``."""
        goal = goal.strip()
        if not goal:
            raise InvalidTransitionError("Goal must not be empty")

        self.reset()
        self._planning = True
        self._commit(
            goal=goal,
            logs=[_log(ORCHESTRATOR, f'New goal received: "{goal}". Decomposing into tasks.')],
        )
        self._refresh_agents()

        try:
            tasks = await self._decomposer.decompose(goal)
            if not tasks:
                raise DecompositionError("The planner returned no tasks")
        except Exception as exc:
            self._planning = False
            message = str(exc) or exc.__class__.__name__
            logger.error("Goal decomposition failed: %s", message)
            self._commit(
                error=message,
                logs=[_log(ORCHESTRATOR, f"Failed to create a plan: {message}")],
            )
            self._refresh_agents()
            if isinstance(exc, DecompositionError):
                raise
            raise DecompositionError(message) from exc

        self._planning = False
        self._commit(
            tasks,
            [_log(ORCHESTRATOR, f"Plan created with {len(tasks)} tasks. Delegating work.")],
            is_started=True,
            error=None,
        )
        logger.info("Plan created for goal %r with %d tasks", goal, len(tasks))
        self.run_pass()
        return self._store.state

    # -- Reactive pass -----------------------------------------------------------

    def run_pass(self) -> list[Execution]:
        """Settle the plan, then dispatch every runnable task not already in flight."""
        state = self._store.state
        outcome = lifecycle.settle(state.tasks, rollup=self._settings.features.container_tasks)
        if outcome.changed:
            state = self._commit(outcome.tasks, outcome.logs)

        started: list[Execution] = []
        if self._dispatch and not self._closed:
            containers = self._containers(state.tasks)
            for task in state.tasks:
                if (
                    task.status == TaskStatus.IN_PROGRESS
                    and task.progress < 100
                    and task.id not in containers
                    and task.assigned_agent != ORCHESTRATOR
                    and not self._guard.is_active(task.id)
                ):
                    execution = self._guard.dispatch(task)
                    if execution is not None:
                        started.append(execution)

        self._refresh_agents()
        return started

    def _schedule_pass(self) -> None:
        if self._pass_scheduled or self._closed:
            return
        self._pass_scheduled = True
        asyncio.get_running_loop().call_soon(self._scheduled_pass)

    def _scheduled_pass(self) -> None:
        self._pass_scheduled = False
        if not self._closed:
            self.run_pass()

    def _refresh_agents(self) -> None:
        """Derive each agent's status and current work from the guard and the tasks."""
        state = self._store.state
        active = self._guard.active_executions()
        status: dict[AgentName, AgentStatus] = {}
        work: dict[AgentName, str | None] = {}

        for agent in AgentName:
            if agent == ORCHESTRATOR:
                if self._planning:
                    status[agent], work[agent] = AgentStatus.WORKING, "Decomposing goal"
                elif state.error:
                    status[agent], work[agent] = AgentStatus.ERROR, None
                else:
                    status[agent], work[agent] = AgentStatus.IDLE, None
                continue

            running = [e for e in active if e.agent == agent]
            if running:
                status[agent], work[agent] = AgentStatus.WORKING, running[0].title
            elif any(t.assigned_agent == agent and t.status == TaskStatus.FAILED for t in state.tasks):
                status[agent], work[agent] = AgentStatus.ERROR, None
            else:
                status[agent], work[agent] = AgentStatus.IDLE, None

        if status != state.agent_status or work != state.agent_work:
            self._commit(agent_status=status, agent_work=work)

    # -- Execution sink ----------------------------------------------------------

    def report_progress(self, task_id: str, progress: int) -> bool:
        task = self._store.state.get_task(task_id)
        if task is None or task.status != TaskStatus.IN_PROGRESS:
            return False
        outcome = lifecycle.record_progress(self._store.state.tasks, task_id, progress)
        if outcome.changed:
            self._commit(outcome.tasks)
        return True

    def finish_simulation(self, task_id: str) -> None:
        if self._store.state.get_task(task_id) is None:
            return
        outcome = lifecycle.finish_simulated_work(self._store.state.tasks, task_id)
        if outcome.changed:
            self._commit(outcome.tasks, outcome.logs)

    def accept_generation(self, task_id: str, content: str) -> bool:
        state = self._store.state
        task = state.get_task(task_id)
        if task is None:
            self.discard_generation(task_id, "the task no longer exists")
            return False
        outcome = lifecycle.await_approval(state.tasks, task_id)
        if not outcome.changed:
            self.discard_generation(task_id, f"the task is now {task.status.value}")
            return False

        approval = create_approval(task, content)
        self._commit(
            outcome.tasks,
            outcome.logs,
            approvals=add_pending_approval(state.approvals, approval),
        )
        logger.info("Approval %s created for task %s", approval.id, task_id)
        return True

    def discard_generation(self, task_id: str, reason: str) -> None:
        logger.info("Discarding generated content for %s: %s", task_id, reason)
        task = self._store.state.get_task(task_id)
        if task is None:
            return
        self._commit(
            logs=[
                _log(
                    task.assigned_agent,
                    f'Discarded generated content for "{task.title}": {reason}.',
                )
            ]
        )

    def record_failure(self, task_id: str, error: BaseException) -> None:
        task = self._store.state.get_task(task_id)
        if task is None or task.status != TaskStatus.IN_PROGRESS:
            logger.info("Ignoring failure for %s; task is no longer in progress", task_id)
            return
        outcome = lifecycle.apply_execution_error(
            self._store.state.tasks,
            task_id,
            str(error) or error.__class__.__name__,
            max_retries=self._settings.execution.max_retries,
        )
        self._commit(outcome.tasks, outcome.logs)
        if outcome.exhausted:
            logger.warning("Task %s failed after %d retries", task_id, task.retries)

    def execution_settled(self, task_id: str) -> None:
        self._schedule_pass()

    # -- Operator intents --------------------------------------------------------

    def resolve_approval(
        self,
        approval_id: str,
        decision: Decision | str,
        *,
        edited_content: str | None = None,
        instruction: str | None = None,
    ) -> Task | None:
        state = self._store.state
        resolution = resolve_approval(
            state.tasks,
            state.approvals,
            approval_id,
            decision,
            edited_content=edited_content,
            instruction=instruction,
            allow_instruction=self._settings.features.custom_prompt_rejection,
        )
        if resolution.task is not None:
            self._guard.release(resolution.task.id)
        self._commit(resolution.tasks, resolution.logs, approvals=resolution.approvals)
        self.run_pass()
        return resolution.task

    def approve(self, approval_id: str, edited_content: str | None = None) -> Task | None:
        return self.resolve_approval(approval_id, Decision.APPROVED, edited_content=edited_content)

    def reject(self, approval_id: str, instruction: str | None = None) -> Task | None:
        return self.resolve_approval(approval_id, Decision.REJECTED, instruction=instruction)

    def complete_task(self, task_id: str, *, force: bool = False) -> Task:
        """Mark a task Completed; ``force`` overrides readiness for any non-terminal task."""
        state = self._store.state
        outcome = lifecycle.complete_task(
            state.tasks, task_id, force=force, containers=self._containers(state.tasks)
        )
        self._guard.release(task_id)
        self._commit(
            outcome.tasks,
            outcome.logs,
            approvals=drop_task_approvals(state.approvals, task_id),
        )
        self.run_pass()
        return self.get_task(task_id)

    def reassign_task(self, task_id: str, agent: AgentName | str) -> Task:
        outcome = lifecycle.reassign_task(self._store.state.tasks, task_id, AgentName(agent))
        self._guard.release(task_id)
        self._commit(outcome.tasks, outcome.logs)
        self.run_pass()
        return self.get_task(task_id)

    def update_task(self, task_id: str, **fields) -> Task:
        outcome = lifecycle.update_task(self._store.state.tasks, task_id, **fields)
        if outcome.changed:
            self._commit(outcome.tasks, outcome.logs)
            self.run_pass()
        return self.get_task(task_id)

    def begin_schedule_edit(self, anchor: date | None = None) -> ScheduleEditor:
        return ScheduleEditor(self._store.state.tasks, anchor or date.today())

    def save_schedule(self, editor: ScheduleEditor) -> PlanState:
        """Replace the plan with the edited one and restart it from a clean slate."""
        tasks = editor.commit()
        for task_id in self._guard.active_ids:
            self._guard.release(task_id)
        self._commit(
            tasks,
            [_log(ORCHESTRATOR, "Timeline saved. Plan has been reset to reflect the new schedule.")],
            approvals=(),
        )
        self.run_pass()
        return self._store.state

    def reset(self) -> PlanState:
        """Drop the whole plan. Outstanding content calls are discarded when they return."""
        for task_id in self._guard.active_ids:
            self._guard.release(task_id)
        self._planning = False
        state = self._store.reset()
        self._refresh_agents()
        return state

    # -- Lifecycle ---------------------------------------------------------------

    async def wait_until_idle(self) -> None:
        """Wait until nothing is running and no pass is pending."""
        while True:
            await self._guard.wait_idle()
            await asyncio.sleep(0)
            if not self._guard.busy and not self._pass_scheduled:
                return

    async def shutdown(self) -> None:
        self._closed = True
        await self._guard.shutdown()
        logger.debug("Orchestrator shut down")
