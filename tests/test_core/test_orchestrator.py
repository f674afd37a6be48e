"""Tests for the plan orchestrator: retries, overrides, approvals and planning."""

from __future__ import annotations

import asyncio
import random
from datetime import date
from pathlib import Path

import pytest

from festflow.agents.offline import OfflineContentGenerator, OfflineGoalDecomposer
from festflow.config.models import FeatureConfig
from festflow.core import PlanOrchestrator
from festflow.errors import DecompositionError, InvalidTransitionError, TaskNotFoundError
from festflow.tasks.models import (
    ORCHESTRATOR,
    AgentName,
    AgentStatus,
    PlanState,
    TaskStatus,
)
from festflow.tasks.store import PlanStore
from tests.conftest import make_task

DAY0 = date(2025, 6, 2)


class ScriptedGenerator:
    """Plays back a script of results; exceptions in the script are raised."""

    def __init__(self, *script, repeat_last: bool = False) -> None:
        self.script = list(script)
        self.repeat_last = repeat_last
        self.seen = []
        self.gate: asyncio.Event | None = None

    @property
    def calls(self) -> int:
        return len(self.seen)

    async def generate(self, task):
        self.seen.append(task)
        if self.gate is not None:
            await self.gate.wait()
        if len(self.script) > 1 or not self.repeat_last:
            result = self.script.pop(0)
        else:
            result = self.script[0]
        if isinstance(result, BaseException):
            raise result
        return result


class StaticDecomposer:
    def __init__(self, result) -> None:
        self.result = result

    async def decompose(self, goal):
        if isinstance(self.result, BaseException):
            raise self.result
        return list(self.result)


def _orchestrator(settings, tasks=(), generator=None, *, decomposer=None, dispatch=True):
    store = PlanStore()
    if tasks:
        store.update(lambda s: s.model_copy(update={"tasks": tuple(tasks)}))
    return PlanOrchestrator(
        settings,
        store,
        decomposer or StaticDecomposer(tasks),
        generator or ScriptedGenerator("Draft", repeat_last=True),
        dispatch=dispatch,
        rng=random.Random(0),
    )


def _post(**fields):
    return make_task("post", agent=AgentName.MARKETING, title="Save the date post", **fields)


def _messages(state: PlanState) -> list[str]:
    return [entry.message for entry in state.logs]


class TestContentRetries:
    @pytest.mark.asyncio
    async def test_fails_twice_then_awaits_approval(self, test_settings):
        generator = ScriptedGenerator(RuntimeError("timeout"), RuntimeError("timeout"), "Join us!")
        orchestrator = _orchestrator(test_settings, [_post()], generator)

        orchestrator.run_pass()
        await orchestrator.wait_until_idle()

        task = orchestrator.get_task("post")
        assert generator.calls == 3
        assert task.status == TaskStatus.AWAITING_APPROVAL
        assert task.retries == 2
        assert task.progress == 100
        [approval] = orchestrator.state.pending_approvals()
        assert approval.content == "Join us!"
        assert approval.task_id == "post"
        assert 'Error on task "Save the date post": timeout. Retrying (2/3).' in _messages(
            orchestrator.state
        )
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_exhausted_retries_fail_task(self, test_settings):
        generator = ScriptedGenerator(RuntimeError("quota"), repeat_last=True)
        orchestrator = _orchestrator(test_settings, [_post()], generator)

        orchestrator.run_pass()
        await orchestrator.wait_until_idle()

        task = orchestrator.get_task("post")
        assert generator.calls == 4
        assert task.status == TaskStatus.FAILED
        assert task.retries == 3
        assert orchestrator.state.agent_status[AgentName.MARKETING] == AgentStatus.ERROR
        assert orchestrator.state.approvals == ()
        assert _messages(orchestrator.state)[-1] == (
            'Error on task "Save the date post": quota. Task failed after 3 retries.'
        )
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_reassigned_failed_task_runs_again(self, test_settings):
        generator = ScriptedGenerator(RuntimeError("quota"), repeat_last=True)
        orchestrator = _orchestrator(test_settings, [_post()], generator)
        orchestrator.run_pass()
        await orchestrator.wait_until_idle()

        orchestrator.reassign_task("post", AgentName.LOGISTICS_COORDINATOR)
        await orchestrator.wait_until_idle()

        task = orchestrator.get_task("post")
        assert task.assigned_agent == AgentName.LOGISTICS_COORDINATOR
        assert task.status == TaskStatus.IN_PROGRESS
        assert task.progress == 100
        assert task.retries == 0
        assert generator.calls == 4
        assert orchestrator.state.agent_status[AgentName.MARKETING] == AgentStatus.IDLE
        await orchestrator.shutdown()


class TestOverrides:
    @pytest.mark.asyncio
    async def test_manual_completion_discards_outstanding_call(self, test_settings):
        generator = ScriptedGenerator("Too late")
        generator.gate = asyncio.Event()
        orchestrator = _orchestrator(test_settings, [_post()], generator)

        orchestrator.run_pass()
        await asyncio.sleep(0)
        assert orchestrator.state.agent_status[AgentName.MARKETING] == AgentStatus.WORKING
        assert orchestrator.state.agent_work[AgentName.MARKETING] == "Save the date post"

        orchestrator.complete_task("post", force=True)
        generator.gate.set()
        await orchestrator.wait_until_idle()

        task = orchestrator.get_task("post")
        assert task.status == TaskStatus.COMPLETED
        assert generator.calls == 1
        assert orchestrator.state.approvals == ()
        assert any("Discarded generated content" in m for m in _messages(orchestrator.state))
        assert orchestrator.state.agent_status[AgentName.MARKETING] == AgentStatus.IDLE
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_simulated_work_waits_for_manual_completion(self, test_settings):
        tasks = [make_task("venue"), make_task("catering", depends_on=["venue"])]
        orchestrator = _orchestrator(test_settings, tasks)

        orchestrator.run_pass()
        await orchestrator.wait_until_idle()

        venue = orchestrator.get_task("venue")
        assert venue.status == TaskStatus.IN_PROGRESS
        assert venue.progress == 100
        assert orchestrator.get_task("catering").status == TaskStatus.PENDING
        assert 'Task "Venue" work is finished. Awaiting manual completion.' in _messages(
            orchestrator.state
        )

        orchestrator.complete_task("venue")
        await orchestrator.wait_until_idle()
        assert orchestrator.get_task("venue").status == TaskStatus.COMPLETED
        catering = orchestrator.get_task("catering")
        assert catering.status == TaskStatus.IN_PROGRESS
        assert catering.progress == 100
        await orchestrator.shutdown()

    def test_completion_requires_finished_work(self, test_settings):
        orchestrator = _orchestrator(test_settings, [make_task("venue")], dispatch=False)
        orchestrator.run_pass()
        with pytest.raises(InvalidTransitionError):
            orchestrator.complete_task("venue")
        assert orchestrator.complete_task("venue", force=True).status == TaskStatus.COMPLETED

    def test_unknown_task(self, test_settings):
        orchestrator = _orchestrator(test_settings, dispatch=False)
        with pytest.raises(TaskNotFoundError):
            orchestrator.get_task("ghost")
        with pytest.raises(TaskNotFoundError):
            orchestrator.complete_task("ghost")

    def test_update_task_reschedules(self, test_settings):
        orchestrator = _orchestrator(test_settings, [make_task("venue")], dispatch=False)
        task = orchestrator.update_task("venue", estimated_duration=4)
        assert task.estimated_duration == 4
        assert orchestrator.timeline(DAY0)["venue"].end == date(2025, 6, 5)


class TestApprovals:
    @pytest.mark.asyncio
    async def test_reject_resets_counters_and_regenerates(self, test_settings):
        generator = ScriptedGenerator(RuntimeError("timeout"), "First draft", "Second draft")
        orchestrator = _orchestrator(test_settings, [_post()], generator)
        orchestrator.run_pass()
        await orchestrator.wait_until_idle()
        [approval] = orchestrator.state.pending_approvals()
        assert orchestrator.get_task("post").retries == 1

        task = orchestrator.reject(approval.id, instruction="Mention the venue")
        assert task.status == TaskStatus.IN_PROGRESS
        assert task.retries == 0
        assert task.custom_prompt == "Mention the venue"

        await orchestrator.wait_until_idle()
        assert generator.seen[-1].custom_prompt == "Mention the venue"
        task = orchestrator.get_task("post")
        assert task.status == TaskStatus.AWAITING_APPROVAL
        assert task.custom_prompt is None
        [again] = orchestrator.state.pending_approvals()
        assert again.content == "Second draft"
        assert again.id != approval.id
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_approve_completes_and_unblocks(self, test_settings):
        tasks = [_post(), make_task("print", depends_on=["post"])]
        orchestrator = _orchestrator(test_settings, tasks)
        orchestrator.run_pass()
        await orchestrator.wait_until_idle()
        [approval] = orchestrator.state.pending_approvals()

        orchestrator.approve(approval.id, edited_content="Edited")
        await orchestrator.wait_until_idle()

        post = orchestrator.get_task("post")
        assert post.status == TaskStatus.COMPLETED
        assert post.approved_content == "Edited"
        assert orchestrator.get_task("print").status == TaskStatus.IN_PROGRESS
        assert orchestrator.state.pending_approvals() == []
        await orchestrator.shutdown()


class TestPlanning:
    @pytest.mark.asyncio
    async def test_decomposition_failure_records_error(self, test_settings):
        orchestrator = _orchestrator(
            test_settings, decomposer=StaticDecomposer(RuntimeError("boom")), dispatch=False
        )
        with pytest.raises(DecompositionError):
            await orchestrator.submit_goal("Summer festival")

        state = orchestrator.state
        assert state.error == "boom"
        assert state.tasks == ()
        assert state.goal == "Summer festival"
        assert state.agent_status[ORCHESTRATOR] == AgentStatus.ERROR
        assert _messages(state)[-1] == "Failed to create a plan: boom"

    @pytest.mark.asyncio
    async def test_empty_plan_is_an_error(self, test_settings):
        orchestrator = _orchestrator(test_settings, decomposer=StaticDecomposer([]), dispatch=False)
        with pytest.raises(DecompositionError):
            await orchestrator.submit_goal("Summer festival")
        assert orchestrator.state.error == "The planner returned no tasks"

    @pytest.mark.asyncio
    async def test_empty_goal_rejected(self, test_settings):
        orchestrator = _orchestrator(test_settings, dispatch=False)
        with pytest.raises(InvalidTransitionError):
            await orchestrator.submit_goal("   ")

    @pytest.mark.asyncio
    async def test_new_goal_replaces_plan(self, test_settings):
        orchestrator = _orchestrator(
            test_settings,
            [make_task("old")],
            decomposer=StaticDecomposer([make_task("new", status=TaskStatus.IN_PROGRESS)]),
            dispatch=False,
        )
        state = await orchestrator.submit_goal("Winter market")
        assert [t.id for t in state.tasks] == ["new"]
        assert state.is_started
        assert state.error is None
        assert state.agent_status[ORCHESTRATOR] == AgentStatus.IDLE
        assert _messages(state)[0] == 'New goal received: "Winter market". Decomposing into tasks.'
        assert "Plan created with 1 tasks. Delegating work." in _messages(state)

    @pytest.mark.asyncio
    async def test_offline_plan_runs_to_first_approvals(self, test_settings):
        orchestrator = PlanOrchestrator(
            test_settings,
            PlanStore(),
            OfflineGoalDecomposer(),
            OfflineContentGenerator(),
            rng=random.Random(0),
        )
        await orchestrator.submit_goal("Plan a 3-day tech conference")
        await orchestrator.wait_until_idle()

        state = orchestrator.state
        assert len(state.tasks) == 13
        assert not any(t.status == TaskStatus.FAILED for t in state.tasks)
        assert orchestrator.get_task("select-venue").progress == 100
        assert orchestrator.get_task("create-brand-identity").progress == 100
        [approval] = state.pending_approvals()
        assert approval.task_id == "develop-sponsorship-packages"

        orchestrator.approve(approval.id)
        orchestrator.complete_task("select-venue")
        orchestrator.complete_task("create-brand-identity")
        await orchestrator.wait_until_idle()

        pending = {a.task_id: a for a in orchestrator.state.pending_approvals()}
        assert set(pending) == {"draft-sponsorship-email", "announce-event-social-media"}
        assert pending["draft-sponsorship-email"].content.startswith("Subject: Partnership Opportunity")
        assert orchestrator.get_task("execute-marketing-plan").status == TaskStatus.IN_PROGRESS
        await orchestrator.shutdown()


class TestScheduleEditing:
    def test_save_schedule_resets_plan(self, test_settings):
        tasks = [
            make_task("a", status=TaskStatus.COMPLETED, progress=100),
            make_task("b", depends_on=["a"], status=TaskStatus.IN_PROGRESS, progress=40),
            make_task("c"),
        ]
        orchestrator = _orchestrator(test_settings, tasks, dispatch=False)
        editor = orchestrator.begin_schedule_edit(DAY0)
        assert editor.create_dependency("c", "b").value == "linked"

        state = orchestrator.save_schedule(editor)
        statuses = {t.id: t.status for t in state.tasks}
        assert statuses == {
            "a": TaskStatus.IN_PROGRESS,
            "b": TaskStatus.PENDING,
            "c": TaskStatus.PENDING,
        }
        assert all(t.progress == 0 for t in state.tasks)
        assert orchestrator.get_task("c").depends_on == ("b",)
        assert "Timeline saved. Plan has been reset to reflect the new schedule." in _messages(state)

    def test_reset_clears_everything(self, test_settings):
        orchestrator = _orchestrator(test_settings, [make_task("a")], dispatch=False)
        state = orchestrator.reset()
        assert state.tasks == ()
        assert state.goal == ""


def _with_features(settings, **flags):
    return settings.model_copy(update={"features": FeatureConfig(**flags)})


class TestFeatureFlags:
    @pytest.mark.asyncio
    async def test_parent_tasks_are_plain_work_without_containers(self, test_settings):
        settings = _with_features(test_settings, container_tasks=False)
        tasks = [
            make_task("group"),
            make_task("child", parent_id="group"),
            make_task("after", depends_on=["group"]),
        ]
        orchestrator = _orchestrator(settings, tasks)

        orchestrator.run_pass()
        await orchestrator.wait_until_idle()
        group = orchestrator.get_task("group")
        assert group.status == TaskStatus.IN_PROGRESS
        assert group.progress == 100

        assert orchestrator.complete_task("group").status == TaskStatus.COMPLETED
        await orchestrator.wait_until_idle()
        assert orchestrator.get_task("after").status == TaskStatus.IN_PROGRESS
        assert orchestrator.get_task("child").status == TaskStatus.IN_PROGRESS
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_offline_plan_finishes_without_containers(self, test_settings):
        settings = _with_features(test_settings, container_tasks=False)
        orchestrator = PlanOrchestrator(
            settings,
            PlanStore(),
            OfflineGoalDecomposer(),
            OfflineContentGenerator(),
            rng=random.Random(0),
        )
        await orchestrator.submit_goal("Plan a tech conference")

        for _ in range(20):
            await orchestrator.wait_until_idle()
            for approval in orchestrator.state.pending_approvals():
                orchestrator.approve(approval.id)
            for task in orchestrator.state.tasks:
                if task.status == TaskStatus.IN_PROGRESS and task.progress >= 100:
                    orchestrator.complete_task(task.id)
            if all(t.status == TaskStatus.COMPLETED for t in orchestrator.state.tasks):
                break

        assert {t.status for t in orchestrator.state.tasks} == {TaskStatus.COMPLETED}
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_rejection_ignores_instruction_when_disabled(self, test_settings):
        settings = _with_features(test_settings, custom_prompt_rejection=False)
        generator = ScriptedGenerator("First draft", "Second draft")
        orchestrator = _orchestrator(settings, [_post()], generator)
        orchestrator.run_pass()
        await orchestrator.wait_until_idle()
        [approval] = orchestrator.state.pending_approvals()

        task = orchestrator.reject(approval.id, instruction="Mention the venue")
        assert task.custom_prompt is None

        await orchestrator.wait_until_idle()
        assert generator.calls == 2
        assert generator.seen[-1].custom_prompt is None
        [again] = orchestrator.state.pending_approvals()
        assert again.content == "Second draft"
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_no_state_file_without_persistence(self, test_settings):
        settings = _with_features(test_settings, persistence=False)
        store = PlanStore(settings.state_path)
        orchestrator = PlanOrchestrator(
            settings, store, OfflineGoalDecomposer(), OfflineContentGenerator(), dispatch=False
        )

        await orchestrator.submit_goal("Plan a tech conference")

        assert store.path is None
        assert len(orchestrator.state.tasks) == 13
        assert not Path(test_settings.state_file).exists()
