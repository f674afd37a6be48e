"""Plan, approval, task and timeline endpoints."""

from __future__ import annotations

from datetime import date
from typing import Annotated, Literal

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, Field

from festflow.core.orchestrator import PlanOrchestrator
from festflow.errors import DecompositionError
from festflow.scheduler import LinkResult, Timeline
from festflow.tasks.approvals import Decision
from festflow.tasks.lifecycle import plan_progress
from festflow.tasks.models import (
    ActivityLogEntry,
    AgentName,
    AgentStatus,
    Approval,
    PlanState,
    Task,
)

plan_router = APIRouter(tags=["Plan"])


def _orchestrator(request: Request) -> PlanOrchestrator:
    return request.app.state.orchestrator


# -- Schemas --------------------------------------------------------------------


class PlanSummary(BaseModel):
    goal: str
    is_started: bool
    error: str | None
    progress: int
    revision: int
    tasks: list[Task]
    approvals: list[Approval]
    agent_status: dict[AgentName, AgentStatus]
    agent_work: dict[AgentName, str | None]
    logs: list[ActivityLogEntry]

    @classmethod
    def from_state(cls, state: PlanState, log_limit: int = 50) -> PlanSummary:
        return cls(
            goal=state.goal,
            is_started=state.is_started,
            error=state.error,
            progress=plan_progress(state.tasks),
            revision=state.revision,
            tasks=list(state.tasks),
            approvals=state.pending_approvals(),
            agent_status=state.agent_status,
            agent_work=state.agent_work,
            logs=list(state.logs[-log_limit:]) if log_limit else [],
        )


class GoalRequest(BaseModel):
    goal: str = Field(min_length=1)


class DecisionRequest(BaseModel):
    decision: Decision
    edited_content: str | None = None
    instruction: str | None = None


class CompleteRequest(BaseModel):
    force: bool = False


class ReassignRequest(BaseModel):
    agent: AgentName


class TaskUpdateRequest(BaseModel):
    title: str | None = None
    description: str | None = None
    start_date: date | None = None
    clear_start_date: bool = False
    estimated_duration: int | None = Field(default=None, ge=1)


class PlacementResponse(BaseModel):
    task_id: str
    title: str
    start: date
    end: date
    lane: int
    fallback: bool


class TimelineResponse(BaseModel):
    anchor: date
    start: date
    end: date
    total_days: int
    lane_count: int
    placements: list[PlacementResponse]
    fallback_ids: list[str]
    critical_path: list[str]

    @classmethod
    def from_timeline(cls, timeline: Timeline, tasks: list[Task] | tuple[Task, ...]) -> TimelineResponse:
        titles = {t.id: t.title for t in tasks}
        return cls(
            anchor=timeline.anchor,
            start=timeline.start,
            end=timeline.end,
            total_days=timeline.total_days,
            lane_count=timeline.lane_count,
            placements=[
                PlacementResponse(
                    task_id=p.task_id,
                    title=titles.get(p.task_id, p.task_id),
                    start=p.start,
                    end=p.end,
                    lane=p.lane,
                    fallback=p.fallback,
                )
                for p in timeline.placements.values()
            ],
            fallback_ids=list(timeline.fallback_ids),
            critical_path=list(timeline.critical_path),
        )


class RescheduleEdit(BaseModel):
    op: Literal["reschedule"]
    task_id: str
    start_date: date


class ReorderEdit(BaseModel):
    op: Literal["reorder"]
    task_id: str
    index: int


class LinkEdit(BaseModel):
    op: Literal["link"]
    task_id: str
    depends_on: str


class UndoEdit(BaseModel):
    op: Literal["undo"]


Edit = Annotated[
    RescheduleEdit | ReorderEdit | LinkEdit | UndoEdit,
    Field(discriminator="op"),
]


class TimelineEditRequest(BaseModel):
    anchor: date | None = None
    edits: list[Edit] = Field(default_factory=list)


class TimelineEditResponse(BaseModel):
    results: list[str]
    timeline: TimelineResponse


# -- Plan -----------------------------------------------------------------------


@plan_router.get("/plan", response_model=PlanSummary)
async def get_plan(request: Request, logs: int = Query(default=50, ge=0)) -> PlanSummary:
    return PlanSummary.from_state(_orchestrator(request).state, log_limit=logs)


@plan_router.post("/plan/goal", response_model=PlanSummary, status_code=201)
async def submit_goal(request: Request, body: GoalRequest) -> PlanSummary:
    orchestrator = _orchestrator(request)
    try:
        state = await orchestrator.submit_goal(body.goal)
    except DecompositionError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return PlanSummary.from_state(state)


@plan_router.post("/plan/reset", response_model=PlanSummary)
async def reset_plan(request: Request) -> PlanSummary:
    return PlanSummary.from_state(_orchestrator(request).reset())


# -- Approvals and tasks --------------------------------------------------------


@plan_router.get("/approvals", response_model=list[Approval])
async def list_approvals(request: Request) -> list[Approval]:
    return _orchestrator(request).state.pending_approvals()


@plan_router.post("/approvals/{approval_id}", response_model=Task | None)
async def decide_approval(request: Request, approval_id: str, body: DecisionRequest) -> Task | None:
    return _orchestrator(request).resolve_approval(
        approval_id,
        body.decision,
        edited_content=body.edited_content,
        instruction=body.instruction,
    )


@plan_router.post("/tasks/{task_id}/complete", response_model=Task)
async def complete_task(request: Request, task_id: str, body: CompleteRequest | None = None) -> Task:
    force = body.force if body is not None else False
    return _orchestrator(request).complete_task(task_id, force=force)


@plan_router.post("/tasks/{task_id}/reassign", response_model=Task)
async def reassign_task(request: Request, task_id: str, body: ReassignRequest) -> Task:
    return _orchestrator(request).reassign_task(task_id, body.agent)


@plan_router.patch("/tasks/{task_id}", response_model=Task)
async def update_task(request: Request, task_id: str, body: TaskUpdateRequest) -> Task:
    return _orchestrator(request).update_task(task_id, **body.model_dump())


# -- Timeline -------------------------------------------------------------------


@plan_router.get("/timeline", response_model=TimelineResponse)
async def get_timeline(request: Request, anchor: date | None = None) -> TimelineResponse:
    orchestrator = _orchestrator(request)
    return TimelineResponse.from_timeline(orchestrator.timeline(anchor), orchestrator.state.tasks)


@plan_router.post("/timeline/edits", response_model=TimelineEditResponse)
async def edit_timeline(request: Request, body: TimelineEditRequest) -> TimelineEditResponse:
    """Apply a batch of edits to a working copy and save it as the new plan.

    The batch is all-or-nothing: an unknown task id aborts it before the
    plan is touched.
    """
    orchestrator = _orchestrator(request)
    editor = orchestrator.begin_schedule_edit(body.anchor)
    results: list[str] = []
    try:
        for edit in body.edits:
            if isinstance(edit, RescheduleEdit):
                editor.reschedule(edit.task_id, edit.start_date)
                results.append("rescheduled")
            elif isinstance(edit, ReorderEdit):
                editor.reorder(edit.task_id, edit.index)
                results.append("reordered")
            elif isinstance(edit, LinkEdit):
                result: LinkResult = editor.create_dependency(edit.task_id, edit.depends_on)
                results.append(result.value)
            else:
                results.append("undone" if editor.undo() else "nothing to undo")
    except Exception:
        editor.cancel()
        raise

    state = orchestrator.save_schedule(editor)
    return TimelineEditResponse(
        results=results,
        timeline=TimelineResponse.from_timeline(
            orchestrator.timeline(editor.anchor), state.tasks
        ),
    )
