"""FestFlow CLI entry point."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from festflow import __version__
from festflow.errors import FestFlowError
from festflow.tasks.models import AgentName, AgentStatus, PlanState, TaskStatus

if TYPE_CHECKING:
    from festflow.config.settings import Settings
    from festflow.core.orchestrator import PlanOrchestrator
    from festflow.scheduler import Timeline

app = typer.Typer(
    name="festflow",
    help="Turn an event goal into a task plan and drive it to completion.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()
err_console = Console(stderr=True)

_STATUS_STYLES = {
    TaskStatus.PENDING: "dim",
    TaskStatus.IN_PROGRESS: "cyan",
    TaskStatus.AWAITING_APPROVAL: "yellow",
    TaskStatus.COMPLETED: "green",
    TaskStatus.FAILED: "red",
}

_AGENT_STYLES = {
    AgentStatus.IDLE: "dim",
    AgentStatus.WORKING: "cyan",
    AgentStatus.ERROR: "red",
}

DATE_FORMATS = ["%Y-%m-%d"]


# -- Wiring -----------------------------------------------------------------------


def _load_settings() -> Settings:
    from festflow.config.settings import get_settings

    return get_settings()


def _settings(offline: bool = False) -> Settings:
    settings = _load_settings()
    if offline and not settings.execution.offline:
        execution = settings.execution.model_copy(update={"offline": True})
        settings = settings.model_copy(update={"execution": execution})
    return settings


def _make_orchestrator(settings: Settings, *, dispatch: bool = False) -> PlanOrchestrator:
    from festflow.agents import create_collaborators
    from festflow.core.orchestrator import PlanOrchestrator
    from festflow.tasks.store import PlanStore

    decomposer, generator = create_collaborators(settings)
    store = PlanStore(settings.state_path)
    return PlanOrchestrator(settings, store, decomposer, generator, dispatch=dispatch)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


@contextmanager
def _errors() -> Iterator[None]:
    """Print domain errors and exit non-zero instead of dumping a traceback."""
    try:
        yield
    except FestFlowError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc


def _parse_agent(text: str) -> AgentName:
    wanted = text.strip().lower().replace("-", " ").replace("_", " ")
    for agent in AgentName:
        if wanted in (agent.value.lower(), agent.name.lower().replace("_", " ")):
            return agent
    choices = ", ".join(f'"{a.value}"' for a in AgentName)
    raise typer.BadParameter(f"Unknown agent {text!r}. Choose one of: {choices}")


def _as_date(value: datetime | None) -> date | None:
    return value.date() if value is not None else None


# -- Rendering ----------------------------------------------------------------------


def _print_status(state: PlanState) -> None:
    from festflow.tasks.graph import container_ids
    from festflow.tasks.lifecycle import plan_progress

    if not state.tasks:
        if state.error:
            console.print(f"[red]Planning failed:[/red] {state.error}")
        else:
            console.print("[yellow]No plan yet.[/yellow] Run [bold]festflow plan \"<goal>\"[/bold] first.")
        return

    console.print()
    console.print(f"  [bold]Goal:[/bold]     {state.goal}")
    console.print(f"  [bold]Progress:[/bold] {plan_progress(state.tasks)}%")
    if state.error:
        console.print(f"  [bold]Error:[/bold]    [red]{state.error}[/red]")

    containers = container_ids(state.tasks)
    table = Table(title="Tasks", show_lines=False)
    table.add_column("ID", style="dim", max_width=28)
    table.add_column("Title", style="bold")
    table.add_column("Agent")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Retries", justify="right")
    table.add_column("Depends on", style="dim", max_width=36)

    for task in state.tasks:
        title = task.title
        if task.parent_id and task.parent_id in containers:
            title = f"  └ {title}"
        elif task.id in containers:
            title = f"[underline]{title}[/underline]"
        style = _STATUS_STYLES[task.status]
        table.add_row(
            task.id,
            title,
            task.assigned_agent.value,
            f"[{style}]{task.status.value}[/{style}]",
            f"{task.progress}%",
            str(task.retries) if task.retries else "",
            ", ".join(task.depends_on),
        )
    console.print(table)

    approvals = state.pending_approvals()
    if approvals:
        approvals_table = Table(title="Pending approvals", show_lines=True)
        approvals_table.add_column("ID", style="dim")
        approvals_table.add_column("Title", style="bold")
        approvals_table.add_column("Agent")
        approvals_table.add_column("Content", max_width=60)
        for approval in approvals:
            preview = approval.content if len(approval.content) <= 240 else approval.content[:237] + "..."
            approvals_table.add_row(approval.id, approval.title, approval.agent.value, preview)
        console.print(approvals_table)

    console.print()
    for agent, agent_status in state.agent_status.items():
        style = _AGENT_STYLES[agent_status]
        work = state.agent_work.get(agent)
        suffix = f"  [dim]{work}[/dim]" if work else ""
        console.print(f"  [bold]{agent.value}:[/bold] [{style}]{agent_status.value}[/{style}]{suffix}")
    console.print()


def _print_timeline(timeline: Timeline, state: PlanState, width: int = 40) -> None:
    if not len(timeline):
        console.print("[yellow]No tasks to schedule.[/yellow]")
        return

    titles = {t.id: t.title for t in state.tasks}
    scale = max(1, -(-timeline.total_days // width))
    table = Table(
        title=f"Timeline {timeline.start} → {timeline.end} ({timeline.total_days} days)",
        show_lines=False,
    )
    table.add_column("Task", style="bold", max_width=32)
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Days", justify="right")
    table.add_column("Lane", justify="right")
    table.add_column("")

    critical = set(timeline.critical_path)
    placements = sorted(timeline.placements.values(), key=lambda p: (p.start, p.lane))
    for placement in placements:
        offset = (placement.start - timeline.start).days // scale
        length = max(1, placement.duration // scale)
        colour = "red" if placement.task_id in critical else "cyan"
        bar = " " * offset + f"[{colour}]" + "█" * length + f"[/{colour}]"
        name = titles.get(placement.task_id, placement.task_id)
        if placement.fallback:
            name = f"[yellow]! {name}[/yellow]"
        table.add_row(
            name,
            placement.start.isoformat(),
            placement.end.isoformat(),
            str(placement.duration),
            str(placement.lane),
            bar,
        )
    console.print(table)

    if timeline.fallback_ids:
        console.print(
            "[yellow]Dependency cycle:[/yellow] placed at their fixed start or the anchor: "
            + ", ".join(titles.get(tid, tid) for tid in timeline.fallback_ids)
        )
    if timeline.critical_path:
        console.print(
            "[bold]Critical path:[/bold] "
            + " → ".join(titles.get(tid, tid) for tid in timeline.critical_path)
        )


# -- Commands -----------------------------------------------------------------------


@app.callback(invoke_without_command=True)
def main_callback(
    version: bool = typer.Option(False, "--version", "-V", help="Show version"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    if version:
        console.print(f"festflow [dim]v{__version__}[/dim]")
        raise typer.Exit()
    _configure_logging("DEBUG" if verbose else _load_settings().log_level)


@app.command()
def plan(
    goal: str = typer.Argument(..., help="The event goal to plan for"),
    offline: bool = typer.Option(False, "--offline", help="Use the built-in mock planner"),
):
    """Decompose a goal into a fresh task plan (replaces the current plan)."""
    settings = _settings(offline)

    async def _plan() -> PlanState:
        orchestrator = _make_orchestrator(settings)
        with console.status("Decomposing goal..."):
            return await orchestrator.submit_goal(goal)

    with _errors():
        state = asyncio.run(_plan())
    console.print(f"[green]Plan created with {len(state.tasks)} tasks.[/green]")
    _print_status(state)


@app.command()
def run(
    goal: str | None = typer.Option(None, "--goal", "-g", help="Plan this goal first"),
    offline: bool = typer.Option(False, "--offline", help="Use the built-in mock collaborators"),
):
    """Execute the plan until every runnable task is waiting on you."""
    settings = _settings(offline)

    async def _run() -> PlanState:
        orchestrator = _make_orchestrator(settings, dispatch=True)
        try:
            if goal:
                with console.status("Decomposing goal..."):
                    await orchestrator.submit_goal(goal)
            elif not orchestrator.state.tasks:
                return orchestrator.state
            else:
                orchestrator.run_pass()
            with console.status("Agents working..."):
                await orchestrator.wait_until_idle()
        finally:
            await orchestrator.shutdown()
        return orchestrator.state

    with _errors():
        state = asyncio.run(_run())
    _print_status(state)


@app.command()
def status():
    """Show tasks, pending approvals and agent status."""
    orchestrator = _make_orchestrator(_settings())
    _print_status(orchestrator.state)


@app.command()
def timeline(
    anchor: datetime | None = typer.Option(
        None, "--anchor", "-a", formats=DATE_FORMATS, help="First day of the plan (default: today)"
    ),
):
    """Show the calendar layout of the plan."""
    orchestrator = _make_orchestrator(_settings())
    _print_timeline(orchestrator.timeline(_as_date(anchor)), orchestrator.state)


@app.command()
def approve(
    approval_id: str = typer.Argument(..., help="Approval ID"),
    content: str | None = typer.Option(None, "--content", "-c", help="Approve an edited version"),
):
    """Approve generated content; the task is completed."""
    orchestrator = _make_orchestrator(_settings())
    with _errors():
        task = orchestrator.approve(approval_id, edited_content=content)
    if task is not None:
        console.print(f'[green]Approved:[/green] "{task.title}" is complete.')
    else:
        console.print("[yellow]Approval removed; its task no longer exists.[/yellow]")


@app.command()
def reject(
    approval_id: str = typer.Argument(..., help="Approval ID"),
    instruction: str | None = typer.Option(
        None, "--instruction", "-i", help="Prompt to use when regenerating"
    ),
):
    """Reject generated content; the task is regenerated on the next run."""
    orchestrator = _make_orchestrator(_settings())
    with _errors():
        task = orchestrator.reject(approval_id, instruction=instruction)
    if task is not None:
        console.print(f'[yellow]Rejected:[/yellow] "{task.title}" will be regenerated.')


@app.command()
def complete(
    task_id: str = typer.Argument(..., help="Task ID"),
    force: bool = typer.Option(False, "--force", "-f", help="Complete even if the work is not finished"),
):
    """Mark a task as complete."""
    orchestrator = _make_orchestrator(_settings())
    with _errors():
        task = orchestrator.complete_task(task_id, force=force)
    console.print(f'[green]Completed:[/green] "{task.title}"')


@app.command()
def reassign(
    task_id: str = typer.Argument(..., help="Task ID of a failed task"),
    agent: str = typer.Argument(..., help='New agent, e.g. "Marketing"'),
):
    """Hand a failed task to a different agent and restart it."""
    new_agent = _parse_agent(agent)
    orchestrator = _make_orchestrator(_settings())
    with _errors():
        task = orchestrator.reassign_task(task_id, new_agent)
    console.print(f'Reassigned "{task.title}" to [bold]{task.assigned_agent.value}[/bold].')


@app.command()
def reschedule(
    task_id: str = typer.Argument(..., help="Task ID"),
    start: datetime = typer.Argument(..., formats=DATE_FORMATS, help="New start date (YYYY-MM-DD)"),
    anchor: datetime | None = typer.Option(None, "--anchor", "-a", formats=DATE_FORMATS),
):
    """Pin a task to a start date. Saving a new schedule restarts the plan."""
    orchestrator = _make_orchestrator(_settings())
    with _errors():
        editor = orchestrator.begin_schedule_edit(_as_date(anchor))
        editor.reschedule(task_id, start.date())
        state = orchestrator.save_schedule(editor)
    console.print("[yellow]Timeline saved; the plan has been reset to the new schedule.[/yellow]")
    _print_timeline(orchestrator.timeline(editor.anchor), state)


@app.command()
def reorder(
    task_id: str = typer.Argument(..., help="Task ID"),
    index: int = typer.Argument(..., min=0, help="New position in the plan (0 = first)"),
    anchor: datetime | None = typer.Option(None, "--anchor", "-a", formats=DATE_FORMATS),
):
    """Move a task within the plan. Dependencies on tasks now after it are dropped."""
    orchestrator = _make_orchestrator(_settings())
    with _errors():
        editor = orchestrator.begin_schedule_edit(_as_date(anchor))
        editor.reorder(task_id, index)
        state = orchestrator.save_schedule(editor)
    console.print(f"Moved {task_id} to position {index}.")
    _print_timeline(orchestrator.timeline(editor.anchor), state)


@app.command()
def link(
    task_id: str = typer.Argument(..., help="Task that should wait"),
    depends_on: str = typer.Argument(..., help="Task it should wait for"),
    anchor: datetime | None = typer.Option(None, "--anchor", "-a", formats=DATE_FORMATS),
):
    """Make one task depend on another. A link that would close a cycle makes them parallel."""
    orchestrator = _make_orchestrator(_settings())
    with _errors():
        editor = orchestrator.begin_schedule_edit(_as_date(anchor))
        result = editor.create_dependency(task_id, depends_on)
        state = orchestrator.save_schedule(editor)
    console.print(f"Dependency {task_id} → {depends_on}: [bold]{result.value}[/bold]")
    _print_timeline(orchestrator.timeline(editor.anchor), state)


@app.command()
def reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete the current plan."""
    if not yes and not typer.confirm("Delete the current plan?"):
        raise typer.Exit()
    orchestrator = _make_orchestrator(_settings())
    orchestrator.reset()
    console.print("[green]Plan cleared.[/green]")


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address"),
    port: int | None = typer.Option(None, "--port", "-p", help="Port"),
    offline: bool = typer.Option(False, "--offline", help="Use the built-in mock collaborators"),
):
    """Run the HTTP API in the foreground."""
    import uvicorn

    from festflow.server.app import create_app

    settings = _settings(offline)
    host = host or settings.server.host
    port = port or settings.server.port
    console.print(f"  [bold]Server:[/bold] http://{host}:{port}")
    console.print(f"  [bold]Docs:[/bold]   http://{host}:{port}/docs")
    uvicorn.run(create_app(settings), host=host, port=port, access_log=False)


if __name__ == "__main__":
    app()
