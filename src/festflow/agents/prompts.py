"""Instructions for the planner and the content-generating agents."""

from __future__ import annotations

from festflow.tasks.models import ORCHESTRATOR, AgentName, Task

_WORKER_ROLES = {
    AgentName.LOGISTICS_COORDINATOR: (
        "Handles physical and organizational tasks like booking venues, managing "
        "vendors and creating schedules. These tasks are manual and are marked "
        "complete by the user."
    ),
    AgentName.SPONSORSHIP_OUTREACH: (
        "Handles all communication with potential sponsors. Generates content "
        "(like emails) that requires user approval."
    ),
    AgentName.MARKETING: (
        "Handles all promotional activities. Generates content (like social media "
        "posts) that requires user approval."
    ),
}

CONTENT_INSTRUCTIONS: dict[AgentName, str] = {
    AgentName.MARKETING: (
        f"You are the {AgentName.MARKETING.value} agent for FestFlow. Your task is to "
        "generate compelling marketing content. Be creative, engaging, and align "
        "with the event's theme."
    ),
    AgentName.SPONSORSHIP_OUTREACH: (
        f"You are the {AgentName.SPONSORSHIP_OUTREACH.value} agent for FestFlow. Your "
        "task is to draft professional and persuasive outreach emails to potential "
        "sponsors. Be clear and concise, and highlight the value proposition."
    ),
}


def build_planner_instructions() -> list[str]:
    """System instructions for goal decomposition, one paragraph per entry."""
    roster = "\n".join(f'- "{agent.value}": {role}' for agent, role in _WORKER_ROLES.items())
    allowed = ", ".join(f'"{agent.value}"' for agent in _WORKER_ROLES)
    return [
        f"You are the {ORCHESTRATOR.value} for FestFlow, an event orchestration "
        "platform. Decompose a high-level goal into a detailed, structured plan of tasks.",
        f"You delegate work to this team:\n{roster}",
        "Break the goal down into specific, actionable tasks. For complex work create "
        "a parent task as an organizational container and link its sub-tasks to it "
        "through `parent_id`. Parent tasks are never executed; their status is derived "
        "from their sub-tasks. A parent's `estimated_duration` is roughly the sum of "
        "its sequential sub-tasks.",
        "Sub-tasks MUST inherit every prerequisite of their parent. They may also "
        "depend on sibling sub-tasks to form a sequence.",
        "`depends_on` lists the ids of every task that must be completed before the "
        "task can start. Use an empty list when nothing blocks it.",
        "Each `id` is a unique, URL-friendly slug such as `book-venue`. "
        "`estimated_duration` is a whole number of days greater than 0.",
        f"`assigned_agent` must be one of: {allowed}.",
        "Return ONLY a JSON array of objects with the keys `id`, `title`, "
        "`description`, `assigned_agent`, `depends_on`, `estimated_duration` and "
        "optionally `parent_id`. No markdown and no other text.",
    ]


def build_goal_prompt(goal: str) -> str:
    return f'Decompose the following goal into a task plan: "{goal}"'


def build_content_prompt(task: Task) -> str:
    """The message sent to a content agent; an operator instruction replaces it."""
    if task.custom_prompt:
        return task.custom_prompt
    return (
        "Based on the following task, please generate the required content.\n"
        f'- Task Title: "{task.title}"\n'
        f'- Task Description: "{task.description}"\n\n'
        "Generate only the content itself, without any additional commentary or formatting."
    )
