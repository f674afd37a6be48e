"""Deterministic collaborators for running without a model provider."""

from __future__ import annotations

import asyncio
import logging

from festflow.agents.planning import PlannedTask, build_plan
from festflow.tasks.models import AgentName, Task

logger = logging.getLogger("festflow.agents.offline")

_L = AgentName.LOGISTICS_COORDINATOR
_S = AgentName.SPONSORSHIP_OUTREACH
_M = AgentName.MARKETING

# A plan that touches every feature: containers, cross-container
# dependencies, simulated work and both content agents.
MOCK_PLAN: tuple[PlannedTask, ...] = (
    PlannedTask(
        id="secure-logistics",
        title="Secure Event Logistics",
        description="Oversee all logistical arrangements including venue, AV, and catering.",
        assigned_agent=_L,
        estimated_duration=8,
    ),
    PlannedTask(
        id="select-venue",
        title="Select and Book Venue",
        description="Research and book a suitable venue for a 3-day tech conference for 200 people.",
        assigned_agent=_L,
        estimated_duration=3,
        parent_id="secure-logistics",
    ),
    PlannedTask(
        id="arrange-av",
        title="Arrange AV Equipment",
        description="Coordinate with vendors for stage, sound, and lighting.",
        assigned_agent=_L,
        depends_on=["select-venue"],
        estimated_duration=2,
        parent_id="secure-logistics",
    ),
    PlannedTask(
        id="arrange-catering",
        title="Finalize Catering",
        description="Get quotes and sign a contract for event catering.",
        assigned_agent=_L,
        depends_on=["select-venue"],
        estimated_duration=3,
        parent_id="secure-logistics",
    ),
    PlannedTask(
        id="manage-sponsorship",
        title="Manage Sponsorship Campaign",
        description="Develop sponsorship packages, conduct outreach, and secure funding.",
        assigned_agent=_S,
        estimated_duration=7,
    ),
    PlannedTask(
        id="develop-sponsorship-packages",
        title="Develop Sponsorship Tiers",
        description="Create tiered sponsorship packages (Platinum, Gold, Silver) with clear benefits.",
        assigned_agent=_S,
        estimated_duration=2,
        parent_id="manage-sponsorship",
    ),
    PlannedTask(
        id="draft-sponsorship-email",
        title="Draft Initial Sponsorship Email",
        description="Draft a compelling and personalized outreach email template for potential sponsors.",
        assigned_agent=_S,
        depends_on=["develop-sponsorship-packages"],
        estimated_duration=1,
        parent_id="manage-sponsorship",
    ),
    PlannedTask(
        id="send-sponsorship-emails",
        title="Send Wave 1 Sponsorship Emails",
        description="Send the approved email to a pre-vetted list of 20 potential sponsors.",
        assigned_agent=_S,
        depends_on=["draft-sponsorship-email"],
        estimated_duration=2,
        parent_id="manage-sponsorship",
    ),
    PlannedTask(
        id="execute-marketing-plan",
        title="Execute Marketing Plan",
        description="Oversee all marketing activities to promote the event and drive ticket sales.",
        assigned_agent=_M,
        depends_on=["select-venue"],
        estimated_duration=6,
    ),
    PlannedTask(
        id="create-brand-identity",
        title="Create Event Brand Identity",
        description="Develop a logo, color scheme, and overall visual identity for the conference.",
        assigned_agent=_L,
        estimated_duration=3,
    ),
    PlannedTask(
        id="announce-event-social-media",
        title="Create 'Save the Date' Post",
        description="Create an engaging social media post announcing the conference date and venue.",
        assigned_agent=_M,
        depends_on=["select-venue", "create-brand-identity"],
        estimated_duration=1,
        parent_id="execute-marketing-plan",
    ),
    PlannedTask(
        id="launch-event-website",
        title="Launch Simple Event Website",
        description="Build and deploy a one-page website with key event details and a sign-up form.",
        assigned_agent=_L,
        depends_on=["create-brand-identity"],
        estimated_duration=4,
        parent_id="execute-marketing-plan",
    ),
    PlannedTask(
        id="announce-keynote-speaker",
        title="Announce Keynote Speaker",
        description="Create a social media campaign to announce the confirmed keynote speaker.",
        assigned_agent=_M,
        depends_on=["launch-event-website"],
        estimated_duration=1,
        parent_id="execute-marketing-plan",
    ),
)

CANNED_CONTENT: dict[str, str] = {
    "draft-sponsorship-email": (
        "Subject: Partnership Opportunity: The Annual FestFlow Tech Conference\n\n"
        "Dear [Sponsor Name],\n\n"
        "I am writing to invite you to partner with us for the upcoming FestFlow Tech "
        "Conference, a premier 3-day event gathering 200 industry leaders and innovators.\n\n"
        "Our sponsorship packages are attached for your review. We would be delighted "
        "to schedule a brief call to discuss this opportunity further.\n\n"
        "Best regards,\nSponsorship Outreach\nFestFlow"
    ),
    "announce-event-social-media": (
        "BIG NEWS! Announcing the FestFlow Tech Conference!\n\n"
        "Join us for 3 days of innovation, networking, and groundbreaking tech at "
        "The Grand Expo Center. Early bird tickets drop next month.\n"
        "#TechConference #Innovation #SaveTheDate"
    ),
    "announce-keynote-speaker": (
        "Keynote Speaker Announcement!\n\n"
        "We are thrilled to announce that Dr. Evelyn Reed, a pioneer in artificial "
        "intelligence, will open the FestFlow Tech Conference.\n"
        "#Keynote #AI #TechEvent"
    ),
}


class OfflineGoalDecomposer:
    """Returns the same mock plan for every goal."""

    def __init__(self, delay: float = 0.0) -> None:
        self._delay = delay

    async def decompose(self, goal: str) -> list[Task]:
        logger.info("Decomposing goal offline: %s", goal)
        if self._delay:
            await asyncio.sleep(self._delay)
        return build_plan([d.model_copy(deep=True) for d in MOCK_PLAN])


class OfflineContentGenerator:
    """Canned content keyed by task id, with a generic fallback."""

    def __init__(self, delay: float = 0.0) -> None:
        self._delay = delay

    async def generate(self, task: Task) -> str:
        if self._delay:
            await asyncio.sleep(self._delay)
        if task.custom_prompt:
            return f"[{task.assigned_agent.value}] Revised draft for \"{task.title}\":\n{task.custom_prompt}"
        return CANNED_CONTENT.get(
            task.id,
            f"[{task.assigned_agent.value}] Draft for \"{task.title}\":\n{task.description}",
        )
