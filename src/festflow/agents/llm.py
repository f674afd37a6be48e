"""Model-backed collaborators built on Agno agents."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar

from agno.agent import Agent

from festflow.agents.planning import build_plan, parse_plan
from festflow.agents.prompts import (
    CONTENT_INSTRUCTIONS,
    build_content_prompt,
    build_goal_prompt,
    build_planner_instructions,
)
from festflow.config.constants import MODEL_PROVIDERS
from festflow.errors import ContentGenerationError, DecompositionError
from festflow.tasks.models import ORCHESTRATOR, AgentName, Task

if TYPE_CHECKING:
    from festflow.config.settings import Settings

logger = logging.getLogger("festflow.agents.llm")

T = TypeVar("T")


def _load_env() -> None:
    """Load ~/.festflow/.env into os.environ so API keys are always available."""
    from festflow.config.constants import FESTFLOW_HOME

    env_path = FESTFLOW_HOME / ".env"
    if not env_path.exists():
        return
    for line in env_path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        os.environ.setdefault(key.strip(), value.strip().strip("\"'"))


def get_model(settings: Settings):
    """Instantiate the Agno model class named by ``settings.model``."""
    _load_env()
    provider = settings.model.provider
    model_id = settings.model.model_id
    if provider not in MODEL_PROVIDERS:
        raise ValueError(f"Unknown model provider: {provider}")
    env_key = MODEL_PROVIDERS[provider]["env_key"]
    if env_key and not os.environ.get(env_key) and settings.model.auth_method != "token":
        logger.warning("%s is not set; %s calls will fail", env_key, MODEL_PROVIDERS[provider]["name"])

    if provider == "google":
        from agno.models.google import Gemini

        return Gemini(id=model_id)

    if provider == "anthropic":
        from agno.models.anthropic import Claude

        api_key = os.environ.get("ANTHROPIC_API_KEY")
        return Claude(id=model_id, api_key=api_key) if api_key else Claude(id=model_id)

    if provider == "openai":
        from agno.models.openai import OpenAIChat

        if settings.model.auth_method == "token":
            return OpenAIChat(id=model_id, api_key=os.environ.get("OPENAI_AUTH_TOKEN"))
        return OpenAIChat(id=model_id)

    if provider == "ollama":
        from agno.models.ollama import Ollama

        return Ollama(id=model_id)

    # openrouter speaks the OpenAI protocol
    from agno.models.openai import OpenAIChat

    return OpenAIChat(
        id=model_id,
        api_key=os.environ.get("OPENROUTER_API_KEY"),
        base_url="https://openrouter.ai/api/v1",
    )


def is_rate_limited(exc: BaseException) -> bool:
    # Provider SDKs disagree on status attributes; the message always carries the code.
    return "429" in str(exc)


async def call_with_backoff(
    call: Callable[[], Awaitable[T]],
    *,
    retries: int,
    initial_delay: float,
) -> T:
    """Await ``call()``, retrying rate-limit errors with exponential backoff."""
    attempt = 0
    delay = initial_delay
    while True:
        try:
            return await call()
        except Exception as exc:
            if not is_rate_limited(exc):
                raise
            if attempt >= retries:
                raise ContentGenerationError(
                    "Rate limit exceeded. Please wait a minute and try again. "
                    f"(Failed after {retries} retries)"
                ) from exc
            attempt += 1
            logger.warning(
                "Rate limit hit. Retrying in %.1fs (%d/%d)", delay, attempt, retries
            )
            await asyncio.sleep(delay)
            delay *= 2


def _response_text(response) -> str:
    content = getattr(response, "content", None)
    if content is None:
        return ""
    return content if isinstance(content, str) else str(content)


class AgnoContentGenerator:
    """Generates approvable content with one Agno agent per content agent."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._agents: dict[AgentName, Agent] = {}

    def _agent_for(self, agent_name: AgentName) -> Agent:
        if agent_name not in self._agents:
            self._agents[agent_name] = Agent(
                id=f"festflow-{agent_name.value.lower().replace(' ', '-')}",
                name=agent_name.value,
                model=get_model(self._settings),
                instructions=[CONTENT_INSTRUCTIONS[agent_name]],
                markdown=False,
            )
        return self._agents[agent_name]

    async def generate(self, task: Task) -> str:
        if task.assigned_agent not in CONTENT_INSTRUCTIONS:
            raise ContentGenerationError(
                f"The agent {task.assigned_agent.value} does not generate approvable content"
            )
        agent = self._agent_for(task.assigned_agent)
        prompt = build_content_prompt(task)
        execution = self._settings.execution

        try:
            response = await call_with_backoff(
                lambda: agent.arun(prompt),
                retries=execution.rate_limit_retries,
                initial_delay=execution.rate_limit_initial_delay,
            )
        except ContentGenerationError:
            raise
        except Exception as exc:
            raise ContentGenerationError(f"API error during task execution: {exc}") from exc

        text = _response_text(response).strip()
        if not text:
            raise ContentGenerationError(f'Empty response for task "{task.title}"')
        return text


class AgnoGoalDecomposer:
    """Asks the planner agent for a JSON plan and validates it."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._agent: Agent | None = None

    @property
    def agent(self) -> Agent:
        if self._agent is None:
            self._agent = Agent(
                id="festflow-planner",
                name=ORCHESTRATOR.value,
                model=get_model(self._settings),
                instructions=build_planner_instructions(),
                markdown=False,
            )
        return self._agent

    async def decompose(self, goal: str) -> list[Task]:
        execution = self._settings.execution
        try:
            response = await call_with_backoff(
                lambda: self.agent.arun(build_goal_prompt(goal)),
                retries=execution.rate_limit_retries,
                initial_delay=execution.rate_limit_initial_delay,
            )
        except Exception as exc:
            logger.exception("Goal decomposition failed")
            raise DecompositionError(f"Error during goal decomposition: {exc}") from exc

        tasks = build_plan(parse_plan(_response_text(response)))
        logger.info("Planner produced %d tasks", len(tasks))
        return tasks
