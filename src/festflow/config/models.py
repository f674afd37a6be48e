"""Pydantic models for configuration sub-sections."""

from __future__ import annotations

from pydantic import BaseModel, model_validator

from festflow.config.constants import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    MAX_TASK_RETRIES,
    RATE_LIMIT_INITIAL_DELAY,
    RATE_LIMIT_RETRIES,
    SIMULATION_MAX_SECONDS,
    SIMULATION_MIN_SECONDS,
    SIMULATION_TICK_SECONDS,
)


class ModelConfig(BaseModel):
    """Which LLM provider and model the agents use."""

    provider: str = "google"
    model_id: str = "gemini-2.5-flash"
    auth_method: str = "api_key"  # "api_key" or "token"


class ExecutionConfig(BaseModel):
    """Task execution settings (retries, simulated work, offline mode)."""

    max_retries: int = MAX_TASK_RETRIES
    simulation_min_seconds: float = SIMULATION_MIN_SECONDS
    simulation_max_seconds: float = SIMULATION_MAX_SECONDS
    tick_seconds: float = SIMULATION_TICK_SECONDS
    offline: bool = False  # True = mock planner/content, no network
    rate_limit_retries: int = RATE_LIMIT_RETRIES
    rate_limit_initial_delay: float = RATE_LIMIT_INITIAL_DELAY

    @model_validator(mode="after")
    def validate_simulation(self) -> "ExecutionConfig":
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.tick_seconds <= 0:
            raise ValueError(f"tick_seconds must be positive, got {self.tick_seconds}")
        if not 0 < self.simulation_min_seconds <= self.simulation_max_seconds:
            raise ValueError(
                f"simulation window must satisfy 0 < min <= max, got "
                f"{self.simulation_min_seconds}..{self.simulation_max_seconds}"
            )
        return self


class FeatureConfig(BaseModel):
    """Optional capabilities layered on the core engine."""

    container_tasks: bool = True  # parent/child rollup
    custom_prompt_rejection: bool = True  # rejection may carry a new instruction
    persistence: bool = True  # write plan state to disk on every change


class ServerConfig(BaseModel):
    """HTTP server settings."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
