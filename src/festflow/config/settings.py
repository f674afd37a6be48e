"""Central settings: loaded from ~/.festflow/config.json and environment variables."""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from festflow.config.constants import CONFIG_FILE, FESTFLOW_HOME, STATE_FILE
from festflow.config.models import (
    ExecutionConfig,
    FeatureConfig,
    ModelConfig,
    ServerConfig,
)

logger = logging.getLogger("festflow.config.settings")


class Settings(BaseSettings):
    """All festflow configuration in one place.

    Priority (highest → lowest):
      1. Environment variables (FESTFLOW_ prefix, ``__`` for nesting)
      2. .env file
      3. ~/.festflow/config.json
      4. Defaults defined here
    """

    model_config = SettingsConfigDict(
        env_prefix="FESTFLOW_",
        env_nested_delimiter="__",
        env_file=(".env", str(FESTFLOW_HOME / ".env")),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Sub-configs ---
    model: ModelConfig = Field(default_factory=ModelConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    features: FeatureConfig = Field(default_factory=FeatureConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    # --- Top-level settings ---
    state_file: str = str(STATE_FILE)
    log_level: str = "INFO"

    @model_validator(mode="before")
    @classmethod
    def load_config_file(cls, values: dict) -> dict:
        """Merge config.json values as defaults (explicit values still override)."""
        if CONFIG_FILE.exists():
            try:
                file_data = json.loads(CONFIG_FILE.read_text(encoding="utf-8"))
                values = {**file_data, **{k: v for k, v in values.items() if v is not None}}
            except (json.JSONDecodeError, OSError) as exc:
                logger.warning("Ignoring unreadable %s: %s", CONFIG_FILE, exc)
        return values

    @property
    def state_path(self) -> Path | None:
        """Where the plan state is persisted, or None when persistence is off."""
        if not self.features.persistence:
            return None
        return Path(self.state_file).expanduser()

    def save(self) -> None:
        """Persist current settings to config.json."""
        CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
        data = self.model_dump(mode="json")
        CONFIG_FILE.write_text(json.dumps(data, indent=2), encoding="utf-8")

    @classmethod
    def config_exists(cls) -> bool:
        return CONFIG_FILE.exists()


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
