"""Paths and default values used across the project."""

from pathlib import Path

# Base directory for all festflow data
FESTFLOW_HOME = Path.home() / ".festflow"

CONFIG_FILE = FESTFLOW_HOME / "config.json"
STATE_FILE = FESTFLOW_HOME / "plan_state.json"

# Server defaults
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000

# Execution defaults
MAX_TASK_RETRIES = 3
SIMULATION_MIN_SECONDS = 2.0
SIMULATION_MAX_SECONDS = 5.0
SIMULATION_TICK_SECONDS = 0.1

# Rate-limit backoff for the content/decomposition model calls
RATE_LIMIT_RETRIES = 3
RATE_LIMIT_INITIAL_DELAY = 1.0

# Supported model providers
MODEL_PROVIDERS = {
    "google": {
        "name": "Google (Gemini)",
        "env_key": "GOOGLE_API_KEY",
        "default_model": "gemini-2.5-flash",
    },
    "anthropic": {
        "name": "Anthropic (Claude)",
        "env_key": "ANTHROPIC_API_KEY",
        "default_model": "claude-sonnet-4-5-20250929",
    },
    "openai": {
        "name": "OpenAI (GPT)",
        "env_key": "OPENAI_API_KEY",
        "default_model": "gpt-4o",
    },
    "ollama": {
        "name": "Ollama (Local)",
        "env_key": None,
        "default_model": "llama3.1",
    },
    "openrouter": {
        "name": "OpenRouter (multi-provider gateway)",
        "env_key": "OPENROUTER_API_KEY",
        "default_model": "google/gemini-2.5-flash",
    },
}
