"""FestFlow: agent-driven event planning with human approval."""

__version__ = "0.3.0"
