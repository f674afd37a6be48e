"""Plan orchestration."""

from festflow.core.orchestrator import PlanOrchestrator

__all__ = ["PlanOrchestrator"]
