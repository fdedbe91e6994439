"""Execution layer exports."""

from yield_intel.execution.orchestrator import RebalanceOrchestrator

__all__ = ["RebalanceOrchestrator"]
