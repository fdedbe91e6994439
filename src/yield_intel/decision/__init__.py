"""Decision layer exports."""

from yield_intel.decision.engine import (
    CandidateEvaluation,
    OpportunityDecision,
    OpportunityEngine,
)
from yield_intel.decision.optimizer import AllocationOptimizer, AllocationPlan
from yield_intel.decision.projector import UNBOUNDED, YieldProjector

__all__ = [
    "AllocationOptimizer",
    "AllocationPlan",
    "CandidateEvaluation",
    "OpportunityDecision",
    "OpportunityEngine",
    "UNBOUNDED",
    "YieldProjector",
]
