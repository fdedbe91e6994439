"""Risk scoring and rule exports."""

from yield_intel.risk.manager import (
    AmountBoundsRule,
    ApprovedDomainRule,
    ApprovedVenueRule,
    CooldownRule,
    DeadlineRule,
    RebalanceContext,
    RiskManager,
    RiskRule,
    SlippageRule,
    TransferBoundsRule,
    TransferDailyCapRule,
    default_rules,
)
from yield_intel.risk.scorer import RiskScorer, categorize

__all__ = [
    "AmountBoundsRule",
    "ApprovedDomainRule",
    "ApprovedVenueRule",
    "CooldownRule",
    "DeadlineRule",
    "RebalanceContext",
    "RiskManager",
    "RiskRule",
    "RiskScorer",
    "SlippageRule",
    "TransferBoundsRule",
    "TransferDailyCapRule",
    "categorize",
    "default_rules",
]
