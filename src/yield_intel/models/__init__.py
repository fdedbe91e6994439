"""Model exports."""

from yield_intel.models.enums import (
    AttestationStatus,
    RebalanceStatus,
    RiskCategory,
    TransferStatus,
)
from yield_intel.models.rebalance import RebalanceOutcome, RebalanceRequest
from yield_intel.models.strategy import AccountStrategy, StrategyInput
from yield_intel.models.transfer import (
    DomainInfo,
    TransferMessage,
    TransferParams,
    TransferRecord,
)
from yield_intel.models.venue import VenueInfo, VenueMetrics, VenueRisk, VenueSnapshot
from yield_intel.models.yields import (
    CrossDomainOpportunity,
    OpportunityComparison,
    YieldProjection,
)

__all__ = [
    "AccountStrategy",
    "AttestationStatus",
    "CrossDomainOpportunity",
    "DomainInfo",
    "OpportunityComparison",
    "RebalanceOutcome",
    "RebalanceRequest",
    "RebalanceStatus",
    "RiskCategory",
    "StrategyInput",
    "TransferMessage",
    "TransferParams",
    "TransferRecord",
    "TransferStatus",
    "VenueInfo",
    "VenueMetrics",
    "VenueRisk",
    "VenueSnapshot",
    "YieldProjection",
]
