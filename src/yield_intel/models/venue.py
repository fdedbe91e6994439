"""Venue metrics, derived risk and registry entries."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from yield_intel.models.enums import RiskCategory


@dataclass(frozen=True)
class VenueMetrics:
    """Point-in-time metrics supplied by a venue adapter.

    Amounts are in token base units (6 decimals for USDC); ratios and
    scores are basis points.
    """

    total_value: int
    utilization_bps: int
    age_days: int
    max_withdrawable: int
    avg_yield_bps: int = 0
    yield_volatility_bps: int = 0
    has_audit: bool = False
    audit_quality_bps: int = 0
    has_governance_token: bool = False
    centralization_risk_bps: int = 0


@dataclass(frozen=True)
class VenueRisk:
    tvl_score: int
    audit_score: int
    age_score: int
    utilization_score: int
    governance_score: int
    liquidity_score: int
    composite: int
    category: RiskCategory
    risk_factors: List[str] = field(default_factory=list)

    def sub_scores(self) -> dict:
        return {
            "tvl": self.tvl_score,
            "audit": self.audit_score,
            "age": self.age_score,
            "utilization": self.utilization_score,
            "governance": self.governance_score,
            "liquidity": self.liquidity_score,
        }


@dataclass(frozen=True)
class VenueInfo:
    venue_id: str
    name: str
    domain_id: int
    supported: bool = True
    min_amount: int = 0
    max_amount: Optional[int] = None


@dataclass(frozen=True)
class VenueSnapshot:
    """Everything the decision engine needs about one venue right now."""

    venue_id: str
    domain_id: int
    apy_bps: int
    metrics: VenueMetrics
    timestamp: int
