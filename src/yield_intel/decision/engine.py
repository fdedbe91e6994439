"""Opportunity engine: snapshots -> risk -> projections -> best move."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import List, Optional

from yield_intel.config import settings
from yield_intel.data.service import YieldDataService
from yield_intel.decision.optimizer import AllocationOptimizer, AllocationPlan
from yield_intel.decision.projector import YieldProjector
from yield_intel.models.strategy import AccountStrategy
from yield_intel.models.venue import VenueRisk, VenueSnapshot
from yield_intel.models.yields import (
    CrossDomainOpportunity,
    OpportunityComparison,
    YieldProjection,
)
from yield_intel.risk.scorer import RiskScorer
from yield_intel.transfer.domains import DomainRegistry


logger = logging.getLogger(__name__)

BPS = 10_000
# share of the composite risk score taken off gross yield
RISK_HAIRCUT_BPS = 1_000


@dataclass(frozen=True)
class CandidateEvaluation:
    venue_id: str
    domain_id: int
    apy_bps: int
    risk: VenueRisk
    comparison: OpportunityComparison
    cross_domain: Optional[CrossDomainOpportunity] = None

    @property
    def is_worthwhile(self) -> bool:
        if self.cross_domain is not None and not self.cross_domain.is_profitable:
            return False
        return self.comparison.is_worthwhile


@dataclass(frozen=True)
class OpportunityDecision:
    should_rebalance: bool
    reason: str
    current_venue: str
    target_venue: Optional[str] = None
    target_domain: Optional[int] = None
    amount: int = 0
    apy_improvement_bps: int = 0
    best: Optional[CandidateEvaluation] = None
    candidates: List[CandidateEvaluation] = field(default_factory=list)
    allocations: List[AllocationPlan] = field(default_factory=list)

    @property
    def cross_domain(self) -> bool:
        return self.best is not None and self.best.cross_domain is not None


class OpportunityEngine:
    """Find the best risk-acceptable venue for an account's capital."""

    def __init__(
        self,
        data_service: YieldDataService,
        domains: Optional[DomainRegistry] = None,
        scorer: Optional[RiskScorer] = None,
        projector: Optional[YieldProjector] = None,
        optimizer: Optional[AllocationOptimizer] = None,
        horizon_s: Optional[int] = None,
        compounding_frequency: Optional[int] = None,
        rebalance_cost: Optional[int] = None,
        bridge_cost: Optional[int] = None,
        bridge_time_s: Optional[int] = None,
    ) -> None:
        self.data_service = data_service
        self.domains = domains
        self.scorer = scorer or RiskScorer()
        self.projector = projector or YieldProjector()
        self.optimizer = optimizer or AllocationOptimizer()
        self.horizon_s = horizon_s if horizon_s is not None else settings.projection_horizon_s
        self.compounding_frequency = (
            compounding_frequency
            if compounding_frequency is not None
            else settings.compounding_frequency
        )
        self.rebalance_cost = (
            rebalance_cost if rebalance_cost is not None else settings.rebalance_gas_cost
        )
        self.bridge_cost = bridge_cost if bridge_cost is not None else settings.bridge_cost
        self.bridge_time_s = (
            bridge_time_s if bridge_time_s is not None else settings.bridge_time_s
        )

    def projection_for(
        self, snapshot: VenueSnapshot, risk: VenueRisk, principal: int
    ) -> YieldProjection:
        return YieldProjection(
            principal=principal,
            apy_bps=snapshot.apy_bps,
            duration_s=self.horizon_s,
            compounding_frequency=self.compounding_frequency,
            risk_adjustment_bps=risk.composite * RISK_HAIRCUT_BPS // BPS,
        )

    def evaluate(
        self, strategy: AccountStrategy, current_venue: str, amount: int
    ) -> OpportunityDecision:
        if amount <= 0:
            return OpportunityDecision(False, "no_position", current_venue)
        current = self.data_service.snapshot(current_venue)
        if current is None:
            return OpportunityDecision(False, "current_unavailable", current_venue)
        current_risk = self.scorer.assess(current.metrics)
        current_projection = self.projection_for(current, current_risk, amount)

        evaluations: List[CandidateEvaluation] = []
        for venue_id in sorted(strategy.approved_venues):
            if venue_id == current_venue:
                continue
            snapshot = self.data_service.snapshot(venue_id)
            if snapshot is None:
                continue
            if not self._domain_allowed(strategy, current, snapshot):
                continue
            risk = self.scorer.assess(snapshot.metrics)
            if not self.scorer.meets_tolerance(risk, strategy.risk_tolerance_bps):
                logger.info(
                    "Venue %s risk %s above tolerance %s",
                    venue_id,
                    risk.composite,
                    strategy.risk_tolerance_bps,
                )
                continue
            evaluations.append(
                self._evaluate_candidate(current, current_projection, snapshot, risk, amount)
            )

        if not evaluations:
            return OpportunityDecision(False, "no_candidates", current_venue)

        allocations = self.optimizer.plan(
            [current_venue] + [item.venue_id for item in evaluations],
            [current.apy_bps] + [item.apy_bps for item in evaluations],
            [current_risk.composite] + [item.risk.composite for item in evaluations],
            strategy.risk_tolerance_bps,
            amount,
        )
        worthwhile = [item for item in evaluations if item.is_worthwhile]
        if not worthwhile:
            return OpportunityDecision(
                False,
                "not_worthwhile",
                current_venue,
                candidates=evaluations,
                allocations=allocations,
            )

        best = max(worthwhile, key=lambda item: item.comparison.net_yield_delta)
        improvement = best.comparison.apy_improvement_bps
        limit_bps = self.scorer.risk_adjusted_allocation_limit(
            best.risk.composite,
            strategy.risk_tolerance_bps,
            strategy.target_allocation_bps,
        )
        decision_kwargs = dict(
            current_venue=current_venue,
            target_venue=best.venue_id,
            target_domain=best.domain_id,
            amount=amount * limit_bps // BPS,
            apy_improvement_bps=improvement,
            best=best,
            candidates=evaluations,
            allocations=allocations,
        )
        if improvement < strategy.min_improvement_bps:
            return OpportunityDecision(
                False, "improvement_below_threshold", **decision_kwargs
            )
        return OpportunityDecision(True, "ok", **decision_kwargs)

    def _domain_allowed(
        self,
        strategy: AccountStrategy,
        current: VenueSnapshot,
        candidate: VenueSnapshot,
    ) -> bool:
        if candidate.domain_id == current.domain_id:
            return True
        if not strategy.cross_domain_enabled:
            return False
        if candidate.domain_id not in strategy.approved_domains:
            return False
        if self.domains is not None and not self.domains.is_supported(candidate.domain_id):
            return False
        return True

    def _evaluate_candidate(
        self,
        current: VenueSnapshot,
        current_projection: YieldProjection,
        snapshot: VenueSnapshot,
        risk: VenueRisk,
        amount: int,
    ) -> CandidateEvaluation:
        projection = self.projection_for(snapshot, risk, amount)
        if snapshot.domain_id == current.domain_id:
            comparison = self.projector.compare_opportunities(
                current_projection, projection, self.rebalance_cost
            )
            return CandidateEvaluation(
                venue_id=snapshot.venue_id,
                domain_id=snapshot.domain_id,
                apy_bps=snapshot.apy_bps,
                risk=risk,
                comparison=comparison,
            )

        cross = self.projector.cross_domain_opportunity(
            current_projection, projection, self.bridge_cost, self.bridge_time_s
        )
        in_transit = YieldProjection(
            principal=projection.principal,
            apy_bps=projection.apy_bps,
            duration_s=max(projection.duration_s - self.bridge_time_s, 1),
            compounding_frequency=projection.compounding_frequency,
            risk_adjustment_bps=projection.risk_adjustment_bps,
        )
        comparison = self.projector.compare_opportunities(
            current_projection, in_transit, self.rebalance_cost + self.bridge_cost
        )
        return CandidateEvaluation(
            venue_id=snapshot.venue_id,
            domain_id=snapshot.domain_id,
            apy_bps=snapshot.apy_bps,
            risk=risk,
            comparison=comparison,
            cross_domain=cross,
        )
