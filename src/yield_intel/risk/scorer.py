"""Venue risk scoring.

Every score is in basis points, 0 (no risk) to 10000 (maximal risk). The
band thresholds and weights below are fixed; downstream tests assert exact
numeric outputs.
"""

from __future__ import annotations

from typing import List, Tuple

from yield_intel.config import USDC_UNIT
from yield_intel.models.enums import RiskCategory
from yield_intel.models.venue import VenueMetrics, VenueRisk


BPS = 10_000
MAX_SCORE = 10_000
RISK_FACTOR_THRESHOLD = 6_000

# weights sum to 10000: tvl, audit, age, utilization, governance, liquidity
TVL_WEIGHT = 2_000
AUDIT_WEIGHT = 2_500
AGE_WEIGHT = 1_500
UTILIZATION_WEIGHT = 1_000
GOVERNANCE_WEIGHT = 1_500
LIQUIDITY_WEIGHT = 1_500

# (minimum total value, score); first match wins
TVL_BANDS: Tuple[Tuple[int, int], ...] = (
    (1_000_000_000 * USDC_UNIT, 500),
    (500_000_000 * USDC_UNIT, 1_000),
    (100_000_000 * USDC_UNIT, 2_000),
    (50_000_000 * USDC_UNIT, 3_000),
    (10_000_000 * USDC_UNIT, 4_500),
    (1_000_000 * USDC_UNIT, 6_500),
)
TVL_FLOOR_SCORE = 9_000

AGE_BANDS: Tuple[Tuple[int, int], ...] = (
    (730, 1_000),
    (365, 2_500),
    (180, 4_000),
    (90, 6_000),
)
AGE_FLOOR_SCORE = 9_000

UNAUDITED_SCORE = 8_000
NO_GOVERNANCE_TOKEN_SCORE = 7_000

OPTIMAL_UTILIZATION_LOW = 7_000
OPTIMAL_UTILIZATION_HIGH = 8_500

# liquidity ratio (withdrawable / total value) in bps
LIQUIDITY_BANDS: Tuple[Tuple[int, int], ...] = (
    (2_000, 1_000),
    (1_000, 3_000),
    (500, 5_500),
)
LIQUIDITY_FLOOR_SCORE = 8_000
HIGH_UTILIZATION_BPS = 9_000
HIGH_UTILIZATION_PENALTY = 1_500

CATEGORY_BANDS: Tuple[Tuple[int, RiskCategory], ...] = (
    (2_000, RiskCategory.VERY_LOW),
    (4_000, RiskCategory.LOW),
    (6_000, RiskCategory.MEDIUM),
    (8_000, RiskCategory.HIGH),
)


def clamp_bps(value: int) -> int:
    return max(0, min(int(value), MAX_SCORE))


def _banded(value: int, bands: Tuple[Tuple[int, int], ...], floor_score: int) -> int:
    for threshold, score in bands:
        if value >= threshold:
            return score
    return floor_score


def tvl_score(total_value: int) -> int:
    return _banded(total_value, TVL_BANDS, TVL_FLOOR_SCORE)


def audit_score(has_audit: bool, audit_quality_bps: int) -> int:
    if not has_audit:
        return UNAUDITED_SCORE
    return MAX_SCORE - clamp_bps(audit_quality_bps)


def age_score(age_days: int) -> int:
    return _banded(age_days, AGE_BANDS, AGE_FLOOR_SCORE)


def utilization_score(utilization_bps: int) -> int:
    """Lowest inside the 70-85% band, worse the further out it sits."""
    utilization = clamp_bps(utilization_bps)
    if OPTIMAL_UTILIZATION_LOW <= utilization <= OPTIMAL_UTILIZATION_HIGH:
        return 1_000
    if utilization < OPTIMAL_UTILIZATION_LOW:
        if utilization >= 6_000:
            return 2_500
        if utilization >= 4_000:
            return 4_000
        if utilization >= 2_000:
            return 6_000
        return 8_500
    if utilization <= 9_000:
        return 3_000
    if utilization <= 9_500:
        return 6_000
    return 8_500


def governance_score(has_governance_token: bool, centralization_risk_bps: int) -> int:
    if not has_governance_token:
        return NO_GOVERNANCE_TOKEN_SCORE
    return clamp_bps(centralization_risk_bps)


def liquidity_score(total_value: int, max_withdrawable: int, utilization_bps: int) -> int:
    if total_value <= 0:
        return MAX_SCORE
    ratio_bps = max(max_withdrawable, 0) * BPS // total_value
    score = _banded(ratio_bps, LIQUIDITY_BANDS, LIQUIDITY_FLOOR_SCORE)
    if utilization_bps >= HIGH_UTILIZATION_BPS:
        score += HIGH_UTILIZATION_PENALTY
    return clamp_bps(score)


def categorize(composite: int) -> RiskCategory:
    for upper, category in CATEGORY_BANDS:
        if composite <= upper:
            return category
    return RiskCategory.VERY_HIGH


class RiskScorer:
    """Turn venue metrics into a composite score and category."""

    def assess(self, metrics: VenueMetrics) -> VenueRisk:
        scores = {
            "tvl": tvl_score(metrics.total_value),
            "audit": audit_score(metrics.has_audit, metrics.audit_quality_bps),
            "age": age_score(metrics.age_days),
            "utilization": utilization_score(metrics.utilization_bps),
            "governance": governance_score(
                metrics.has_governance_token, metrics.centralization_risk_bps
            ),
            "liquidity": liquidity_score(
                metrics.total_value, metrics.max_withdrawable, metrics.utilization_bps
            ),
        }
        composite = clamp_bps(
            (
                scores["tvl"] * TVL_WEIGHT
                + scores["audit"] * AUDIT_WEIGHT
                + scores["age"] * AGE_WEIGHT
                + scores["utilization"] * UTILIZATION_WEIGHT
                + scores["governance"] * GOVERNANCE_WEIGHT
                + scores["liquidity"] * LIQUIDITY_WEIGHT
            )
            // BPS
        )
        factors: List[str] = [
            name for name, score in scores.items() if score >= RISK_FACTOR_THRESHOLD
        ]
        return VenueRisk(
            tvl_score=scores["tvl"],
            audit_score=scores["audit"],
            age_score=scores["age"],
            utilization_score=scores["utilization"],
            governance_score=scores["governance"],
            liquidity_score=scores["liquidity"],
            composite=composite,
            category=categorize(composite),
            risk_factors=factors,
        )

    @staticmethod
    def is_safer(a: VenueRisk, b: VenueRisk) -> bool:
        return a.composite < b.composite

    @staticmethod
    def meets_tolerance(risk: VenueRisk | int, tolerance_bps: int) -> bool:
        composite = risk.composite if isinstance(risk, VenueRisk) else int(risk)
        return tolerance_bps - composite >= 0

    @staticmethod
    def risk_adjusted_allocation_limit(
        score_bps: int, tolerance_bps: int, max_allocation_bps: int
    ) -> int:
        """Quadratic haircut on the maximum allocation; zero above tolerance."""
        if score_bps > tolerance_bps:
            return 0
        penalty = score_bps * score_bps // BPS
        return max_allocation_bps * (BPS - penalty) // BPS
