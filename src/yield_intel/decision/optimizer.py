"""Risk-weighted allocation across candidate venues."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

from yield_intel.errors import ValidationError


BPS = 10_000


@dataclass(frozen=True)
class AllocationPlan:
    venue_id: str
    yield_bps: int
    risk_bps: int
    weight: int
    amount: int


class AllocationOptimizer:
    """Split an amount in proportion to yield over a quadratic risk penalty."""

    @staticmethod
    def candidate_weight(yield_bps: int, risk_bps: int, tolerance_bps: int) -> int:
        if risk_bps > tolerance_bps or yield_bps <= 0:
            return 0
        return yield_bps * BPS // (BPS + risk_bps * risk_bps // BPS)

    def optimal_allocation(
        self,
        yields_bps: Sequence[int],
        risks_bps: Sequence[int],
        tolerance_bps: int,
        total_amount: int,
    ) -> List[int]:
        if len(yields_bps) != len(risks_bps):
            raise ValidationError(
                f"yields and risks length mismatch: {len(yields_bps)} != {len(risks_bps)}"
            )
        weights = [
            self.candidate_weight(y, r, tolerance_bps) for y, r in zip(yields_bps, risks_bps)
        ]
        total_weight = sum(weights)
        if total_weight == 0:
            return [0] * len(weights)
        return [total_amount * weight // total_weight for weight in weights]

    def plan(
        self,
        venue_ids: Sequence[str],
        yields_bps: Sequence[int],
        risks_bps: Sequence[int],
        tolerance_bps: int,
        total_amount: int,
    ) -> List[AllocationPlan]:
        """Named allocation, largest first; zero-amount venues are dropped."""
        if len(venue_ids) != len(yields_bps):
            raise ValidationError("venue ids and yields length mismatch")
        amounts = self.optimal_allocation(yields_bps, risks_bps, tolerance_bps, total_amount)
        plans = [
            AllocationPlan(
                venue_id=venue_id,
                yield_bps=y,
                risk_bps=r,
                weight=self.candidate_weight(y, r, tolerance_bps),
                amount=amount,
            )
            for venue_id, y, r, amount in zip(venue_ids, yields_bps, risks_bps, amounts)
            if amount > 0
        ]
        plans.sort(key=lambda item: item.amount, reverse=True)
        return plans
