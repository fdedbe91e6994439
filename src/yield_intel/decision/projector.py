"""Yield projection in integer fixed-point arithmetic."""

from __future__ import annotations

from dataclasses import replace
import sys

from yield_intel.errors import ValidationError
from yield_intel.models.yields import (
    CrossDomainOpportunity,
    OpportunityComparison,
    YieldProjection,
)


BPS = 10_000
WAD = 10**18
SECONDS_PER_YEAR = 365 * 24 * 3600
UNBOUNDED = sys.maxsize


def wad_mul(a: int, b: int) -> int:
    return a * b // WAD


def wad_pow(base: int, exponent: int) -> int:
    """base**exponent for an 18-decimal base, by repeated squaring."""
    result = WAD
    while exponent > 0:
        if exponent & 1:
            result = wad_mul(result, base)
        base = wad_mul(base, base)
        exponent >>= 1
    return result


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


class YieldProjector:
    """Simple/compound yield, net yield and opportunity comparison."""

    @staticmethod
    def simple_yield(principal: int, apy_bps: int, duration_s: int) -> int:
        return principal * apy_bps * duration_s // (BPS * SECONDS_PER_YEAR)

    def compound_yield(
        self, principal: int, apy_bps: int, duration_s: int, frequency: int
    ) -> int:
        """Periodic compounding; a partial trailing period accrues simple interest."""
        if frequency <= 0:
            return self.simple_yield(principal, apy_bps, duration_s)
        if principal <= 0 or apy_bps <= 0 or duration_s <= 0:
            return 0
        rate_per_period = apy_bps * WAD // (BPS * frequency)
        periods = frequency * duration_s // SECONDS_PER_YEAR
        factor = wad_pow(WAD + rate_per_period, periods)

        # leftover time, expressed in 1/frequency-of-a-second units
        leftover = duration_s * frequency - periods * SECONDS_PER_YEAR
        if leftover > 0:
            partial = apy_bps * WAD * leftover // (BPS * SECONDS_PER_YEAR * frequency)
            factor = wad_mul(factor, WAD + partial)
        return principal * (factor - WAD) // WAD

    def gross_yield(self, projection: YieldProjection) -> int:
        return self.compound_yield(
            projection.principal,
            projection.apy_bps,
            projection.duration_s,
            projection.compounding_frequency,
        )

    def risk_adjusted_yield(self, projection: YieldProjection) -> int:
        gross = self.gross_yield(projection)
        penalty = gross * projection.risk_adjustment_bps // BPS
        adjusted = max(gross - penalty, 0)
        return max(adjusted - projection.gas_cost - projection.protocol_fee, 0)

    def net_yield(self, projection: YieldProjection) -> tuple[int, int]:
        """Return (net yield, effective APY in bps)."""
        if projection.principal <= 0 or projection.duration_s <= 0:
            raise ValidationError("effective APY needs positive principal and duration")
        net = self.risk_adjusted_yield(projection)
        effective_apy = (
            net * SECONDS_PER_YEAR * BPS // (projection.principal * projection.duration_s)
        )
        return net, effective_apy

    def compare_opportunities(
        self,
        current: YieldProjection,
        candidate: YieldProjection,
        rebalance_cost: int,
    ) -> OpportunityComparison:
        current_net, _ = self.net_yield(current)
        candidate_net, _ = self.net_yield(candidate)
        candidate_after_cost = max(candidate_net - rebalance_cost, 0)
        apy_delta = candidate.apy_bps - current.apy_bps

        if candidate_after_cost <= current_net:
            return OpportunityComparison(
                net_yield_delta=0,
                improvement_bps=0,
                is_worthwhile=False,
                break_even_s=UNBOUNDED,
                annual_benefit=0,
                apy_improvement_bps=apy_delta,
            )

        delta = candidate_after_cost - current_net
        improvement_bps = delta * BPS // current_net if current_net > 0 else UNBOUNDED
        break_even_s = UNBOUNDED
        if apy_delta > 0:
            break_even_s = (
                rebalance_cost * SECONDS_PER_YEAR * BPS // (candidate.principal * apy_delta)
            )
        return OpportunityComparison(
            net_yield_delta=delta,
            improvement_bps=improvement_bps,
            is_worthwhile=True,
            break_even_s=break_even_s,
            annual_benefit=delta * SECONDS_PER_YEAR // candidate.duration_s,
            apy_improvement_bps=apy_delta,
        )

    @staticmethod
    def minimum_improvement_needed(principal: int, cost: int, duration_s: int) -> int:
        """APY improvement in bps that pays back ``cost`` within ``duration_s``."""
        if principal <= 0 or duration_s <= 0:
            return UNBOUNDED
        if cost <= 0:
            return 0
        return _ceil_div(cost * SECONDS_PER_YEAR * BPS, principal * duration_s)

    def cross_domain_opportunity(
        self,
        local: YieldProjection,
        remote: YieldProjection,
        bridge_cost: int,
        bridge_time_s: int,
    ) -> CrossDomainOpportunity:
        # funds earn nothing while in transit
        remote_effective = replace(
            remote, duration_s=max(remote.duration_s - bridge_time_s, 0)
        )
        local_net = self.risk_adjusted_yield(local)
        remote_net = max(self.risk_adjusted_yield(remote_effective) - bridge_cost, 0)
        benefit = max(remote_net - local_net, 0)
        return CrossDomainOpportunity(
            local_net_yield=local_net,
            remote_net_yield=remote_net,
            is_profitable=remote_net > local_net,
            benefit=benefit,
        )
