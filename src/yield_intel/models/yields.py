"""Yield projection inputs and comparison outputs."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class YieldProjection:
    principal: int
    apy_bps: int
    duration_s: int
    compounding_frequency: int = 365
    risk_adjustment_bps: int = 0
    gas_cost: int = 0
    protocol_fee: int = 0


@dataclass(frozen=True)
class OpportunityComparison:
    net_yield_delta: int
    improvement_bps: int
    is_worthwhile: bool
    break_even_s: int
    annual_benefit: int
    apy_improvement_bps: int = 0


@dataclass(frozen=True)
class CrossDomainOpportunity:
    local_net_yield: int
    remote_net_yield: int
    is_profitable: bool
    benefit: int
