"""Per-account allocation strategy."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import FrozenSet, Optional

from pydantic import BaseModel, Field, field_validator


@dataclass(frozen=True)
class AccountStrategy:
    account: str
    target_allocation_bps: int
    risk_tolerance_bps: int
    min_improvement_bps: int
    auto_rebalance: bool
    cross_domain_enabled: bool
    approved_venues: FrozenSet[str] = field(default_factory=frozenset)
    approved_domains: FrozenSet[int] = field(default_factory=frozenset)
    max_slippage_bps: int = 50
    last_rebalance_time: Optional[int] = None

    def with_last_rebalance(self, timestamp: int) -> "AccountStrategy":
        return replace(self, last_rebalance_time=timestamp)


class StrategyInput(BaseModel):
    """Caller-supplied strategy fields, validated before storage."""

    target_allocation_bps: int = Field(default=10_000, ge=0, le=10_000)
    risk_tolerance_bps: int = Field(default=5_000, ge=0, le=10_000)
    min_improvement_bps: int = Field(default=50, ge=0, le=10_000)
    auto_rebalance: bool = True
    cross_domain_enabled: bool = False
    approved_venues: list[str] = Field(default_factory=list)
    approved_domains: list[int] = Field(default_factory=list)
    max_slippage_bps: int = Field(default=50, ge=0, le=10_000)

    @field_validator("approved_venues")
    @classmethod
    def _normalize_venues(cls, value: list[str]) -> list[str]:
        return [item.strip().lower() for item in value if item and item.strip()]

    def to_strategy(
        self, account: str, last_rebalance_time: Optional[int] = None
    ) -> AccountStrategy:
        return AccountStrategy(
            account=account,
            target_allocation_bps=self.target_allocation_bps,
            risk_tolerance_bps=self.risk_tolerance_bps,
            min_improvement_bps=self.min_improvement_bps,
            auto_rebalance=self.auto_rebalance,
            cross_domain_enabled=self.cross_domain_enabled,
            approved_venues=frozenset(self.approved_venues),
            approved_domains=frozenset(self.approved_domains),
            max_slippage_bps=self.max_slippage_bps,
            last_rebalance_time=last_rebalance_time,
        )
