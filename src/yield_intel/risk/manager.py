"""Rebalance request rules and manager."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Tuple, Type

from yield_intel.config import settings
from yield_intel.errors import LimitExceeded, ValidationError, YieldIntelError
from yield_intel.db.journal import LifecycleJournal
from yield_intel.models.rebalance import RebalanceRequest
from yield_intel.models.strategy import AccountStrategy
from yield_intel.models.transfer import DomainInfo
from yield_intel.models.venue import VenueInfo


@dataclass(frozen=True)
class RebalanceContext:
    request: RebalanceRequest
    strategy: AccountStrategy
    source: Optional[VenueInfo]
    target: Optional[VenueInfo]
    source_domain: Optional[DomainInfo]
    target_domain: Optional[DomainInfo]
    now: int
    transfer_daily_total: int = 0

    @property
    def cross_domain(self) -> bool:
        if self.source is None or self.target is None:
            return False
        return self.source.domain_id != self.target.domain_id


class RiskRule(ABC):
    name: str
    error: Type[YieldIntelError] = ValidationError

    @abstractmethod
    def check(self, ctx: RebalanceContext) -> Tuple[bool, str]:
        raise NotImplementedError


@dataclass(frozen=True)
class ApprovedVenueRule(RiskRule):
    name: str = "approved_venue"

    def check(self, ctx: RebalanceContext) -> Tuple[bool, str]:
        request = ctx.request
        if request.source_venue == request.target_venue:
            return False, "source and target venue are the same"
        for label, venue_id, info in (
            ("source", request.source_venue, ctx.source),
            ("target", request.target_venue, ctx.target),
        ):
            if info is None or not info.supported:
                return False, f"{label} venue {venue_id} not supported"
            if venue_id not in ctx.strategy.approved_venues:
                return False, f"{label} venue {venue_id} not approved for account"
        return True, "ok"


@dataclass(frozen=True)
class ApprovedDomainRule(RiskRule):
    name: str = "approved_domain"

    def check(self, ctx: RebalanceContext) -> Tuple[bool, str]:
        if not ctx.cross_domain:
            return True, "ok"
        if not ctx.strategy.cross_domain_enabled:
            return False, "cross-domain rebalancing disabled for account"
        for label, domain in (("source", ctx.source_domain), ("target", ctx.target_domain)):
            if domain is None or not domain.supported:
                return False, f"{label} domain not supported"
            if domain.domain_id not in ctx.strategy.approved_domains:
                return False, f"{label} domain {domain.domain_id} not approved for account"
        if ctx.request.fast_transfer and not ctx.target_domain.fast_transfer:
            return False, f"domain {ctx.target_domain.domain_id} has no fast transfer"
        return True, "ok"


@dataclass(frozen=True)
class AmountBoundsRule(RiskRule):
    min_amount: int
    max_amount: int
    name: str = "amount_bounds"

    def check(self, ctx: RebalanceContext) -> Tuple[bool, str]:
        amount = ctx.request.amount
        if amount <= 0:
            return False, "amount must be positive"
        if amount < self.min_amount or amount > self.max_amount:
            return False, f"amount {amount} outside [{self.min_amount}, {self.max_amount}]"
        target = ctx.target
        if target is not None:
            if amount < target.min_amount:
                return False, f"amount {amount} below venue minimum {target.min_amount}"
            if target.max_amount is not None and amount > target.max_amount:
                return False, f"amount {amount} above venue maximum {target.max_amount}"
        return True, "ok"


@dataclass(frozen=True)
class TransferBoundsRule(RiskRule):
    """Destination-domain transfer bounds for cross-domain moves."""

    name: str = "transfer_bounds"

    def check(self, ctx: RebalanceContext) -> Tuple[bool, str]:
        domain = ctx.target_domain
        if not ctx.cross_domain or domain is None:
            return True, "ok"
        amount = ctx.request.amount
        if amount < domain.min_transfer:
            return False, f"amount {amount} below domain minimum {domain.min_transfer}"
        if domain.max_transfer and amount > domain.max_transfer:
            return False, f"amount {amount} above domain maximum {domain.max_transfer}"
        return True, "ok"


@dataclass(frozen=True)
class TransferDailyCapRule(RiskRule):
    name: str = "transfer_daily_cap"
    error: Type[YieldIntelError] = LimitExceeded

    def check(self, ctx: RebalanceContext) -> Tuple[bool, str]:
        domain = ctx.target_domain
        if not ctx.cross_domain or domain is None or not domain.max_transfer:
            return True, "ok"
        total = ctx.transfer_daily_total + ctx.request.amount
        if total > domain.max_transfer:
            return False, (
                f"daily transfers to domain {domain.domain_id} would reach {total}, "
                f"cap {domain.max_transfer}"
            )
        return True, "ok"


@dataclass(frozen=True)
class SlippageRule(RiskRule):
    max_slippage_bps: int
    name: str = "slippage"

    def check(self, ctx: RebalanceContext) -> Tuple[bool, str]:
        slippage = ctx.request.max_slippage_bps
        if slippage < 0:
            return False, "slippage must be non-negative"
        if slippage > self.max_slippage_bps:
            return False, f"slippage {slippage} exceeds cap {self.max_slippage_bps}"
        if slippage > ctx.strategy.max_slippage_bps:
            return False, (
                f"slippage {slippage} exceeds account cap {ctx.strategy.max_slippage_bps}"
            )
        return True, "ok"


@dataclass(frozen=True)
class DeadlineRule(RiskRule):
    name: str = "deadline"

    def check(self, ctx: RebalanceContext) -> Tuple[bool, str]:
        if ctx.now > ctx.request.deadline:
            return False, f"deadline {ctx.request.deadline} passed at {ctx.now}"
        return True, "ok"


@dataclass(frozen=True)
class CooldownRule(RiskRule):
    cooldown_s: int
    name: str = "cooldown"
    error: Type[YieldIntelError] = LimitExceeded

    def check(self, ctx: RebalanceContext) -> Tuple[bool, str]:
        last = ctx.strategy.last_rebalance_time
        if last is None:
            return True, "ok"
        ready_at = last + self.cooldown_s
        if ctx.now < ready_at:
            return False, f"cooldown active until {ready_at}"
        return True, "ok"


def default_rules(cooldown_s: Optional[int] = None) -> List[RiskRule]:
    return [
        ApprovedVenueRule(),
        ApprovedDomainRule(),
        AmountBoundsRule(settings.min_rebalance_amount, settings.max_rebalance_amount),
        TransferBoundsRule(),
        TransferDailyCapRule(),
        SlippageRule(settings.max_slippage_bps),
        DeadlineRule(),
        CooldownRule(
            settings.rebalance_cooldown_s if cooldown_s is None else cooldown_s
        ),
    ]


class RiskManager:
    """Evaluate rebalance requests against registered rules."""

    def __init__(
        self,
        rules: Optional[List[RiskRule]] = None,
        journal: Optional[LifecycleJournal] = None,
    ) -> None:
        self.rules = rules if rules is not None else default_rules()
        self.journal = journal or LifecycleJournal()

    def check(self, ctx: RebalanceContext) -> Tuple[bool, str, Optional[RiskRule]]:
        """Return the first failing rule; blocks are journaled."""
        for rule in self.rules:
            passed, reason = rule.check(ctx)
            if not passed:
                self.journal.record_risk_block(
                    ctx.request.account,
                    rule.name,
                    reason,
                    ctx.now,
                    request_id=ctx.request.request_id,
                )
                return False, reason, rule
        return True, "ok", None

    def enforce(self, ctx: RebalanceContext) -> None:
        passed, reason, rule = self.check(ctx)
        if not passed:
            raise rule.error(f"{rule.name}: {reason}")
