"""In-process venue adapter with a share-price vault model."""

from __future__ import annotations

import threading
from typing import Optional, Tuple

from yield_intel.errors import ExecutionFailure
from yield_intel.models.venue import VenueMetrics
from yield_intel.venues.base import VenueAdapter


SECONDS_PER_YEAR = 365 * 24 * 3600


class SimulatedVenueAdapter(VenueAdapter):
    """Vault that accrues simple interest on demand.

    ``capacity`` caps total assets, ``liquidity_bps`` caps how much of the
    vault can leave at once. ``fail_deposit`` / ``fail_withdraw`` make the
    next calls raise, to exercise failure handling.
    """

    def __init__(
        self,
        venue_id: str,
        apy_bps: int,
        *,
        total_assets: int = 0,
        utilization_bps: int = 7_500,
        risk_score_bps: int = 3_000,
        capacity: Optional[int] = None,
        liquidity_bps: int = 10_000,
        age_days: int = 1_000,
        has_audit: bool = True,
        audit_quality_bps: int = 8_000,
        has_governance_token: bool = True,
        centralization_risk_bps: int = 3_000,
        avg_yield_bps: Optional[int] = None,
        yield_volatility_bps: int = 0,
    ) -> None:
        self.venue_id = venue_id
        self.apy_bps = apy_bps
        self.utilization_bps = utilization_bps
        self.risk_score_bps = risk_score_bps
        self.capacity = capacity
        self.liquidity_bps = liquidity_bps
        self.age_days = age_days
        self.has_audit = has_audit
        self.audit_quality_bps = audit_quality_bps
        self.has_governance_token = has_governance_token
        self.centralization_risk_bps = centralization_risk_bps
        self.avg_yield_bps = apy_bps if avg_yield_bps is None else avg_yield_bps
        self.yield_volatility_bps = yield_volatility_bps
        self.fail_deposit = False
        self.fail_withdraw = False
        self._total_assets = total_assets
        self._total_shares = total_assets
        self._lock = threading.Lock()

    def deposit(self, amount: int) -> int:
        if self.fail_deposit:
            raise ExecutionFailure(f"{self.venue_id}: deposit rejected")
        if amount <= 0:
            raise ExecutionFailure(f"{self.venue_id}: deposit amount must be positive")
        with self._lock:
            ok, max_amount = self._can_deposit(amount)
            if not ok:
                raise ExecutionFailure(
                    f"{self.venue_id}: deposit {amount} exceeds capacity {max_amount}"
                )
            shares = self._to_shares(amount)
            self._total_assets += amount
            self._total_shares += shares
            return shares

    def withdraw(self, shares: int) -> int:
        if self.fail_withdraw:
            raise ExecutionFailure(f"{self.venue_id}: withdraw rejected")
        with self._lock:
            ok, max_shares = self._can_withdraw(shares)
            if not ok:
                raise ExecutionFailure(
                    f"{self.venue_id}: withdraw {shares} exceeds liquidity {max_shares}"
                )
            amount = self._to_assets(shares)
            self._total_assets -= amount
            self._total_shares -= shares
            return amount

    def current_yield(self) -> int:
        return self.apy_bps

    def total_value_locked(self) -> int:
        with self._lock:
            return self._total_assets

    def utilization(self) -> int:
        return self.utilization_bps

    def risk_score(self) -> int:
        return self.risk_score_bps

    def can_deposit(self, amount: int) -> Tuple[bool, int]:
        with self._lock:
            return self._can_deposit(amount)

    def can_withdraw(self, shares: int) -> Tuple[bool, int]:
        with self._lock:
            return self._can_withdraw(shares)

    def convert_to_shares(self, amount: int) -> int:
        with self._lock:
            return self._to_shares(amount)

    def convert_to_assets(self, shares: int) -> int:
        with self._lock:
            return self._to_assets(shares)

    def metrics(self) -> VenueMetrics:
        with self._lock:
            total = self._total_assets
        return VenueMetrics(
            total_value=total,
            utilization_bps=self.utilization_bps,
            age_days=self.age_days,
            max_withdrawable=total * self.liquidity_bps // 10_000,
            avg_yield_bps=self.avg_yield_bps,
            yield_volatility_bps=self.yield_volatility_bps,
            has_audit=self.has_audit,
            audit_quality_bps=self.audit_quality_bps,
            has_governance_token=self.has_governance_token,
            centralization_risk_bps=self.centralization_risk_bps,
        )

    def accrue(self, seconds: int) -> int:
        """Grow assets by simple interest over ``seconds``; returns interest."""
        with self._lock:
            interest = self._total_assets * self.apy_bps * seconds // (
                10_000 * SECONDS_PER_YEAR
            )
            self._total_assets += interest
            return interest

    def _can_deposit(self, amount: int) -> Tuple[bool, int]:
        if self.capacity is None:
            return True, amount
        headroom = max(self.capacity - self._total_assets, 0)
        return amount <= headroom, headroom

    def _can_withdraw(self, shares: int) -> Tuple[bool, int]:
        liquid_assets = self._total_assets * self.liquidity_bps // 10_000
        max_shares = min(self._to_shares(liquid_assets), self._total_shares)
        return 0 < shares <= max_shares, max_shares

    def _to_shares(self, amount: int) -> int:
        if self._total_shares == 0 or self._total_assets == 0:
            return amount
        return amount * self._total_shares // self._total_assets

    def _to_assets(self, shares: int) -> int:
        if self._total_shares == 0:
            return 0
        return shares * self._total_assets // self._total_shares
