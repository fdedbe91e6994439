"""Rebalance request and outcome models."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional
from uuid import uuid4

from yield_intel.models.enums import RebalanceStatus


@dataclass(frozen=True)
class RebalanceRequest:
    request_id: str
    account: str
    source_venue: str
    target_venue: str
    amount: int
    max_slippage_bps: int
    deadline: int
    fast_transfer: bool = False

    @classmethod
    def create(
        cls,
        account: str,
        source_venue: str,
        target_venue: str,
        amount: int,
        deadline: int,
        max_slippage_bps: int = 50,
        fast_transfer: bool = False,
    ) -> "RebalanceRequest":
        return cls(
            request_id=str(uuid4()),
            account=account,
            source_venue=source_venue,
            target_venue=target_venue,
            amount=amount,
            max_slippage_bps=max_slippage_bps,
            deadline=deadline,
            fast_transfer=fast_transfer,
        )


@dataclass(frozen=True)
class RebalanceOutcome:
    request_id: str
    account: str
    status: RebalanceStatus
    success: bool
    amount_executed: int
    resource_cost: int
    fees_paid: int
    tx_reference: Optional[str]
    error: Optional[str]
    created_at: int
    updated_at: int
    transfer_id: Optional[str] = None
    cancel_requested: bool = False

    @classmethod
    def validated(cls, request: RebalanceRequest, now: int) -> "RebalanceOutcome":
        return cls(
            request_id=request.request_id,
            account=request.account,
            status=RebalanceStatus.VALIDATED,
            success=False,
            amount_executed=0,
            resource_cost=0,
            fees_paid=0,
            tx_reference=None,
            error=None,
            created_at=now,
            updated_at=now,
        )

    def with_status(self, status: RebalanceStatus, now: int, **changes) -> "RebalanceOutcome":
        return replace(self, status=status, updated_at=now, **changes)
