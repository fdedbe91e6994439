"""Rebalance orchestrator: validate, execute and record venue moves.

Per request: VALIDATED -> EXECUTING -> COMPLETED | FAILED, with CANCELLED
reachable from VALIDATED or EXECUTING. Cross-domain moves stay EXECUTING
until the transfer is finalized on the destination domain.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from yield_intel.config import settings
from yield_intel.data.service import YieldDataService
from yield_intel.db.journal import LifecycleJournal
from yield_intel.decision.engine import OpportunityDecision, OpportunityEngine
from yield_intel.errors import (
    ExecutionFailure,
    IdempotencyViolation,
    LimitExceeded,
    Unauthorized,
    ValidationError,
    YieldIntelError,
)
from yield_intel.ledger import BalanceLedger, DailyAggregate, PositionBook
from yield_intel.models.enums import RebalanceStatus, TERMINAL_REBALANCE_STATUSES
from yield_intel.models.rebalance import RebalanceOutcome, RebalanceRequest
from yield_intel.models.strategy import AccountStrategy, StrategyInput
from yield_intel.models.transfer import TransferParams, TransferRecord
from yield_intel.risk.manager import RebalanceContext, RiskManager, default_rules
from yield_intel.transfer.domains import DomainRegistry
from yield_intel.transfer.manager import CrossDomainTransferManager
from yield_intel.utils.locks import KeyedLock, SingleFlight
from yield_intel.utils.pause import PauseSwitch
from yield_intel.utils.time import Clock, SystemClock
from yield_intel.venues.registry import VenueRegistry


logger = logging.getLogger(__name__)

BPS = 10_000
DEFAULT_TRIGGER_DEADLINE_S = 300


class RebalanceOrchestrator:
    """Top-level entry point for account strategies and rebalances."""

    def __init__(
        self,
        venues: VenueRegistry,
        domains: DomainRegistry,
        ledger: Optional[BalanceLedger] = None,
        transfers: Optional[CrossDomainTransferManager] = None,
        clock: Optional[Clock] = None,
        pause: Optional[PauseSwitch] = None,
        journal: Optional[LifecycleJournal] = None,
        risk_manager: Optional[RiskManager] = None,
        engine: Optional[OpportunityEngine] = None,
        positions: Optional[PositionBook] = None,
        daily_cap: Optional[int] = None,
        gas_cost: Optional[int] = None,
        cooldown_s: Optional[int] = None,
        trigger_address: Optional[str] = None,
        operators: Optional[Tuple[str, ...]] = None,
    ) -> None:
        self.venues = venues
        self.domains = domains
        self.clock = clock or SystemClock()
        self.pause = pause or PauseSwitch()
        self.journal = journal or LifecycleJournal()
        self.ledger = ledger or (transfers.ledger if transfers else BalanceLedger())
        self.transfers = transfers or CrossDomainTransferManager(
            domains,
            self.ledger,
            clock=self.clock,
            pause=self.pause,
            journal=self.journal,
        )
        self.risk_manager = risk_manager or RiskManager(
            rules=default_rules(cooldown_s), journal=self.journal
        )
        self.engine = engine or OpportunityEngine(
            YieldDataService(venues, clock=self.clock), domains=domains
        )
        self.positions = positions or PositionBook()
        self.daily_cap = daily_cap if daily_cap is not None else settings.daily_rebalance_cap
        self.gas_cost = gas_cost if gas_cost is not None else settings.rebalance_gas_cost
        self.trigger_address = (
            trigger_address if trigger_address is not None else settings.trigger_address
        )
        self.operators = frozenset(
            operators if operators is not None else settings.operator_addresses
        )

        self._strategies: Dict[str, AccountStrategy] = {}
        self._requests: Dict[str, RebalanceRequest] = {}
        self._outcomes: Dict[str, RebalanceOutcome] = {}
        self._reservations: Dict[str, Tuple[str, int, int]] = {}
        self._daily = DailyAggregate()
        self._lock = threading.Lock()
        self._accounts = KeyedLock()
        self._flight = SingleFlight("rebalance")

    def set_strategy(
        self,
        account: str,
        strategy: Union[StrategyInput, Mapping[str, Any]],
        caller: Optional[str] = None,
    ) -> AccountStrategy:
        """Create or overwrite an account's strategy.

        Only the account itself or a configured operator may write it; the
        last rebalance time survives an overwrite.
        """
        self.pause.ensure_active()
        if not account or not account.strip():
            raise ValidationError("account is required")
        caller = account if caller is None else caller
        if caller != account and caller not in self.operators:
            raise Unauthorized(f"{caller} may not set strategy for {account}")
        if not isinstance(strategy, StrategyInput):
            try:
                strategy = StrategyInput.model_validate(dict(strategy))
            except PydanticValidationError as exc:
                raise ValidationError(f"invalid strategy: {exc}") from exc

        with self._accounts.hold(account):
            existing = self._strategies.get(account)
            last = existing.last_rebalance_time if existing else None
            stored = strategy.to_strategy(account, last_rebalance_time=last)
            self._strategies[account] = stored
        logger.info(
            "Strategy set for %s by %s: venues=%s domains=%s",
            account,
            caller,
            sorted(stored.approved_venues),
            sorted(stored.approved_domains),
        )
        return stored

    def get_strategy(self, account: str) -> Optional[AccountStrategy]:
        with self._accounts.hold(account):
            return self._strategies.get(account)

    def deposit(self, account: str, venue_id: str, amount: int) -> int:
        """Move ledger funds on the venue's domain into venue shares."""
        self.pause.ensure_active()
        info = self.venues.get(venue_id)
        if info is None or not info.supported:
            raise ValidationError(f"venue {venue_id} not supported")
        if amount <= 0:
            raise ValidationError("amount must be positive")
        self.ledger.debit(info.domain_id, account, amount)
        try:
            shares = self._venue_call(venue_id, "deposit", amount)
        except ExecutionFailure:
            self.ledger.credit(info.domain_id, account, amount)
            raise
        self.positions.add(account, venue_id, shares)
        logger.info("Deposited %s into %s for %s (%s shares)", amount, venue_id, account, shares)
        return shares

    def position_value(self, account: str, venue_id: str) -> int:
        shares = self.positions.shares(account, venue_id)
        if not shares:
            return 0
        return self._venue_call(venue_id, "convert_to_assets", shares)

    def submit(self, request: RebalanceRequest) -> RebalanceOutcome:
        """Validate ``request`` and reserve its daily amount; nothing moves yet."""
        self.pause.ensure_active()
        with self._accounts.hold(request.account):
            strategy = self._strategies.get(request.account)
            if strategy is None:
                raise ValidationError(f"no strategy for account {request.account}")
            now = self.clock.now()
            ctx = self._context(request, strategy, now)
            self.risk_manager.enforce(ctx)

            with self._lock:
                if request.request_id in self._outcomes:
                    raise IdempotencyViolation(
                        f"request {request.request_id} already submitted"
                    )
            ok, max_amount = self._venue_call(
                request.target_venue, "can_deposit", request.amount
            )
            if not ok:
                raise LimitExceeded(
                    f"venue {request.target_venue} capacity {max_amount} "
                    f"below {request.amount}"
                )
            bucket = self._daily.reserve(
                request.account, request.target_venue, now, request.amount, self.daily_cap
            )
            outcome = RebalanceOutcome.validated(request, now)
            with self._lock:
                self._requests[request.request_id] = request
                self._outcomes[request.request_id] = outcome
                self._reservations[request.request_id] = (
                    request.target_venue,
                    bucket,
                    request.amount,
                )
        self.journal.record_rebalance(outcome, None, "validated")
        logger.info(
            "Rebalance validated: %s %s %s -> %s amount=%s",
            request.request_id,
            request.account,
            request.source_venue,
            request.target_venue,
            request.amount,
        )
        return outcome

    def execute(self, request_id: str) -> RebalanceOutcome:
        """Run a validated request; an inner move failure is captured, not raised."""
        self.pause.ensure_active()
        with self._flight.enter(request_id):
            request = self.get_request(request_id)
            with self._accounts.hold(request.account):
                outcome = self.get_outcome(request_id)
                if outcome.status != RebalanceStatus.VALIDATED:
                    raise ValidationError(
                        f"request {request_id} is {outcome.status.value}, not executable"
                    )
                now = self.clock.now()
                strategy = self._strategies[request.account]
                try:
                    self.risk_manager.enforce(self._context(request, strategy, now))
                except YieldIntelError as exc:
                    self._release(request_id)
                    self._transition(request_id, RebalanceStatus.FAILED, error=str(exc))
                    raise

                self._strategies[request.account] = strategy.with_last_rebalance(now)
                outcome = self._transition(request_id, RebalanceStatus.EXECUTING)
                if outcome.cancel_requested:
                    self._release(request_id)
                    return self._transition(
                        request_id, RebalanceStatus.CANCELLED, error="cancelled before move"
                    )

                source = self.venues.get(request.source_venue)
                target = self.venues.get(request.target_venue)
                try:
                    if source.domain_id == target.domain_id:
                        self._move_within_domain(request)
                    else:
                        record = self._move_across_domains(
                            request, source.domain_id, target.domain_id
                        )
                        return self._transition(
                            request_id,
                            RebalanceStatus.EXECUTING,
                            "transfer initiated",
                            transfer_id=record.transfer_id,
                            fees_paid=record.fee,
                            resource_cost=self.gas_cost,
                            tx_reference=record.transfer_id,
                        )
                except ExecutionFailure as exc:
                    self._release(request_id)
                    logger.warning("Rebalance %s failed: %s", request_id, exc)
                    return self._transition(
                        request_id,
                        RebalanceStatus.FAILED,
                        success=False,
                        amount_executed=0,
                        error=str(exc),
                    )

                return self._transition(
                    request_id,
                    RebalanceStatus.COMPLETED,
                    success=True,
                    amount_executed=request.amount,
                    resource_cost=self.gas_cost,
                    tx_reference=uuid4().hex,
                )

    def execute_rebalance(self, request: RebalanceRequest) -> RebalanceOutcome:
        self.submit(request)
        return self.execute(request.request_id)

    def batch_rebalance(self, requests: List[RebalanceRequest]) -> List[RebalanceOutcome]:
        """Sequential; the first raised error aborts the rest of the batch."""
        outcomes: List[RebalanceOutcome] = []
        for request in requests:
            outcomes.append(self.execute_rebalance(request))
        return outcomes

    def cancel(self, request_id: str) -> RebalanceOutcome:
        """Cancel bookkeeping only; funds already moved stay moved."""
        self.pause.ensure_active()
        request = self.get_request(request_id)
        with self._accounts.hold(request.account):
            return self._cancel_locked(request_id)

    def _cancel_locked(self, request_id: str) -> RebalanceOutcome:
        with self._lock:
            outcome = self._outcomes.get(request_id)
        if outcome is None:
            raise ValidationError(f"unknown request {request_id}")
        if outcome.status in TERMINAL_REBALANCE_STATUSES:
            raise ValidationError(
                f"request {request_id} is {outcome.status.value}, cannot cancel"
            )
        if outcome.status == RebalanceStatus.EXECUTING:
            return self._transition(
                request_id,
                RebalanceStatus.EXECUTING,
                "cancel requested",
                cancel_requested=True,
            )
        if self._flight.is_in_flight(request_id):
            # execute() has the request but has not moved it to EXECUTING yet
            return self._mark_cancel_requested(request_id)
        self._release(request_id)
        return self._transition(request_id, RebalanceStatus.CANCELLED, error="cancelled")

    def finalize_cross_domain(
        self,
        request_id: str,
        message: Optional[bytes] = None,
        attestation: Optional[bytes] = None,
    ) -> RebalanceOutcome:
        """Complete the transfer leg and deposit into the target venue.

        Returns the outcome unchanged while the attestation is not ready.
        """
        self.pause.ensure_active()
        with self._flight.enter(request_id):
            request = self.get_request(request_id)
            outcome = self.get_outcome(request_id)
            if outcome.status != RebalanceStatus.EXECUTING or not outcome.transfer_id:
                raise ValidationError(f"request {request_id} has no transfer in flight")
            record = self.transfers.get_transfer(outcome.transfer_id)
            if not record.completed:
                attestation = attestation or self.transfers.get_attestation(record.transfer_id)
                if attestation is None:
                    logger.info("Rebalance %s awaiting attestation", request_id)
                    return outcome
                record = self.transfers.complete(message or record.message, attestation)

            if self.get_outcome(request_id).cancel_requested:
                return self._transition(
                    request_id,
                    RebalanceStatus.CANCELLED,
                    error=(
                        f"cancelled in flight; {record.net_amount} held on domain "
                        f"{record.destination_domain}"
                    ),
                )

            with self._accounts.hold(request.account):
                self.ledger.debit(record.destination_domain, request.account, record.net_amount)
                try:
                    shares = self._venue_call(
                        request.target_venue, "deposit", record.net_amount
                    )
                except ExecutionFailure as exc:
                    self.ledger.credit(
                        record.destination_domain, request.account, record.net_amount
                    )
                    logger.warning("Rebalance %s target deposit failed: %s", request_id, exc)
                    return self._transition(
                        request_id,
                        RebalanceStatus.FAILED,
                        success=False,
                        amount_executed=0,
                        error=f"{exc}; funds held on domain {record.destination_domain}",
                    )
                self.positions.add(request.account, request.target_venue, shares)
            return self._transition(
                request_id,
                RebalanceStatus.COMPLETED,
                success=True,
                amount_executed=request.amount,
            )

    def evaluate_and_maybe_rebalance(
        self,
        account: str,
        current_venue: str,
        caller: Optional[str] = None,
        amount: Optional[int] = None,
        fast_transfer: bool = False,
    ) -> Tuple[OpportunityDecision, Optional[RebalanceOutcome]]:
        """Trigger entry point; safe to call any number of times per event."""
        self.pause.ensure_active()
        if self.trigger_address and caller != self.trigger_address:
            raise Unauthorized(f"{caller} is not the configured trigger")
        strategy = self.get_strategy(account)
        if strategy is None:
            raise ValidationError(f"no strategy for account {account}")
        if not strategy.auto_rebalance:
            return OpportunityDecision(False, "auto_rebalance_disabled", current_venue), None

        amount = self.position_value(account, current_venue) if amount is None else amount
        decision = self.engine.evaluate(strategy, current_venue, amount)
        if not decision.should_rebalance:
            logger.info(
                "No rebalance for %s from %s: %s", account, current_venue, decision.reason
            )
            return decision, None

        request = RebalanceRequest.create(
            account=account,
            source_venue=current_venue,
            target_venue=decision.target_venue,
            amount=decision.amount,
            deadline=self.clock.now() + DEFAULT_TRIGGER_DEADLINE_S,
            max_slippage_bps=strategy.max_slippage_bps,
            fast_transfer=fast_transfer and decision.cross_domain,
        )
        try:
            outcome = self.execute_rebalance(request)
        except (LimitExceeded, ValidationError) as exc:
            logger.info("Triggered rebalance for %s skipped: %s", account, exc)
            return decision, None
        return decision, outcome

    def get_outcome(self, request_id: str) -> RebalanceOutcome:
        with self._lock:
            outcome = self._outcomes.get(request_id)
        if outcome is None:
            raise KeyError(f"Rebalance not found: {request_id}")
        return outcome

    def daily_total(self, account: str, venue_id: str) -> int:
        return self._daily.total(account, venue_id, self.clock.now())

    def _context(
        self, request: RebalanceRequest, strategy: AccountStrategy, now: int
    ) -> RebalanceContext:
        source = self.venues.get(request.source_venue)
        target = self.venues.get(request.target_venue)
        transfer_total = 0
        if source and target and source.domain_id != target.domain_id:
            transfer_total = self.transfers.daily_total(request.account, target.domain_id)
        return RebalanceContext(
            request=request,
            strategy=strategy,
            source=source,
            target=target,
            source_domain=self.domains.get(source.domain_id) if source else None,
            target_domain=self.domains.get(target.domain_id) if target else None,
            now=now,
            transfer_daily_total=transfer_total,
        )

    def _move_within_domain(self, request: RebalanceRequest) -> None:
        amount_out = self._withdraw_position(request)
        try:
            shares = self._venue_call(request.target_venue, "deposit", amount_out)
        except ExecutionFailure:
            self._restore_position(request, amount_out)
            raise
        self.positions.add(request.account, request.target_venue, shares)

    def _move_across_domains(
        self, request: RebalanceRequest, source_domain: int, target_domain: int
    ) -> TransferRecord:
        amount_out = self._withdraw_position(request)
        self.ledger.credit(source_domain, request.account, amount_out)
        params = TransferParams(
            sender=request.account,
            recipient=request.account,
            source_domain=source_domain,
            destination_domain=target_domain,
            amount=amount_out,
        )
        try:
            if request.fast_transfer:
                return self.transfers.initiate_fast(params)
            return self.transfers.initiate(params)
        except YieldIntelError as exc:
            self.ledger.debit(source_domain, request.account, amount_out)
            self._restore_position(request, amount_out)
            raise ExecutionFailure(f"transfer initiation failed: {exc}") from exc

    def _withdraw_position(self, request: RebalanceRequest) -> int:
        shares = self._venue_call(request.source_venue, "convert_to_shares", request.amount)
        held = self.positions.shares(request.account, request.source_venue)
        if shares <= 0 or shares > held:
            raise ExecutionFailure(
                f"{request.account} holds {held} shares of {request.source_venue}, "
                f"needs {shares}"
            )
        ok, max_shares = self._venue_call(request.source_venue, "can_withdraw", shares)
        if not ok:
            raise ExecutionFailure(
                f"{request.source_venue} can release {max_shares} shares, needs {shares}"
            )

        self.positions.remove(request.account, request.source_venue, shares)
        try:
            amount_out = self._venue_call(request.source_venue, "withdraw", shares)
        except ExecutionFailure:
            self.positions.add(request.account, request.source_venue, shares)
            raise

        floor = request.amount * (BPS - request.max_slippage_bps) // BPS
        if amount_out < floor:
            self._restore_position(request, amount_out)
            raise ExecutionFailure(
                f"withdrew {amount_out} from {request.source_venue}, below slippage floor {floor}"
            )
        return amount_out

    def _restore_position(self, request: RebalanceRequest, amount: int) -> None:
        shares = self._venue_call(request.source_venue, "deposit", amount)
        self.positions.add(request.account, request.source_venue, shares)

    def _venue_call(self, venue_id: str, operation: str, *args: Any) -> Any:
        adapter = self.venues.adapter(venue_id)
        try:
            return getattr(adapter, operation)(*args)
        except ExecutionFailure:
            raise
        except Exception as exc:
            raise ExecutionFailure(f"{venue_id}.{operation} failed: {exc}") from exc

    def get_request(self, request_id: str) -> RebalanceRequest:
        with self._lock:
            request = self._requests.get(request_id)
        if request is None:
            raise ValidationError(f"unknown request {request_id}")
        return request

    def _mark_cancel_requested(self, request_id: str) -> RebalanceOutcome:
        with self._lock:
            updated = self._outcomes[request_id].with_status(
                self._outcomes[request_id].status,
                self.clock.now(),
                cancel_requested=True,
            )
            self._outcomes[request_id] = updated
        logger.info("Cancel requested for in-flight rebalance %s", request_id)
        return updated

    def _release(self, request_id: str) -> None:
        with self._lock:
            reservation = self._reservations.pop(request_id, None)
            account = self._outcomes[request_id].account
        if reservation is not None:
            scope, bucket, amount = reservation
            self._daily.release(account, scope, bucket, amount)

    def _transition(
        self,
        request_id: str,
        status: RebalanceStatus,
        message: str = "",
        **changes: Any,
    ) -> RebalanceOutcome:
        now = self.clock.now()
        with self._lock:
            current = self._outcomes[request_id]
            updated = current.with_status(status, now, **changes)
            self._outcomes[request_id] = updated
        self.journal.record_rebalance(updated, current.status, message)
        logger.info(
            "Rebalance %s: %s -> %s %s",
            request_id,
            current.status.value,
            status.value,
            message or updated.error or "",
        )
        return updated
