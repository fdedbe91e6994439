"""Cross-domain transfer lifecycle.

Standard path: INITIATED -> ATTESTED -> COMPLETED, attestation issued
asynchronously. Fast path: the attestation is issued inline and the
transfer completes once a short settlement delay has passed, for a fee.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional, Set

from yield_intel.config import settings
from yield_intel.db.journal import LifecycleJournal
from yield_intel.errors import (
    IdempotencyViolation,
    InsufficientBalance,
    LimitExceeded,
    ValidationError,
)
from yield_intel.ledger import BalanceLedger, DailyAggregate
from yield_intel.models.enums import TransferStatus
from yield_intel.models.transfer import (
    DomainInfo,
    TransferMessage,
    TransferParams,
    TransferRecord,
)
from yield_intel.transfer.attestation import AttestationResult, AttestationService
from yield_intel.transfer.domains import DomainRegistry
from yield_intel.transfer.fees import FeeSchedule
from yield_intel.utils.locks import SingleFlight
from yield_intel.utils.pause import PauseSwitch
from yield_intel.utils.time import Clock, SystemClock


logger = logging.getLogger(__name__)

FEE_COLLECTOR = "fee_collector"


class CrossDomainTransferManager:
    """Own transfer records, pending sets, escrow and completion."""

    def __init__(
        self,
        domains: DomainRegistry,
        ledger: BalanceLedger,
        attestations: Optional[AttestationService] = None,
        fees: Optional[FeeSchedule] = None,
        clock: Optional[Clock] = None,
        pause: Optional[PauseSwitch] = None,
        journal: Optional[LifecycleJournal] = None,
        fast_settlement_delay_s: Optional[int] = None,
        fee_collector: str = FEE_COLLECTOR,
    ) -> None:
        self.domains = domains
        self.ledger = ledger
        self.attestations = attestations or AttestationService()
        self.fees = fees or FeeSchedule()
        self.clock = clock or SystemClock()
        self.pause = pause or PauseSwitch()
        self.journal = journal or LifecycleJournal()
        self.fast_settlement_delay_s = (
            fast_settlement_delay_s
            if fast_settlement_delay_s is not None
            else settings.fast_settlement_delay_s
        )
        self.fee_collector = fee_collector
        self._records: Dict[str, TransferRecord] = {}
        self._history: Dict[str, List[str]] = {}
        self._pending: Dict[str, Set[str]] = {}
        self._daily = DailyAggregate()
        self._nonce = 0
        self._lock = threading.Lock()
        self._flight = SingleFlight("transfer completion")
        self.attestations.subscribe(self._on_attested)

    def initiate(self, params: TransferParams) -> TransferRecord:
        return self._initiate(params, fast=False)

    def initiate_fast(self, params: TransferParams) -> TransferRecord:
        return self._initiate(params, fast=True)

    def complete(self, message: bytes, attestation: bytes) -> TransferRecord:
        """Release funds for an attested transfer exactly once."""
        self.pause.ensure_active()
        decoded = TransferMessage.decode(message)
        transfer_id = decoded.transfer_id
        with self._flight.enter(transfer_id):
            record = self._get_record(transfer_id)
            if record is None:
                raise ValidationError(f"unknown transfer {transfer_id}")
            if record.completed:
                raise IdempotencyViolation(f"transfer {transfer_id} already completed")
            if record.message != message:
                raise ValidationError(f"message does not match transfer {transfer_id}")
            now = self.clock.now()
            if record.fast and record.settles_at is not None and now < record.settles_at:
                raise LimitExceeded(
                    f"fast transfer {transfer_id} settles at {record.settles_at}"
                )
            if not self.attestations.verify(transfer_id, attestation):
                raise ValidationError(f"attestation mismatch for {transfer_id}")

            # state transition strictly before funds leave escrow
            with self._lock:
                current = self._records[transfer_id]
                if current.completed:
                    raise IdempotencyViolation(f"transfer {transfer_id} already completed")
                completed = current.with_attestation(attestation.hex()).with_completion(now)
                self._records[transfer_id] = completed
                self._pending.get(completed.sender, set()).discard(transfer_id)

            self.ledger.credit(
                completed.destination_domain, completed.recipient, completed.net_amount
            )
            self.journal.record_transfer(completed, now)
            logger.info(
                "Transfer completed: %s %s -> %s amount=%s",
                transfer_id,
                completed.source_domain,
                completed.destination_domain,
                completed.net_amount,
            )
            return completed

    def settle_fast_transfers(self) -> List[TransferRecord]:
        """Complete every fast transfer whose settlement delay has elapsed."""
        now = self.clock.now()
        with self._lock:
            due = [
                record
                for record in self._records.values()
                if record.fast
                and not record.completed
                and record.settles_at is not None
                and record.settles_at <= now
            ]
        settled: List[TransferRecord] = []
        for record in due:
            attestation = self.attestations.get(record.transfer_id)
            if attestation is None:
                continue
            try:
                settled.append(self.complete(record.message, attestation))
            except IdempotencyViolation:
                logger.info("Fast transfer %s settled concurrently", record.transfer_id)
        return settled

    def get_transfer(self, transfer_id: str) -> TransferRecord:
        record = self._get_record(transfer_id)
        if record is None:
            raise KeyError(f"Transfer not found: {transfer_id}")
        return record

    def get_attestation(self, transfer_id: str) -> Optional[bytes]:
        return self.attestations.get(transfer_id)

    def wait_for_attestation(
        self,
        transfer_id: str,
        timeout_s: Optional[float] = None,
        poll_interval_s: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> AttestationResult:
        return self.attestations.wait(
            transfer_id, timeout_s=timeout_s, poll_interval_s=poll_interval_s, cancel=cancel
        )

    def history(self, sender: str) -> List[TransferRecord]:
        with self._lock:
            return [self._records[tid] for tid in self._history.get(sender, [])]

    def pending(self, sender: str) -> List[TransferRecord]:
        with self._lock:
            ids = self._pending.get(sender, set())
            return sorted(
                (self._records[tid] for tid in ids), key=lambda record: record.created_at
            )

    def daily_total(self, sender: str, destination_domain: int) -> int:
        return self._daily.total(sender, destination_domain, self.clock.now())

    def domain_for_chain(self, chain_id: int) -> int:
        return self.domains.domain_for_chain(chain_id)

    def chain_for_domain(self, domain_id: int) -> int:
        return self.domains.chain_for_domain(domain_id)

    def _initiate(self, params: TransferParams, fast: bool) -> TransferRecord:
        self.pause.ensure_active()
        source, destination = self._validate(params, fast)
        now = self.clock.now()

        bucket = None
        if destination.max_transfer:
            bucket = self._daily.reserve(
                params.sender,
                destination.domain_id,
                now,
                params.amount,
                destination.max_transfer,
            )
        try:
            self.ledger.debit(source.domain_id, params.sender, params.amount)
        except InsufficientBalance:
            if bucket is not None:
                self._daily.release(
                    params.sender, destination.domain_id, bucket, params.amount
                )
            raise

        fee = 0
        if fast:
            fee = self.fees.compute_fee(params.amount, source.domain_id, destination.domain_id)
            if fee:
                self.ledger.credit(source.domain_id, self.fee_collector, fee)

        with self._lock:
            nonce = self._nonce
            self._nonce += 1
            message = TransferMessage(
                nonce=nonce,
                timestamp=now,
                sender=params.sender,
                recipient=params.recipient,
                source_domain=source.domain_id,
                destination_domain=destination.domain_id,
                amount=params.amount - fee,
                fast=fast,
            )
            transfer_id = message.transfer_id
            if transfer_id in self._records:
                raise IdempotencyViolation(f"transfer id collision: {transfer_id}")
            record = TransferRecord(
                transfer_id=transfer_id,
                created_at=now,
                source_domain=source.domain_id,
                destination_domain=destination.domain_id,
                amount=params.amount,
                sender=params.sender,
                recipient=params.recipient,
                message=message.encode(),
                fee=fee,
                fast=fast,
                settles_at=now + self.fast_settlement_delay_s if fast else None,
            )
            self._records[transfer_id] = record
            self._history.setdefault(params.sender, []).append(transfer_id)
            self._pending.setdefault(params.sender, set()).add(transfer_id)

        self.journal.record_transfer(record, now)
        logger.info(
            "Transfer initiated: %s %s -> %s amount=%s fee=%s fast=%s",
            transfer_id,
            source.domain_id,
            destination.domain_id,
            params.amount,
            fee,
            fast,
        )
        if fast:
            self.attestations.attest(transfer_id, record.message)
        else:
            self.attestations.request(transfer_id, record.message)
        return self.get_transfer(transfer_id)

    def _validate(self, params: TransferParams, fast: bool) -> tuple[DomainInfo, DomainInfo]:
        if not params.sender or not params.sender.strip():
            raise ValidationError("sender is required")
        if not params.recipient or not params.recipient.strip():
            raise ValidationError("recipient is required")
        if params.amount <= 0:
            raise ValidationError("amount must be positive")
        source = self.domains.require(params.source_domain)
        destination = self.domains.require(params.destination_domain)
        if not source.supported:
            raise ValidationError(f"source domain {source.domain_id} not supported")
        if not destination.supported:
            raise ValidationError(f"destination domain {destination.domain_id} not supported")
        if source.domain_id == destination.domain_id:
            raise ValidationError("source and destination domain are the same")
        if params.amount < destination.min_transfer:
            raise ValidationError(
                f"amount {params.amount} below domain minimum {destination.min_transfer}"
            )
        if destination.max_transfer and params.amount > destination.max_transfer:
            raise ValidationError(
                f"amount {params.amount} above domain maximum {destination.max_transfer}"
            )
        if fast and not destination.fast_transfer:
            raise ValidationError(
                f"domain {destination.domain_id} does not support fast transfer"
            )
        return source, destination

    def _get_record(self, transfer_id: str) -> Optional[TransferRecord]:
        with self._lock:
            return self._records.get(transfer_id)

    def _on_attested(self, transfer_id: str, attestation: bytes) -> None:
        with self._lock:
            record = self._records.get(transfer_id)
            if record is None or record.completed or record.attestation_ref:
                return
            attested = record.with_attestation(attestation.hex())
            self._records[transfer_id] = attested
        if attested.status == TransferStatus.ATTESTED:
            self.journal.record_transfer(attested, self.clock.now())
