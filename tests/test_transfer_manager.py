"""Tests for the cross-domain transfer lifecycle."""

import threading

import pytest

from yield_intel.errors import (
    IdempotencyViolation,
    InsufficientBalance,
    LimitExceeded,
    ReentrantCall,
    SystemPaused,
    UnknownDomain,
    ValidationError,
)
from yield_intel.models import (
    AttestationStatus,
    DomainInfo,
    TransferMessage,
    TransferParams,
    TransferStatus,
)
from yield_intel.utils.locks import SingleFlight

from conftest import ALICE, BASE, BOB, ETHEREUM


AMOUNT = 1_000_000_000


def params(amount=AMOUNT, source=ETHEREUM, destination=BASE, recipient=BOB):
    return TransferParams(
        sender=ALICE,
        recipient=recipient,
        source_domain=source,
        destination_domain=destination,
        amount=amount,
    )


@pytest.fixture
def funded(ledger):
    ledger.credit(ETHEREUM, ALICE, 10 * AMOUNT)
    return ledger


class TestStandardTransfer:
    def test_initiate_escrows_funds(self, transfers, funded):
        record = transfers.initiate(params())

        assert record.status == TransferStatus.INITIATED
        assert record.fee == 0
        assert record.net_amount == AMOUNT
        assert funded.balance_of(ETHEREUM, ALICE) == 9 * AMOUNT
        assert funded.balance_of(BASE, BOB) == 0
        assert [item.transfer_id for item in transfers.pending(ALICE)] == [record.transfer_id]

    def test_attest_then_complete(self, transfers, attestations, funded):
        record = transfers.initiate(params())
        attestation = attestations.attest(record.transfer_id, record.message)

        assert transfers.get_transfer(record.transfer_id).status == TransferStatus.ATTESTED

        completed = transfers.complete(record.message, attestation)

        assert completed.status == TransferStatus.COMPLETED
        assert completed.completed_at == 0
        assert funded.balance_of(BASE, BOB) == AMOUNT
        assert transfers.pending(ALICE) == []
        assert [item.transfer_id for item in transfers.history(ALICE)] == [record.transfer_id]

    def test_complete_is_idempotent(self, transfers, attestations, funded):
        record = transfers.initiate(params())
        attestation = attestations.attest(record.transfer_id, record.message)
        transfers.complete(record.message, attestation)

        with pytest.raises(IdempotencyViolation):
            transfers.complete(record.message, attestation)
        assert funded.balance_of(BASE, BOB) == AMOUNT

    def test_wrong_attestation_is_rejected(self, transfers, attestations, funded):
        record = transfers.initiate(params())
        attestations.attest(record.transfer_id, record.message)

        with pytest.raises(ValidationError):
            transfers.complete(record.message, b"not-the-attestation")
        assert not transfers.get_transfer(record.transfer_id).completed

    def test_complete_before_attestation_is_rejected(self, transfers, attestations, funded):
        record = transfers.initiate(params())

        with pytest.raises(ValidationError):
            transfers.complete(record.message, attestations.sign(record.message))

    def test_tampered_message_is_rejected(self, transfers, attestations, funded):
        record = transfers.initiate(params())
        attestation = attestations.attest(record.transfer_id, record.message)
        decoded = TransferMessage.decode(record.message)
        tampered = TransferMessage(
            nonce=decoded.nonce,
            timestamp=decoded.timestamp,
            sender=decoded.sender,
            recipient="0xmallory",
            source_domain=decoded.source_domain,
            destination_domain=decoded.destination_domain,
            amount=decoded.amount,
        ).encode()

        with pytest.raises(ValidationError):
            transfers.complete(tampered, attestation)

    def test_malformed_message_is_rejected(self, transfers):
        with pytest.raises(ValidationError):
            transfers.complete(b"{not json", b"x")

    def test_transfer_ids_are_unique(self, transfers, funded):
        first = transfers.initiate(params(amount=10))
        second = transfers.initiate(params(amount=10))

        assert first.transfer_id != second.transfer_id

    def test_journal_records_each_transition(self, transfers, attestations, journal, funded):
        record = transfers.initiate(params())
        attestation = attestations.attest(record.transfer_id, record.message)
        transfers.complete(record.message, attestation)

        statuses = [row["status"] for row in journal.transfer_history(record.transfer_id)]
        assert statuses == ["INITIATED", "ATTESTED", "COMPLETED"]


class TestFastTransfer:
    def test_fee_is_deducted(self, transfers, admin, funded, clock):
        assert admin.set_fast_fee(ETHEREUM, BASE, 25) == 25

        record = transfers.initiate_fast(params())

        assert record.fee == 2_500_000
        assert record.net_amount == 997_500_000
        assert record.settles_at == 20
        assert funded.balance_of(ETHEREUM, transfers.fee_collector) == 2_500_000

        clock.advance(20)
        settled = transfers.settle_fast_transfers()

        assert [item.transfer_id for item in settled] == [record.transfer_id]
        assert funded.balance_of(BASE, BOB) == 997_500_000

    def test_fee_is_capped(self, transfers, admin, funded):
        assert admin.set_fast_fee(ETHEREUM, BASE, 500) == 100

        record = transfers.initiate_fast(params())

        assert record.fee == AMOUNT * 100 // 10_000

    def test_default_fee_applies_to_unconfigured_pair(self, transfers, funded):
        record = transfers.initiate_fast(params())

        assert record.fee == AMOUNT * 50 // 10_000

    def test_cannot_complete_before_settlement(self, transfers, attestations, funded, clock):
        record = transfers.initiate_fast(params())
        attestation = attestations.get(record.transfer_id)

        clock.advance(19)
        with pytest.raises(LimitExceeded):
            transfers.complete(record.message, attestation)
        assert transfers.settle_fast_transfers() == []

        clock.advance(1)
        assert transfers.complete(record.message, attestation).completed

    def test_destination_without_fast_support(self, transfers, admin, funded):
        admin.add_domain(DomainInfo(domain_id=7, chain_id=10, name="optimism"))

        with pytest.raises(ValidationError):
            transfers.initiate_fast(params(destination=7))


class TestTransferValidation:
    def test_unknown_domain(self, transfers, funded):
        with pytest.raises(UnknownDomain):
            transfers.initiate(params(destination=99))

    def test_same_domain(self, transfers, funded):
        with pytest.raises(ValidationError):
            transfers.initiate(params(destination=ETHEREUM))

    def test_empty_recipient(self, transfers, funded):
        with pytest.raises(ValidationError):
            transfers.initiate(params(recipient=" "))

    def test_non_positive_amount(self, transfers, funded):
        with pytest.raises(ValidationError):
            transfers.initiate(params(amount=0))

    def test_domain_bounds(self, transfers, admin, funded):
        admin.add_domain(
            DomainInfo(
                domain_id=BASE,
                chain_id=8453,
                name="base",
                min_transfer=100,
                max_transfer=AMOUNT,
            )
        )
        with pytest.raises(ValidationError):
            transfers.initiate(params(amount=99))
        with pytest.raises(ValidationError):
            transfers.initiate(params(amount=AMOUNT + 1))

    def test_daily_cap(self, transfers, admin, funded):
        admin.add_domain(
            DomainInfo(domain_id=BASE, chain_id=8453, name="base", max_transfer=AMOUNT)
        )
        transfers.initiate(params(amount=AMOUNT // 2))
        transfers.initiate(params(amount=AMOUNT // 2))

        with pytest.raises(LimitExceeded):
            transfers.initiate(params(amount=1))
        assert transfers.daily_total(ALICE, BASE) == AMOUNT

    def test_insufficient_balance_releases_daily_total(self, transfers, admin, ledger):
        admin.add_domain(
            DomainInfo(domain_id=BASE, chain_id=8453, name="base", max_transfer=AMOUNT)
        )
        with pytest.raises(InsufficientBalance):
            transfers.initiate(params(amount=10))
        assert transfers.daily_total(ALICE, BASE) == 0

    def test_paused(self, transfers, admin, funded):
        admin.pause_system()

        with pytest.raises(SystemPaused):
            transfers.initiate(params())

        admin.unpause_system()
        assert transfers.initiate(params()).status == TransferStatus.INITIATED

    def test_domain_chain_lookups(self, transfers):
        assert transfers.domain_for_chain(8453) == BASE
        assert transfers.chain_for_domain(ETHEREUM) == 1
        with pytest.raises(UnknownDomain):
            transfers.domain_for_chain(424242)


class TestAttestationWait:
    def test_not_ready(self, transfers, funded):
        record = transfers.initiate(params())

        result = transfers.wait_for_attestation(
            record.transfer_id, timeout_s=0.05, poll_interval_s=0.01
        )

        assert result.status == AttestationStatus.NOT_READY
        assert result.attestation is None

    def test_ready(self, transfers, attestations, funded):
        record = transfers.initiate(params())
        attestation = attestations.attest(record.transfer_id, record.message)

        result = transfers.wait_for_attestation(record.transfer_id, timeout_s=1)

        assert result.ready
        assert result.attestation == attestation

    def test_cancelled(self, transfers, funded):
        record = transfers.initiate(params())
        cancel = threading.Event()
        cancel.set()

        result = transfers.wait_for_attestation(
            record.transfer_id, timeout_s=5, poll_interval_s=1, cancel=cancel
        )

        assert result.status == AttestationStatus.CANCELLED

    def test_asynchronous_issuance(self, admin, domains, ledger, fees, clock, pause, journal):
        from yield_intel.transfer import AttestationService, CrossDomainTransferManager

        service = AttestationService(key="async", auto_attest=True, delay_s=0)
        try:
            manager = CrossDomainTransferManager(
                domains,
                ledger,
                attestations=service,
                fees=fees,
                clock=clock,
                pause=pause,
                journal=journal,
            )
            ledger.credit(ETHEREUM, ALICE, AMOUNT)
            record = manager.initiate(params())

            result = manager.wait_for_attestation(
                record.transfer_id, timeout_s=5, poll_interval_s=0.01
            )

            assert result.ready
            assert manager.complete(record.message, result.attestation).completed
        finally:
            service.shutdown(wait=True)


class TestSingleFlight:
    def test_reentrant_entry_is_refused(self):
        flight = SingleFlight("completion")

        with flight.enter("t-1"):
            assert flight.is_in_flight("t-1")
            with pytest.raises(ReentrantCall):
                with flight.enter("t-1"):
                    pass
            with flight.enter("t-2"):
                pass
        assert not flight.is_in_flight("t-1")
