"""Tests for rebalance orchestration."""

import pytest

from yield_intel.config import USDC_UNIT
from yield_intel.errors import (
    ExecutionFailure,
    IdempotencyViolation,
    LimitExceeded,
    SystemPaused,
    Unauthorized,
    ValidationError,
)
from yield_intel.execution import RebalanceOrchestrator
from yield_intel.models import DomainInfo, RebalanceRequest, RebalanceStatus, VenueInfo
from yield_intel.venues import SimulatedVenueAdapter

from conftest import ALICE, BASE, BOB, ETHEREUM, VENUE_TVL, strategy_fields


AMOUNT = 100_000 * USDC_UNIT
DEADLINE = 10**9


def request(source="alpha", target="beta", amount=AMOUNT, **kwargs):
    kwargs.setdefault("deadline", DEADLINE)
    return RebalanceRequest.create(ALICE, source, target, amount, **kwargs)


def statuses(journal, request_id):
    return [row["to_status"] for row in journal.rebalance_history(request_id)]


class TestStrategy:
    def test_account_can_set_own_strategy(self, orchestrator):
        stored = orchestrator.set_strategy(ALICE, strategy_fields(approved_venues=[" Alpha "]))

        assert stored.approved_venues == frozenset({"alpha"})
        assert orchestrator.get_strategy(ALICE) == stored

    def test_operator_may_set_strategy(self, orchestrator):
        orchestrator.set_strategy(ALICE, strategy_fields(), caller="0xoperator")

        assert orchestrator.get_strategy(ALICE) is not None

    def test_other_account_is_refused(self, orchestrator):
        with pytest.raises(Unauthorized):
            orchestrator.set_strategy(ALICE, strategy_fields(), caller=BOB)
        assert orchestrator.get_strategy(ALICE) is None

    def test_invalid_fields(self, orchestrator):
        with pytest.raises(ValidationError):
            orchestrator.set_strategy(ALICE, strategy_fields(risk_tolerance_bps=20_000))

    def test_overwrite_keeps_last_rebalance_time(self, orchestrator, funded_account, clock):
        clock.set(500)
        orchestrator.execute_rebalance(request())

        orchestrator.set_strategy(ALICE, strategy_fields(min_improvement_bps=10))

        assert orchestrator.get_strategy(ALICE).last_rebalance_time == 500
        assert orchestrator.get_strategy(ALICE).min_improvement_bps == 10


class TestDeposit:
    def test_deposit_creates_position(self, orchestrator, funded_account, adapters):
        assert orchestrator.positions.shares(ALICE, "alpha") == 1_000_000 * USDC_UNIT
        assert orchestrator.position_value(ALICE, "alpha") == 1_000_000 * USDC_UNIT
        assert adapters["alpha"].total_value_locked() == VENUE_TVL + 1_000_000 * USDC_UNIT

    def test_failed_deposit_refunds_ledger(self, orchestrator, adapters, ledger):
        ledger.credit(ETHEREUM, BOB, AMOUNT)
        adapters["alpha"].fail_deposit = True

        with pytest.raises(ExecutionFailure):
            orchestrator.deposit(BOB, "alpha", AMOUNT)
        assert ledger.balance_of(ETHEREUM, BOB) == AMOUNT
        assert orchestrator.positions.shares(BOB, "alpha") == 0


class TestSameDomainRebalance:
    def test_execute_moves_position(self, orchestrator, funded_account, journal):
        rebalance = request()

        outcome = orchestrator.execute_rebalance(rebalance)

        assert outcome.status == RebalanceStatus.COMPLETED
        assert outcome.success
        assert outcome.amount_executed == AMOUNT
        assert outcome.tx_reference
        assert orchestrator.positions.shares(ALICE, "alpha") == 900_000 * USDC_UNIT
        assert orchestrator.position_value(ALICE, "beta") == AMOUNT
        assert orchestrator.daily_total(ALICE, "beta") == AMOUNT
        assert statuses(journal, rebalance.request_id) == [
            "VALIDATED",
            "EXECUTING",
            "COMPLETED",
        ]

    def test_duplicate_submit(self, orchestrator, funded_account):
        rebalance = request()
        orchestrator.submit(rebalance)

        with pytest.raises(IdempotencyViolation):
            orchestrator.submit(rebalance)

    def test_execute_twice(self, orchestrator, funded_account):
        rebalance = request()
        orchestrator.execute_rebalance(rebalance)

        with pytest.raises(ValidationError):
            orchestrator.execute(rebalance.request_id)

    def test_unapproved_target(self, orchestrator, funded_account, journal):
        orchestrator.set_strategy(ALICE, strategy_fields(approved_venues=["alpha", "beta"]))

        with pytest.raises(ValidationError):
            orchestrator.submit(request(target="gamma"))
        assert [row["rule"] for row in journal.risk_blocks(ALICE)] == ["approved_venue"]

    def test_same_source_and_target(self, orchestrator, funded_account):
        with pytest.raises(ValidationError):
            orchestrator.submit(request(target="alpha"))

    def test_slippage_above_account_cap(self, orchestrator, funded_account):
        with pytest.raises(ValidationError):
            orchestrator.submit(request(max_slippage_bps=51))

    def test_amount_below_minimum(self, orchestrator, funded_account):
        with pytest.raises(ValidationError):
            orchestrator.submit(request(amount=USDC_UNIT))

    def test_no_strategy(self, orchestrator):
        with pytest.raises(ValidationError):
            orchestrator.submit(RebalanceRequest.create(BOB, "alpha", "beta", AMOUNT, DEADLINE))

    def test_target_capacity(self, orchestrator, funded_account, admin):
        admin.add_venue(
            VenueInfo(venue_id="capped", name="Capped", domain_id=ETHEREUM),
            SimulatedVenueAdapter(
                "capped", 600, total_assets=VENUE_TVL, capacity=VENUE_TVL + AMOUNT // 2
            ),
        )
        orchestrator.set_strategy(
            ALICE, strategy_fields(approved_venues=["alpha", "capped"])
        )

        with pytest.raises(LimitExceeded):
            orchestrator.submit(request(target="capped"))

    def test_deadline_passes_between_submit_and_execute(
        self, orchestrator, funded_account, clock
    ):
        rebalance = request(deadline=10)
        orchestrator.submit(rebalance)
        clock.set(11)

        with pytest.raises(ValidationError):
            orchestrator.execute(rebalance.request_id)
        assert orchestrator.get_outcome(rebalance.request_id).status == RebalanceStatus.FAILED
        assert orchestrator.daily_total(ALICE, "beta") == 0


class TestLimits:
    def test_cooldown(self, orchestrator, funded_account, clock, journal):
        orchestrator.execute_rebalance(request())

        clock.set(3_599)
        with pytest.raises(LimitExceeded):
            orchestrator.submit(request(source="beta", target="alpha", amount=10 * USDC_UNIT))
        assert "cooldown" in [row["rule"] for row in journal.risk_blocks(ALICE)]

        clock.set(3_600)
        outcome = orchestrator.execute_rebalance(
            request(source="beta", target="alpha", amount=10 * USDC_UNIT)
        )
        assert outcome.status == RebalanceStatus.COMPLETED

    def test_daily_cap_per_target(
        self, adapters, venues, domains, ledger, transfers, clock, pause, journal
    ):
        orchestrator = RebalanceOrchestrator(
            venues,
            domains,
            ledger=ledger,
            transfers=transfers,
            clock=clock,
            pause=pause,
            journal=journal,
            daily_cap=150_000 * USDC_UNIT,
            cooldown_s=0,
            trigger_address="",
        )
        orchestrator.set_strategy(ALICE, strategy_fields())
        ledger.credit(ETHEREUM, ALICE, 1_000_000 * USDC_UNIT)
        orchestrator.deposit(ALICE, "alpha", 1_000_000 * USDC_UNIT)

        orchestrator.execute_rebalance(request())
        with pytest.raises(LimitExceeded):
            orchestrator.submit(request())
        assert orchestrator.daily_total(ALICE, "beta") == AMOUNT

        outcome = orchestrator.execute_rebalance(request(source="beta", target="alpha"))
        assert outcome.status == RebalanceStatus.COMPLETED

        clock.advance(86_400)
        assert orchestrator.execute_rebalance(request()).status == RebalanceStatus.COMPLETED

    def test_paused(self, orchestrator, funded_account, admin):
        admin.pause_system()

        with pytest.raises(SystemPaused):
            orchestrator.submit(request())
        with pytest.raises(SystemPaused):
            orchestrator.set_strategy(ALICE, strategy_fields())
        with pytest.raises(SystemPaused):
            orchestrator.evaluate_and_maybe_rebalance(ALICE, "alpha")

        admin.unpause_system()
        assert orchestrator.execute_rebalance(request()).status == RebalanceStatus.COMPLETED


class TestFailures:
    @pytest.fixture
    def failing_target(self, admin, orchestrator):
        adapter = SimulatedVenueAdapter("delta", 600, total_assets=VENUE_TVL)
        adapter.fail_deposit = True
        admin.add_venue(VenueInfo(venue_id="delta", name="Delta", domain_id=ETHEREUM), adapter)
        return adapter

    def test_failure_is_captured_and_position_restored(
        self, orchestrator, funded_account, failing_target, journal
    ):
        orchestrator.set_strategy(ALICE, strategy_fields(approved_venues=["alpha", "delta"]))
        rebalance = request(target="delta")

        outcome = orchestrator.execute_rebalance(rebalance)

        assert outcome.status == RebalanceStatus.FAILED
        assert not outcome.success
        assert outcome.amount_executed == 0
        assert "deposit rejected" in outcome.error
        assert orchestrator.positions.shares(ALICE, "alpha") == 1_000_000 * USDC_UNIT
        assert orchestrator.positions.shares(ALICE, "delta") == 0
        assert orchestrator.daily_total(ALICE, "delta") == 0
        assert statuses(journal, rebalance.request_id)[-1] == "FAILED"

    def test_withdraw_beyond_position(self, orchestrator, funded_account):
        outcome = orchestrator.execute_rebalance(request(amount=2_000_000 * USDC_UNIT))

        assert outcome.status == RebalanceStatus.FAILED
        assert orchestrator.positions.shares(ALICE, "alpha") == 1_000_000 * USDC_UNIT

    def test_batch_captures_failures_without_aborting(
        self, orchestrator, funded_account, failing_target, clock
    ):
        orchestrator.set_strategy(
            ALICE, strategy_fields(approved_venues=["alpha", "beta", "delta"])
        )
        orchestrator.risk_manager.rules[:] = [
            rule for rule in orchestrator.risk_manager.rules if rule.name != "cooldown"
        ]

        outcomes = orchestrator.batch_rebalance(
            [request(target="delta"), request(target="beta")]
        )

        assert [item.status for item in outcomes] == [
            RebalanceStatus.FAILED,
            RebalanceStatus.COMPLETED,
        ]

    def test_batch_aborts_on_rejected_request(self, orchestrator, funded_account):
        orchestrator.set_strategy(ALICE, strategy_fields(approved_venues=["alpha", "beta"]))
        first = request()
        rejected = request(target="gamma")
        never_run = request(source="beta", target="alpha")

        with pytest.raises(ValidationError):
            orchestrator.batch_rebalance([first, rejected, never_run])

        assert orchestrator.get_outcome(first.request_id).status == RebalanceStatus.COMPLETED
        with pytest.raises(KeyError):
            orchestrator.get_outcome(never_run.request_id)


class TestCancel:
    def test_cancel_validated(self, orchestrator, funded_account):
        rebalance = request()
        orchestrator.submit(rebalance)

        outcome = orchestrator.cancel(rebalance.request_id)

        assert outcome.status == RebalanceStatus.CANCELLED
        assert orchestrator.daily_total(ALICE, "beta") == 0
        with pytest.raises(ValidationError):
            orchestrator.cancel(rebalance.request_id)
        with pytest.raises(ValidationError):
            orchestrator.execute(rebalance.request_id)
        assert orchestrator.positions.shares(ALICE, "alpha") == 1_000_000 * USDC_UNIT

    def test_cancel_unknown(self, orchestrator):
        with pytest.raises(ValidationError):
            orchestrator.cancel("missing")

    def test_cancel_completed(self, orchestrator, funded_account):
        rebalance = request()
        orchestrator.execute_rebalance(rebalance)

        with pytest.raises(ValidationError):
            orchestrator.cancel(rebalance.request_id)


class TestCrossDomainRebalance:
    def test_standard_transfer_then_finalize(
        self, orchestrator, funded_account, attestations, transfers, ledger, journal
    ):
        rebalance = request(target="gamma")

        outcome = orchestrator.execute_rebalance(rebalance)

        assert outcome.status == RebalanceStatus.EXECUTING
        assert outcome.transfer_id
        assert outcome.fees_paid == 0
        assert ledger.balance_of(ETHEREUM, ALICE) == 0

        # no attestation yet
        assert orchestrator.finalize_cross_domain(rebalance.request_id) == outcome

        record = transfers.get_transfer(outcome.transfer_id)
        attestations.attest(record.transfer_id, record.message)
        final = orchestrator.finalize_cross_domain(rebalance.request_id)

        assert final.status == RebalanceStatus.COMPLETED
        assert final.amount_executed == AMOUNT
        assert orchestrator.positions.shares(ALICE, "gamma") == AMOUNT
        assert ledger.balance_of(BASE, ALICE) == 0
        assert statuses(journal, rebalance.request_id) == [
            "VALIDATED",
            "EXECUTING",
            "EXECUTING",
            "COMPLETED",
        ]

    def test_fast_transfer_waits_for_settlement(
        self, orchestrator, funded_account, clock
    ):
        rebalance = request(target="gamma", fast_transfer=True)

        outcome = orchestrator.execute_rebalance(rebalance)
        fee = AMOUNT * 50 // 10_000

        assert outcome.status == RebalanceStatus.EXECUTING
        assert outcome.fees_paid == fee
        with pytest.raises(LimitExceeded):
            orchestrator.finalize_cross_domain(rebalance.request_id)

        clock.advance(20)
        final = orchestrator.finalize_cross_domain(rebalance.request_id)

        assert final.status == RebalanceStatus.COMPLETED
        assert orchestrator.positions.shares(ALICE, "gamma") == AMOUNT - fee

    def test_cross_domain_disabled(self, orchestrator, funded_account):
        orchestrator.set_strategy(ALICE, strategy_fields(cross_domain_enabled=False))

        with pytest.raises(ValidationError):
            orchestrator.submit(request(target="gamma"))

    def test_cancel_in_flight_keeps_funds_on_destination(
        self, orchestrator, funded_account, attestations, transfers, ledger
    ):
        rebalance = request(target="gamma")
        outcome = orchestrator.execute_rebalance(rebalance)

        cancelled = orchestrator.cancel(rebalance.request_id)
        assert cancelled.status == RebalanceStatus.EXECUTING
        assert cancelled.cancel_requested

        record = transfers.get_transfer(outcome.transfer_id)
        attestations.attest(record.transfer_id, record.message)
        final = orchestrator.finalize_cross_domain(rebalance.request_id)

        assert final.status == RebalanceStatus.CANCELLED
        assert ledger.balance_of(BASE, ALICE) == AMOUNT
        assert orchestrator.positions.shares(ALICE, "gamma") == 0

    def test_destination_maximum_rejected_before_execution(
        self, orchestrator, funded_account, admin, journal
    ):
        admin.add_domain(
            DomainInfo(
                domain_id=BASE,
                chain_id=8453,
                name="base",
                fast_transfer=True,
                max_transfer=50_000 * USDC_UNIT,
            )
        )
        rebalance = request(target="gamma")

        with pytest.raises(ValidationError, match="transfer_bounds"):
            orchestrator.execute_rebalance(rebalance)

        assert orchestrator.get_strategy(ALICE).last_rebalance_time is None
        assert orchestrator.positions.shares(ALICE, "alpha") == 1_000_000 * USDC_UNIT
        assert orchestrator.daily_total(ALICE, "gamma") == 0
        assert journal.risk_blocks(ALICE)[-1]["rule"] == "transfer_bounds"

    def test_destination_minimum_rejected_before_execution(
        self, orchestrator, funded_account, admin
    ):
        admin.add_domain(
            DomainInfo(
                domain_id=BASE,
                chain_id=8453,
                name="base",
                min_transfer=200_000 * USDC_UNIT,
            )
        )

        with pytest.raises(ValidationError, match="below domain minimum"):
            orchestrator.submit(request(target="gamma"))

    def test_destination_daily_transfer_cap(
        self, orchestrator, funded_account, admin, transfers, clock
    ):
        admin.add_domain(
            DomainInfo(
                domain_id=BASE,
                chain_id=8453,
                name="base",
                fast_transfer=True,
                max_transfer=150_000 * USDC_UNIT,
            )
        )
        first = orchestrator.execute_rebalance(request(target="gamma"))
        assert first.status == RebalanceStatus.EXECUTING
        assert transfers.daily_total(ALICE, BASE) == AMOUNT

        clock.advance(3600)
        with pytest.raises(LimitExceeded, match="transfer_daily_cap"):
            orchestrator.submit(request(target="gamma"))

        assert orchestrator.get_strategy(ALICE).last_rebalance_time == 0

    def test_finalize_without_transfer(self, orchestrator, funded_account):
        rebalance = request()
        orchestrator.submit(rebalance)

        with pytest.raises(ValidationError):
            orchestrator.finalize_cross_domain(rebalance.request_id)


class TestEvaluate:
    def test_moves_to_better_venue(self, orchestrator, funded_account):
        orchestrator.set_strategy(ALICE, strategy_fields(approved_venues=["alpha", "beta"]))

        decision, outcome = orchestrator.evaluate_and_maybe_rebalance(ALICE, "alpha")

        assert decision.should_rebalance
        assert decision.reason == "ok"
        assert decision.target_venue == "beta"
        assert decision.apy_improvement_bps == 50
        # 1750 composite -> 9694 bps allocation limit
        assert decision.amount == 969_400 * USDC_UNIT
        # equal risk, so the split follows yield: weights 436 and 388
        assert [(plan.venue_id, plan.amount) for plan in decision.allocations] == [
            ("beta", 529_126_213_592),
            ("alpha", 470_873_786_407),
        ]
        assert outcome.status == RebalanceStatus.COMPLETED
        assert orchestrator.position_value(ALICE, "beta") == 969_400 * USDC_UNIT

    def test_improvement_below_threshold(self, orchestrator, funded_account, adapters):
        orchestrator.set_strategy(ALICE, strategy_fields(approved_venues=["alpha", "beta"]))
        adapters["beta"].apy_bps = 410

        decision, outcome = orchestrator.evaluate_and_maybe_rebalance(ALICE, "alpha")

        assert not decision.should_rebalance
        assert decision.reason == "improvement_below_threshold"
        assert decision.target_venue == "beta"
        assert outcome is None

    def test_not_worthwhile(self, orchestrator, funded_account, adapters):
        orchestrator.set_strategy(ALICE, strategy_fields(approved_venues=["alpha", "beta"]))
        adapters["beta"].apy_bps = 300

        decision, outcome = orchestrator.evaluate_and_maybe_rebalance(ALICE, "alpha")

        assert decision.reason == "not_worthwhile"
        assert outcome is None

    def test_risk_tolerance_excludes_candidates(self, orchestrator, funded_account):
        orchestrator.set_strategy(ALICE, strategy_fields(risk_tolerance_bps=1_000))

        decision, outcome = orchestrator.evaluate_and_maybe_rebalance(ALICE, "alpha")

        assert decision.reason == "no_candidates"
        assert outcome is None

    def test_cross_domain_candidate(self, orchestrator, funded_account):
        decision, outcome = orchestrator.evaluate_and_maybe_rebalance(ALICE, "alpha")

        assert decision.target_venue == "gamma"
        assert decision.target_domain == BASE
        assert decision.cross_domain
        assert outcome.status == RebalanceStatus.EXECUTING
        assert outcome.transfer_id

    def test_auto_rebalance_disabled(self, orchestrator, funded_account):
        orchestrator.set_strategy(ALICE, strategy_fields(auto_rebalance=False))

        decision, outcome = orchestrator.evaluate_and_maybe_rebalance(ALICE, "alpha")

        assert decision.reason == "auto_rebalance_disabled"
        assert outcome is None

    def test_no_position(self, orchestrator, adapters):
        orchestrator.set_strategy(BOB, strategy_fields())

        decision, outcome = orchestrator.evaluate_and_maybe_rebalance(BOB, "alpha")

        assert decision.reason == "no_position"
        assert outcome is None

    def test_cooldown_skips_trigger(self, orchestrator, funded_account):
        orchestrator.set_strategy(ALICE, strategy_fields(approved_venues=["alpha", "beta"]))
        orchestrator.execute_rebalance(request(amount=10 * USDC_UNIT))

        decision, outcome = orchestrator.evaluate_and_maybe_rebalance(ALICE, "alpha")

        assert decision.should_rebalance
        assert outcome is None

    def test_trigger_address(self, orchestrator, funded_account):
        orchestrator.trigger_address = "0xtrigger"

        with pytest.raises(Unauthorized):
            orchestrator.evaluate_and_maybe_rebalance(ALICE, "alpha", caller=BOB)

        decision, _ = orchestrator.evaluate_and_maybe_rebalance(
            ALICE, "alpha", caller="0xtrigger"
        )
        assert decision.reason == "ok"
