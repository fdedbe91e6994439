"""Run evaluate-and-maybe-rebalance cycles for configured accounts."""

from __future__ import annotations

import argparse
import json
import logging
import time
from pathlib import Path
import sys
from typing import Dict, List

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from yield_intel.bootstrap import YieldSystem, build_system, load_registry
from yield_intel.config import settings
from yield_intel.db.migrate import migrate
from yield_intel.models.enums import RebalanceStatus


logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run rebalance loop on schedule.")
    parser.add_argument(
        "--accounts",
        required=True,
        help="JSON file: [{account, venue, deposit, strategy}, ...]",
    )
    parser.add_argument(
        "--registry",
        default=None,
        help="JSON file with domains/venues/fees (default: built-in set).",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=300,
        help="Loop interval seconds (default: 300).",
    )
    parser.add_argument(
        "--fast",
        action="store_true",
        help="Use fast transfers for cross-domain moves.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle and exit.",
    )
    return parser.parse_args()


def load_accounts(path: str) -> List[dict]:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def seed_accounts(system: YieldSystem, accounts: List[dict]) -> Dict[str, str]:
    """Set strategies and opening positions; returns account -> current venue."""
    current: Dict[str, str] = {}
    orchestrator = system.orchestrator
    for item in accounts:
        account = item["account"]
        venue_id = item["venue"]
        orchestrator.set_strategy(account, item.get("strategy", {}))
        deposit = int(item.get("deposit", 0))
        if deposit > 0:
            info = system.venues.get(venue_id)
            if info is None:
                logger.warning("Unknown venue %s for %s; skipping deposit", venue_id, account)
                continue
            system.ledger.credit(info.domain_id, account, deposit)
            orchestrator.deposit(account, venue_id, deposit)
        current[account] = venue_id
    return current


def finalize_pending(
    system: YieldSystem, pending: Dict[str, str], current: Dict[str, str]
) -> None:
    system.transfers.settle_fast_transfers()
    for request_id, account in list(pending.items()):
        outcome = system.orchestrator.finalize_cross_domain(request_id)
        if outcome.status == RebalanceStatus.EXECUTING:
            continue
        pending.pop(request_id)
        logger.info("Cross-domain rebalance %s -> %s", request_id, outcome.status.value)
        if outcome.status == RebalanceStatus.COMPLETED:
            request = system.orchestrator.get_request(request_id)
            current[account] = request.target_venue


def run_cycle(
    args: argparse.Namespace,
    system: YieldSystem,
    current: Dict[str, str],
    pending: Dict[str, str],
) -> None:
    finalize_pending(system, pending, current)
    busy = set(pending.values())
    for account, venue_id in current.items():
        if account in busy:
            logger.info("Account %s has a transfer in flight; skipping", account)
            continue
        decision, outcome = system.orchestrator.evaluate_and_maybe_rebalance(
            account,
            venue_id,
            caller=settings.trigger_address or None,
            fast_transfer=args.fast,
        )
        logger.info(
            "Decision for %s at %s: %s (%s -> %s, +%s bps)",
            account,
            venue_id,
            decision.reason,
            venue_id,
            decision.target_venue,
            decision.apy_improvement_bps,
        )
        if decision.allocations:
            logger.info(
                "Optimal split for %s: %s",
                account,
                ", ".join(f"{plan.venue_id}={plan.amount}" for plan in decision.allocations),
            )
        if outcome is None:
            continue
        if outcome.status == RebalanceStatus.COMPLETED:
            current[account] = decision.target_venue
        elif outcome.status == RebalanceStatus.EXECUTING:
            pending[outcome.request_id] = account
        else:
            logger.warning("Rebalance %s for %s: %s", outcome.request_id, account, outcome.error)


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    args = parse_args()
    migrate()
    system = build_system(load_registry(args.registry))
    current = seed_accounts(system, load_accounts(args.accounts))
    pending: Dict[str, str] = {}

    try:
        while True:
            try:
                run_cycle(args, system, current, pending)
            except Exception as exc:
                logger.exception("Rebalance cycle error: %s", exc)
            if args.once:
                break
            time.sleep(args.interval)
    finally:
        system.shutdown()


if __name__ == "__main__":
    main()
