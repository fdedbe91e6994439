"""Wire registries, ledgers and services into one running system."""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from yield_intel.admin import AdminConsole
from yield_intel.config import USDC_UNIT, settings
from yield_intel.data.oracle import HttpYieldOracle, YieldOracle
from yield_intel.data.service import YieldDataService
from yield_intel.db.journal import LifecycleJournal
from yield_intel.decision.engine import OpportunityEngine
from yield_intel.execution.orchestrator import RebalanceOrchestrator
from yield_intel.ledger import BalanceLedger
from yield_intel.models.transfer import DomainInfo
from yield_intel.models.venue import VenueInfo
from yield_intel.performer.performer import TaskPerformer
from yield_intel.transfer.attestation import AttestationService
from yield_intel.transfer.domains import DomainRegistry
from yield_intel.transfer.fees import FeeSchedule
from yield_intel.transfer.manager import CrossDomainTransferManager
from yield_intel.utils.pause import PauseSwitch
from yield_intel.utils.time import Clock, SystemClock
from yield_intel.venues.registry import VenueRegistry
from yield_intel.venues.simulated import SimulatedVenueAdapter


logger = logging.getLogger(__name__)

DEFAULT_REGISTRY: Dict[str, Any] = {
    "domains": [
        {"domain_id": 0, "chain_id": 1, "name": "ethereum", "fast_transfer": True},
        {"domain_id": 3, "chain_id": 42161, "name": "arbitrum", "fast_transfer": True},
        {"domain_id": 6, "chain_id": 8453, "name": "base", "fast_transfer": True},
    ],
    "venues": [
        {
            "venue_id": "aave-v3-eth",
            "name": "Aave",
            "domain_id": 0,
            "apy_bps": 420,
            "total_assets": 1_200_000_000 * USDC_UNIT,
            "utilization_bps": 7_800,
            "audit_quality_bps": 9_000,
        },
        {
            "venue_id": "compound-v3-eth",
            "name": "Compound",
            "domain_id": 0,
            "apy_bps": 390,
            "total_assets": 600_000_000 * USDC_UNIT,
            "utilization_bps": 8_200,
            "audit_quality_bps": 8_500,
        },
        {
            "venue_id": "morpho-base",
            "name": "Morpho",
            "domain_id": 6,
            "apy_bps": 510,
            "total_assets": 150_000_000 * USDC_UNIT,
            "utilization_bps": 8_800,
            "age_days": 400,
            "audit_quality_bps": 8_000,
        },
        {
            "venue_id": "aave-v3-arb",
            "name": "Aave",
            "domain_id": 3,
            "apy_bps": 460,
            "total_assets": 300_000_000 * USDC_UNIT,
            "utilization_bps": 7_400,
            "audit_quality_bps": 9_000,
        },
    ],
}

ADAPTER_FIELDS = (
    "total_assets",
    "utilization_bps",
    "risk_score_bps",
    "capacity",
    "liquidity_bps",
    "age_days",
    "has_audit",
    "audit_quality_bps",
    "has_governance_token",
    "centralization_risk_bps",
    "avg_yield_bps",
    "yield_volatility_bps",
)


@dataclass
class YieldSystem:
    venues: VenueRegistry
    domains: DomainRegistry
    admin: AdminConsole
    ledger: BalanceLedger
    transfers: CrossDomainTransferManager
    orchestrator: RebalanceOrchestrator
    performer: TaskPerformer
    journal: LifecycleJournal

    def shutdown(self) -> None:
        self.transfers.attestations.shutdown(wait=False)


def load_registry(path: Optional[str]) -> Dict[str, Any]:
    if not path:
        return DEFAULT_REGISTRY
    return json.loads(Path(path).read_text(encoding="utf-8"))


def build_system(
    registry: Optional[Dict[str, Any]] = None,
    clock: Optional[Clock] = None,
    oracle: Optional[YieldOracle] = None,
    journal: Optional[LifecycleJournal] = None,
    attestations: Optional[AttestationService] = None,
) -> YieldSystem:
    registry = registry if registry is not None else DEFAULT_REGISTRY
    clock = clock or SystemClock()
    journal = journal or LifecycleJournal()
    if oracle is None and settings.oracle_api_base:
        oracle = HttpYieldOracle(clock=clock)

    venues = VenueRegistry()
    domains = DomainRegistry()
    pause = PauseSwitch()
    fees = FeeSchedule()
    admin = AdminConsole(venues, domains, fees=fees, pause=pause)

    for item in registry.get("domains", []):
        admin.add_domain(
            DomainInfo(
                domain_id=int(item["domain_id"]),
                chain_id=int(item["chain_id"]),
                name=item.get("name", str(item["domain_id"])),
                supported=bool(item.get("supported", True)),
                fast_transfer=bool(item.get("fast_transfer", False)),
                min_transfer=int(item.get("min_transfer", 0)),
                max_transfer=int(item.get("max_transfer", 0)),
            )
        )
    for item in registry.get("fees", []):
        admin.set_fast_fee(int(item["source"]), int(item["destination"]), int(item["bps"]))
    for item in registry.get("venues", []):
        adapter = SimulatedVenueAdapter(
            item["venue_id"],
            int(item["apy_bps"]),
            **{key: item[key] for key in ADAPTER_FIELDS if key in item},
        )
        admin.add_venue(
            VenueInfo(
                venue_id=item["venue_id"],
                name=item.get("name", item["venue_id"]),
                domain_id=int(item["domain_id"]),
                supported=bool(item.get("supported", True)),
                min_amount=int(item.get("min_amount", 0)),
                max_amount=item.get("max_amount"),
            ),
            adapter,
        )

    ledger = BalanceLedger()
    transfers = CrossDomainTransferManager(
        domains,
        ledger,
        attestations=attestations,
        fees=fees,
        clock=clock,
        pause=pause,
        journal=journal,
    )
    engine = OpportunityEngine(
        YieldDataService(venues, oracle=oracle, clock=clock), domains=domains
    )
    orchestrator = RebalanceOrchestrator(
        venues,
        domains,
        ledger=ledger,
        transfers=transfers,
        clock=clock,
        pause=pause,
        journal=journal,
        engine=engine,
    )
    logger.info(
        "System ready: %s domains, %s venues",
        len(domains.list_supported()),
        len(venues.list_supported()),
    )
    return YieldSystem(
        venues=venues,
        domains=domains,
        admin=admin,
        ledger=ledger,
        transfers=transfers,
        orchestrator=orchestrator,
        performer=TaskPerformer(orchestrator),
        journal=journal,
    )
