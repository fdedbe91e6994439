"""
pytest configuration and fixtures

Environment is pinned before yield_intel is imported so the settings
singleton never reads a developer's .env values for these keys.
"""

import os
import sys
import tempfile
from pathlib import Path

import pytest

project_root = Path(__file__).resolve().parent.parent
for path in (project_root / "src", project_root / "scripts"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

_TEST_DB_DIR = tempfile.mkdtemp(prefix="yield_intel_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DB_DIR}/default.db"
os.environ["JOURNAL_ENABLED"] = "true"
os.environ["TRIGGER_ADDRESS"] = ""
os.environ["OPERATOR_ADDRESSES"] = "0xoperator"
os.environ["REBALANCE_COOLDOWN_S"] = "3600"
os.environ["ORACLE_API_BASE"] = ""

from yield_intel.admin import AdminConsole  # noqa: E402
from yield_intel.config import USDC_UNIT  # noqa: E402
from yield_intel.db import LifecycleJournal, migrate  # noqa: E402
from yield_intel.execution import RebalanceOrchestrator  # noqa: E402
from yield_intel.ledger import BalanceLedger  # noqa: E402
from yield_intel.models import DomainInfo, VenueInfo  # noqa: E402
from yield_intel.transfer import (  # noqa: E402
    AttestationService,
    CrossDomainTransferManager,
    DomainRegistry,
    FeeSchedule,
)
from yield_intel.utils import ManualClock, PauseSwitch  # noqa: E402
from yield_intel.venues import SimulatedVenueAdapter, VenueRegistry  # noqa: E402


ALICE = "0xalice"
BOB = "0xbob"
ETHEREUM = 0
BASE = 6
VENUE_TVL = 200_000_000 * USDC_UNIT


@pytest.fixture(autouse=True, scope="session")
def default_database():
    migrate()
    yield


@pytest.fixture
def journal(tmp_path):
    database_url = f"sqlite:///{tmp_path}/journal.db"
    migrate(database_url)
    return LifecycleJournal(database_url=database_url, enabled=True)


@pytest.fixture
def clock():
    return ManualClock(0)


@pytest.fixture
def pause():
    return PauseSwitch()


@pytest.fixture
def fees():
    return FeeSchedule(default_bps=50, max_bps=100)


@pytest.fixture
def domains():
    return DomainRegistry()


@pytest.fixture
def venues():
    return VenueRegistry()


@pytest.fixture
def admin(venues, domains, fees, pause):
    console = AdminConsole(venues, domains, fees=fees, pause=pause)
    console.add_domain(
        DomainInfo(domain_id=ETHEREUM, chain_id=1, name="ethereum", fast_transfer=True)
    )
    console.add_domain(
        DomainInfo(domain_id=BASE, chain_id=8453, name="base", fast_transfer=True)
    )
    return console


@pytest.fixture
def adapters(admin):
    """alpha/beta on Ethereum, gamma on Base; all VERY_LOW risk (composite 1750)."""
    created = {}
    for venue_id, domain_id, apy_bps in (
        ("alpha", ETHEREUM, 400),
        ("beta", ETHEREUM, 450),
        ("gamma", BASE, 500),
    ):
        adapter = SimulatedVenueAdapter(venue_id, apy_bps, total_assets=VENUE_TVL)
        admin.add_venue(
            VenueInfo(venue_id=venue_id, name=venue_id.title(), domain_id=domain_id),
            adapter,
        )
        created[venue_id] = adapter
    return created


@pytest.fixture
def attestations():
    service = AttestationService(key="test-attester", auto_attest=False, delay_s=0)
    yield service
    service.shutdown(wait=False)


@pytest.fixture
def ledger():
    return BalanceLedger()


@pytest.fixture
def transfers(admin, domains, ledger, attestations, fees, clock, pause, journal):
    return CrossDomainTransferManager(
        domains,
        ledger,
        attestations=attestations,
        fees=fees,
        clock=clock,
        pause=pause,
        journal=journal,
        fast_settlement_delay_s=20,
    )


@pytest.fixture
def orchestrator(adapters, venues, domains, ledger, transfers, clock, pause, journal):
    return RebalanceOrchestrator(
        venues,
        domains,
        ledger=ledger,
        transfers=transfers,
        clock=clock,
        pause=pause,
        journal=journal,
        daily_cap=50_000_000 * USDC_UNIT,
        gas_cost=0,
        cooldown_s=3600,
        trigger_address="",
        operators=("0xoperator",),
    )


def strategy_fields(**overrides):
    fields = {
        "target_allocation_bps": 10_000,
        "risk_tolerance_bps": 10_000,
        "min_improvement_bps": 50,
        "auto_rebalance": True,
        "cross_domain_enabled": True,
        "approved_venues": ["alpha", "beta", "gamma"],
        "approved_domains": [ETHEREUM, BASE],
        "max_slippage_bps": 50,
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def funded_account(orchestrator, ledger):
    """ALICE with 1,000,000 USDC deposited in alpha."""
    orchestrator.set_strategy(ALICE, strategy_fields())
    amount = 1_000_000 * USDC_UNIT
    ledger.credit(ETHEREUM, ALICE, amount)
    orchestrator.deposit(ALICE, "alpha", amount)
    return ALICE
