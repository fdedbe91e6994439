"""Configuration loader for Yield Intel."""

from dataclasses import dataclass
import os
from typing import Tuple

from dotenv import load_dotenv


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_csv(value: str | None, default: Tuple[str, ...]) -> Tuple[str, ...]:
    if not value:
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _get_float(value: str | None, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_int(value: str | None, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


USDC_UNIT = 10**6


@dataclass(frozen=True)
class Settings:
    database_url: str
    journal_enabled: bool
    min_rebalance_amount: int
    max_rebalance_amount: int
    max_slippage_bps: int
    daily_rebalance_cap: int
    rebalance_cooldown_s: int
    rebalance_gas_cost: int
    default_fast_fee_bps: int
    max_fast_fee_bps: int
    fast_settlement_delay_s: int
    attestation_delay_s: float
    attestation_timeout_s: float
    attestation_poll_interval_s: float
    attester_key: str
    trigger_address: str
    operator_addresses: Tuple[str, ...]
    bridge_cost: int
    bridge_time_s: int
    projection_horizon_s: int
    compounding_frequency: int
    oracle_api_base: str
    oracle_max_staleness_s: int
    api_host: str
    api_port: int
    task_timeout_s: float

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite:///data/yield_intel.db"),
            journal_enabled=_get_bool(os.getenv("JOURNAL_ENABLED"), default=True),
            min_rebalance_amount=_get_int(
                os.getenv("MIN_REBALANCE_AMOUNT"), 10 * USDC_UNIT
            ),
            max_rebalance_amount=_get_int(
                os.getenv("MAX_REBALANCE_AMOUNT"), 10_000_000 * USDC_UNIT
            ),
            max_slippage_bps=_get_int(os.getenv("MAX_SLIPPAGE_BPS"), 500),
            daily_rebalance_cap=_get_int(
                os.getenv("DAILY_REBALANCE_CAP"), 50_000_000 * USDC_UNIT
            ),
            rebalance_cooldown_s=_get_int(os.getenv("REBALANCE_COOLDOWN_S"), 3600),
            rebalance_gas_cost=_get_int(os.getenv("REBALANCE_GAS_COST"), 0),
            default_fast_fee_bps=_get_int(os.getenv("DEFAULT_FAST_FEE_BPS"), 50),
            max_fast_fee_bps=_get_int(os.getenv("MAX_FAST_FEE_BPS"), 100),
            fast_settlement_delay_s=_get_int(
                os.getenv("FAST_SETTLEMENT_DELAY_S"), 20
            ),
            attestation_delay_s=_get_float(os.getenv("ATTESTATION_DELAY_S"), 0.0),
            attestation_timeout_s=_get_float(os.getenv("ATTESTATION_TIMEOUT_S"), 30.0),
            attestation_poll_interval_s=_get_float(
                os.getenv("ATTESTATION_POLL_INTERVAL_S"), 1.0
            ),
            attester_key=os.getenv("ATTESTER_KEY", "local-attester"),
            trigger_address=os.getenv("TRIGGER_ADDRESS", ""),
            operator_addresses=_get_csv(os.getenv("OPERATOR_ADDRESSES"), default=()),
            bridge_cost=_get_int(os.getenv("BRIDGE_COST"), 0),
            bridge_time_s=_get_int(os.getenv("BRIDGE_TIME_S"), 900),
            projection_horizon_s=_get_int(
                os.getenv("PROJECTION_HORIZON_S"), 30 * 24 * 3600
            ),
            compounding_frequency=_get_int(os.getenv("COMPOUNDING_FREQUENCY"), 365),
            oracle_api_base=os.getenv("ORACLE_API_BASE", ""),
            oracle_max_staleness_s=_get_int(os.getenv("ORACLE_MAX_STALENESS_S"), 3600),
            api_host=os.getenv("API_HOST", "127.0.0.1"),
            api_port=_get_int(os.getenv("API_PORT"), 8080),
            task_timeout_s=_get_float(os.getenv("TASK_TIMEOUT_S"), 5.0),
        )


settings = Settings.from_env()
