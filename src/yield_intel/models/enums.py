"""Enumerations shared across layers."""

from __future__ import annotations

from enum import Enum


class RiskCategory(str, Enum):
    VERY_LOW = "VERY_LOW"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    VERY_HIGH = "VERY_HIGH"


class RebalanceStatus(str, Enum):
    VALIDATED = "VALIDATED"
    EXECUTING = "EXECUTING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class TransferStatus(str, Enum):
    INITIATED = "INITIATED"
    ATTESTED = "ATTESTED"
    COMPLETED = "COMPLETED"


class AttestationStatus(str, Enum):
    READY = "READY"
    NOT_READY = "NOT_READY"
    CANCELLED = "CANCELLED"


TERMINAL_REBALANCE_STATUSES = frozenset(
    {RebalanceStatus.COMPLETED, RebalanceStatus.FAILED, RebalanceStatus.CANCELLED}
)
