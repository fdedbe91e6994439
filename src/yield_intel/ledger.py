"""Shared in-memory ledgers with atomic read-modify-write per key."""

from __future__ import annotations

from collections import defaultdict
import threading
from typing import Dict, Hashable, Tuple

from yield_intel.errors import InsufficientBalance, LimitExceeded, ValidationError
from yield_intel.utils.locks import KeyedLock
from yield_intel.utils.time import day_bucket


class BalanceLedger:
    """Token balances keyed by (domain, holder)."""

    def __init__(self) -> None:
        self._balances: Dict[Tuple[int, str], int] = defaultdict(int)
        self._locks = KeyedLock()

    def balance_of(self, domain_id: int, holder: str) -> int:
        with self._locks.hold((domain_id, holder)):
            return self._balances[(domain_id, holder)]

    def credit(self, domain_id: int, holder: str, amount: int) -> int:
        if amount < 0:
            raise ValidationError("credit amount must be non-negative")
        key = (domain_id, holder)
        with self._locks.hold(key):
            self._balances[key] += amount
            return self._balances[key]

    def debit(self, domain_id: int, holder: str, amount: int) -> int:
        if amount < 0:
            raise ValidationError("debit amount must be non-negative")
        key = (domain_id, holder)
        with self._locks.hold(key):
            balance = self._balances[key]
            if balance < amount:
                raise InsufficientBalance(
                    f"{holder} on domain {domain_id} has {balance}, needs {amount}"
                )
            self._balances[key] = balance - amount
            return self._balances[key]


class DailyAggregate:
    """Per (account, scope, day) running totals checked against a cap."""

    def __init__(self) -> None:
        self._totals: Dict[Tuple[str, Hashable, int], int] = defaultdict(int)
        self._lock = threading.Lock()

    def total(self, account: str, scope: Hashable, timestamp: int) -> int:
        with self._lock:
            return self._totals[(account, scope, day_bucket(timestamp))]

    def reserve(
        self, account: str, scope: Hashable, timestamp: int, amount: int, cap: int
    ) -> int:
        """Add ``amount`` to today's total or raise LimitExceeded; returns the bucket."""
        bucket = day_bucket(timestamp)
        key = (account, scope, bucket)
        with self._lock:
            current = self._totals[key]
            if current + amount > cap:
                raise LimitExceeded(
                    f"daily cap {cap} for {account}/{scope} exceeded: {current} + {amount}"
                )
            self._totals[key] = current + amount
        return bucket

    def release(self, account: str, scope: Hashable, bucket: int, amount: int) -> None:
        key = (account, scope, bucket)
        with self._lock:
            self._totals[key] = max(self._totals[key] - amount, 0)


class PositionBook:
    """Venue shares held on behalf of each account."""

    def __init__(self) -> None:
        self._shares: Dict[Tuple[str, str], int] = defaultdict(int)
        self._locks = KeyedLock()

    def shares(self, account: str, venue_id: str) -> int:
        with self._locks.hold((account, venue_id)):
            return self._shares[(account, venue_id)]

    def add(self, account: str, venue_id: str, shares: int) -> int:
        key = (account, venue_id)
        with self._locks.hold(key):
            self._shares[key] += shares
            return self._shares[key]

    def remove(self, account: str, venue_id: str, shares: int) -> int:
        key = (account, venue_id)
        with self._locks.hold(key):
            held = self._shares[key]
            if held < shares:
                raise InsufficientBalance(
                    f"{account} holds {held} shares of {venue_id}, needs {shares}"
                )
            self._shares[key] = held - shares
            return self._shares[key]
