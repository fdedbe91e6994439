"""Venue adapter capability interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Tuple

from yield_intel.models.venue import VenueMetrics


class VenueAdapter(ABC):
    """One implementation per lending venue, looked up by venue id.

    Amounts are token base units; ``shares`` are venue-specific units.
    """

    venue_id: str

    @abstractmethod
    def deposit(self, amount: int) -> int:
        raise NotImplementedError

    @abstractmethod
    def withdraw(self, shares: int) -> int:
        raise NotImplementedError

    @abstractmethod
    def current_yield(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def total_value_locked(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def utilization(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def risk_score(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def can_deposit(self, amount: int) -> Tuple[bool, int]:
        raise NotImplementedError

    @abstractmethod
    def can_withdraw(self, shares: int) -> Tuple[bool, int]:
        raise NotImplementedError

    @abstractmethod
    def convert_to_shares(self, amount: int) -> int:
        raise NotImplementedError

    @abstractmethod
    def convert_to_assets(self, shares: int) -> int:
        raise NotImplementedError

    @abstractmethod
    def metrics(self) -> VenueMetrics:
        raise NotImplementedError
