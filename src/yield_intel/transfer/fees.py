"""Fast-transfer fee schedule per ordered domain pair."""

from __future__ import annotations

import threading
from typing import Dict, Optional, Tuple

from yield_intel.config import settings
from yield_intel.errors import ValidationError


BPS = 10_000


class FeeSchedule:
    """Pair-specific basis-point fees, always capped at ``max_bps``."""

    def __init__(
        self, default_bps: Optional[int] = None, max_bps: Optional[int] = None
    ) -> None:
        self.default_bps = (
            default_bps if default_bps is not None else settings.default_fast_fee_bps
        )
        self.max_bps = max_bps if max_bps is not None else settings.max_fast_fee_bps
        self._pairs: Dict[Tuple[int, int], int] = {}
        self._lock = threading.Lock()

    def fee_bps(self, source_domain: int, destination_domain: int) -> int:
        with self._lock:
            configured = self._pairs.get((source_domain, destination_domain))
        rate = self.default_bps if configured is None else configured
        return min(rate, self.max_bps)

    def compute_fee(self, amount: int, source_domain: int, destination_domain: int) -> int:
        return amount * self.fee_bps(source_domain, destination_domain) // BPS

    def _set(self, source_domain: int, destination_domain: int, fee_bps: int) -> None:
        if fee_bps < 0 or fee_bps > BPS:
            raise ValidationError(f"fee must be within [0, {BPS}] bps, got {fee_bps}")
        with self._lock:
            self._pairs[(source_domain, destination_domain)] = fee_bps
