"""Read-only venue data service for the decision engine."""

from __future__ import annotations

from collections import deque
from dataclasses import replace
import logging
import threading
from typing import Deque, Dict, List, Optional, Tuple

import pandas as pd

from yield_intel.errors import StaleOrInvalidData
from yield_intel.models.venue import VenueSnapshot
from yield_intel.data.oracle import YieldOracle
from yield_intel.utils.time import Clock, SystemClock
from yield_intel.venues.registry import VenueRegistry


logger = logging.getLogger(__name__)


def yield_statistics(
    observations: List[Tuple[int, int]], window: int = 30
) -> Optional[Tuple[int, int]]:
    """Mean and standard deviation (bps) of the latest ``window`` yields."""
    if len(observations) < 2:
        return None
    frame = pd.DataFrame(observations, columns=["timestamp", "apy_bps"])
    frame = frame.drop_duplicates("timestamp", keep="last").sort_values("timestamp")
    recent = frame["apy_bps"].tail(window)
    if len(recent) < 2:
        return None
    mean = recent.mean()
    std = recent.std(ddof=0)
    if pd.isna(mean) or pd.isna(std):
        return None
    return int(round(mean)), int(round(std))


class YieldDataService:
    """Build venue snapshots; any source failure means "no data"."""

    def __init__(
        self,
        venues: VenueRegistry,
        oracle: Optional[YieldOracle] = None,
        clock: Optional[Clock] = None,
        history_window: int = 30,
    ) -> None:
        self.venues = venues
        self.oracle = oracle
        self.clock = clock or SystemClock()
        if history_window < 2:
            raise ValueError("history_window needs at least two observations")
        self.history_window = history_window
        self._history: Dict[str, Deque[Tuple[int, int]]] = {}
        self._lock = threading.Lock()

    def snapshot(self, venue_id: str) -> Optional[VenueSnapshot]:
        info = self.venues.get(venue_id)
        if info is None or not info.supported:
            return None
        try:
            adapter = self.venues.adapter(venue_id)
            metrics = adapter.metrics()
            apy_bps = adapter.current_yield()
        except Exception as exc:
            logger.warning("Venue %s unavailable: %s", venue_id, exc)
            return None

        now = self.clock.now()
        if self.oracle is not None:
            try:
                apy_bps, _observed_at = self.oracle.latest(venue_id)
            except StaleOrInvalidData as exc:
                logger.warning("Oracle data for %s unusable: %s", venue_id, exc)
                return None
            except Exception as exc:
                logger.warning("Oracle failed for %s: %s", venue_id, exc)
                return None

        self.record_yield(venue_id, now, apy_bps)
        stats = self.statistics(venue_id)
        if stats is not None:
            avg, volatility = stats
            metrics = replace(metrics, avg_yield_bps=avg, yield_volatility_bps=volatility)
        return VenueSnapshot(
            venue_id=venue_id,
            domain_id=info.domain_id,
            apy_bps=int(apy_bps),
            metrics=metrics,
            timestamp=now,
        )

    def record_yield(self, venue_id: str, timestamp: int, apy_bps: int) -> None:
        """Keep one row per timestamp and only the latest ``history_window`` rows."""
        row = (int(timestamp), int(apy_bps))
        with self._lock:
            history = self._history.get(venue_id)
            if history is None:
                history = deque(maxlen=self.history_window)
                self._history[venue_id] = history
            if history and history[-1][0] == row[0]:
                history[-1] = row
            else:
                history.append(row)

    def statistics(self, venue_id: str) -> Optional[Tuple[int, int]]:
        with self._lock:
            observations = list(self._history.get(venue_id, []))
        return yield_statistics(observations, window=self.history_window)

    def history_frame(self, venue_id: str) -> pd.DataFrame:
        with self._lock:
            observations = list(self._history.get(venue_id, []))
        return pd.DataFrame(observations, columns=["timestamp", "apy_bps"])
