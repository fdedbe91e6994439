"""Yield oracles. Staleness and bounds checks belong to the oracle."""

from __future__ import annotations

from abc import ABC, abstractmethod
import threading
from typing import Dict, Optional, Tuple

import httpx

from yield_intel.config import settings
from yield_intel.errors import StaleOrInvalidData
from yield_intel.utils.time import Clock, SystemClock


MAX_APY_BPS = 10_000


class YieldOracle(ABC):
    @abstractmethod
    def latest(self, feed_id: str) -> Tuple[int, int]:
        """Return (value, timestamp) or raise StaleOrInvalidData."""
        raise NotImplementedError


def _check_observation(
    feed_id: str, value: int, timestamp: int, now: int, max_staleness_s: int
) -> Tuple[int, int]:
    if value < 0 or value > MAX_APY_BPS:
        raise StaleOrInvalidData(f"{feed_id}: value {value} out of bounds")
    if timestamp > now:
        raise StaleOrInvalidData(f"{feed_id}: timestamp {timestamp} in the future")
    if now - timestamp > max_staleness_s:
        raise StaleOrInvalidData(f"{feed_id}: stale by {now - timestamp}s")
    return value, timestamp


class StaticYieldOracle(YieldOracle):
    """In-memory feeds, pushed by a caller."""

    def __init__(
        self, clock: Optional[Clock] = None, max_staleness_s: Optional[int] = None
    ) -> None:
        self.clock = clock or SystemClock()
        self.max_staleness_s = (
            max_staleness_s
            if max_staleness_s is not None
            else settings.oracle_max_staleness_s
        )
        self._feeds: Dict[str, Tuple[int, int]] = {}
        self._lock = threading.Lock()

    def push(self, feed_id: str, value: int, timestamp: Optional[int] = None) -> None:
        ts = self.clock.now() if timestamp is None else timestamp
        with self._lock:
            self._feeds[feed_id] = (int(value), int(ts))

    def latest(self, feed_id: str) -> Tuple[int, int]:
        with self._lock:
            observation = self._feeds.get(feed_id)
        if observation is None:
            raise StaleOrInvalidData(f"{feed_id}: no observation")
        value, timestamp = observation
        return _check_observation(
            feed_id, value, timestamp, self.clock.now(), self.max_staleness_s
        )


class HttpYieldOracle(YieldOracle):
    """Read ``GET {api_base}/yields/{feed_id}`` -> {"value": ..., "timestamp": ...}."""

    def __init__(
        self,
        api_base: Optional[str] = None,
        clock: Optional[Clock] = None,
        max_staleness_s: Optional[int] = None,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.api_base = (api_base or settings.oracle_api_base).rstrip("/")
        if not self.api_base:
            raise ValueError("Oracle API base missing (ORACLE_API_BASE)")
        self.clock = clock or SystemClock()
        self.max_staleness_s = (
            max_staleness_s
            if max_staleness_s is not None
            else settings.oracle_max_staleness_s
        )
        self.client = client or httpx.Client(timeout=timeout)

    def latest(self, feed_id: str) -> Tuple[int, int]:
        url = f"{self.api_base}/yields/{feed_id}"
        try:
            response = self.client.get(url)
            response.raise_for_status()
            payload = response.json()
            value = int(payload["value"])
            timestamp = int(payload["timestamp"])
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            raise StaleOrInvalidData(f"{feed_id}: oracle request failed: {exc}") from exc
        return _check_observation(
            feed_id, value, timestamp, self.clock.now(), self.max_staleness_s
        )

    def close(self) -> None:
        self.client.close()
