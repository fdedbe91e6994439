"""Clock helpers. Every time-based check reads one injected clock."""

from __future__ import annotations

from abc import ABC, abstractmethod
import threading
import time


SECONDS_PER_DAY = 86_400


def utc_now_s() -> int:
    return int(time.time())


def utc_now_ms() -> int:
    return int(time.time() * 1000)


def day_bucket(timestamp: int) -> int:
    return int(timestamp) // SECONDS_PER_DAY


class Clock(ABC):
    @abstractmethod
    def now(self) -> int:
        raise NotImplementedError


class SystemClock(Clock):
    """Wall clock that never moves backwards."""

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            self._last = max(self._last, utc_now_s())
            return self._last


class ManualClock(Clock):
    """Clock advanced explicitly; used for replay and tests."""

    def __init__(self, start: int = 0) -> None:
        self._now = int(start)
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            return self._now

    def set(self, timestamp: int) -> None:
        with self._lock:
            if timestamp < self._now:
                raise ValueError("clock cannot move backwards")
            self._now = int(timestamp)

    def advance(self, seconds: int) -> int:
        with self._lock:
            if seconds < 0:
                raise ValueError("clock cannot move backwards")
            self._now += int(seconds)
            return self._now
