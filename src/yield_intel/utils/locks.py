"""Per-key locking primitives for shared ledgers."""

from __future__ import annotations

from contextlib import contextmanager
import threading
from typing import Dict, Hashable, Iterator, Set

from yield_intel.errors import ReentrantCall


class KeyedLock:
    """One mutex per key, created on demand."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}

    def _lock_for(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        lock = self._lock_for(key)
        with lock:
            yield


class SingleFlight:
    """Refuse entry for a key while another transition on it is running.

    Unlike KeyedLock this does not wait: a second caller (including a
    re-entrant call from the same thread) fails immediately.
    """

    def __init__(self, name: str = "transition") -> None:
        self.name = name
        self._guard = threading.Lock()
        self._in_flight: Set[Hashable] = set()

    @contextmanager
    def enter(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            if key in self._in_flight:
                raise ReentrantCall(f"{self.name} already in flight for {key}")
            self._in_flight.add(key)
        try:
            yield
        finally:
            with self._guard:
                self._in_flight.discard(key)

    def is_in_flight(self, key: Hashable) -> bool:
        with self._guard:
            return key in self._in_flight
