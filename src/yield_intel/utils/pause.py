"""Global pause switch honoured by every mutating entry point."""

from __future__ import annotations

import threading

from yield_intel.errors import SystemPaused


class PauseSwitch:
    def __init__(self, paused: bool = False) -> None:
        self._paused = paused
        self._lock = threading.Lock()

    @property
    def paused(self) -> bool:
        with self._lock:
            return self._paused

    def ensure_active(self) -> None:
        if self.paused:
            raise SystemPaused("system is paused")

    def _set(self, paused: bool) -> None:
        with self._lock:
            self._paused = paused
