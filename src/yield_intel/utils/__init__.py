"""Utility exports."""

from yield_intel.utils.locks import KeyedLock, SingleFlight
from yield_intel.utils.pause import PauseSwitch
from yield_intel.utils.time import Clock, ManualClock, SystemClock, day_bucket

__all__ = [
    "Clock",
    "KeyedLock",
    "ManualClock",
    "PauseSwitch",
    "SingleFlight",
    "SystemClock",
    "day_bucket",
]
