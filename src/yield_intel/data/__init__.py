"""Data access layer exports."""

from yield_intel.data.oracle import HttpYieldOracle, StaticYieldOracle, YieldOracle
from yield_intel.data.service import YieldDataService, yield_statistics

__all__ = [
    "HttpYieldOracle",
    "StaticYieldOracle",
    "YieldDataService",
    "YieldOracle",
    "yield_statistics",
]
