"""Cross-domain transfer exports."""

from yield_intel.transfer.attestation import AttestationResult, AttestationService
from yield_intel.transfer.domains import DomainRegistry
from yield_intel.transfer.fees import FeeSchedule
from yield_intel.transfer.manager import CrossDomainTransferManager

__all__ = [
    "AttestationResult",
    "AttestationService",
    "CrossDomainTransferManager",
    "DomainRegistry",
    "FeeSchedule",
]
