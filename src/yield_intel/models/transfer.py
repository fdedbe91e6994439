"""Cross-domain transfer models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
import hashlib
import json
from typing import Optional

from yield_intel.errors import ValidationError
from yield_intel.models.enums import TransferStatus


@dataclass(frozen=True)
class DomainInfo:
    domain_id: int
    chain_id: int
    name: str = ""
    supported: bool = True
    fast_transfer: bool = False
    min_transfer: int = 0
    max_transfer: int = 0


@dataclass(frozen=True)
class TransferParams:
    sender: str
    recipient: str
    source_domain: int
    destination_domain: int
    amount: int


def derive_transfer_id(nonce: int, timestamp: int, sender: str) -> str:
    payload = f"{nonce}:{timestamp}:{sender.lower()}".encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


@dataclass(frozen=True)
class TransferMessage:
    """Wire message attested by the attesting authority."""

    nonce: int
    timestamp: int
    sender: str
    recipient: str
    source_domain: int
    destination_domain: int
    amount: int
    fast: bool = False

    @property
    def transfer_id(self) -> str:
        return derive_transfer_id(self.nonce, self.timestamp, self.sender)

    def encode(self) -> bytes:
        return json.dumps(asdict(self), sort_keys=True, separators=(",", ":")).encode(
            "utf-8"
        )

    @classmethod
    def decode(cls, raw: bytes) -> "TransferMessage":
        try:
            data = json.loads(raw.decode("utf-8"))
            return cls(
                nonce=int(data["nonce"]),
                timestamp=int(data["timestamp"]),
                sender=str(data["sender"]),
                recipient=str(data["recipient"]),
                source_domain=int(data["source_domain"]),
                destination_domain=int(data["destination_domain"]),
                amount=int(data["amount"]),
                fast=bool(data.get("fast", False)),
            )
        except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            raise ValidationError(f"malformed transfer message: {exc}") from exc


@dataclass(frozen=True)
class TransferRecord:
    transfer_id: str
    created_at: int
    source_domain: int
    destination_domain: int
    amount: int
    sender: str
    recipient: str
    message: bytes
    fee: int = 0
    fast: bool = False
    completed: bool = False
    completed_at: Optional[int] = None
    settles_at: Optional[int] = None
    attestation_ref: Optional[str] = None

    @property
    def net_amount(self) -> int:
        return self.amount - self.fee

    @property
    def status(self) -> TransferStatus:
        if self.completed:
            return TransferStatus.COMPLETED
        if self.attestation_ref:
            return TransferStatus.ATTESTED
        return TransferStatus.INITIATED

    def with_attestation(self, attestation_ref: str) -> "TransferRecord":
        return replace(self, attestation_ref=attestation_ref)

    def with_completion(self, completed_at: int) -> "TransferRecord":
        return replace(self, completed=True, completed_at=completed_at)
