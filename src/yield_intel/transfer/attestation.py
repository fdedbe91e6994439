"""Attestation store, asynchronous issuance and bounded waiting.

Verification is a content-equality check against the attestation on
file. The attester is assumed to be fully trusted and in-process; there is
no signature check against an external authority's key.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
import hashlib
import hmac
import logging
import threading
import time
from typing import Callable, Dict, Optional

from yield_intel.config import settings
from yield_intel.models.enums import AttestationStatus


logger = logging.getLogger(__name__)

AttestedCallback = Callable[[str, bytes], None]


@dataclass(frozen=True)
class AttestationResult:
    transfer_id: str
    status: AttestationStatus
    attestation: Optional[bytes] = None

    @property
    def ready(self) -> bool:
        return self.status == AttestationStatus.READY


class AttestationService:
    """Issue attestations for transfer messages and serve them back."""

    def __init__(
        self,
        key: Optional[str] = None,
        auto_attest: bool = True,
        delay_s: Optional[float] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self._key = (key if key is not None else settings.attester_key).encode("utf-8")
        self.auto_attest = auto_attest
        self.delay_s = delay_s if delay_s is not None else settings.attestation_delay_s
        self._executor = executor or ThreadPoolExecutor(
            max_workers=2, thread_name_prefix="attester"
        )
        self._store: Dict[str, bytes] = {}
        self._lock = threading.Lock()
        self._on_attested: Optional[AttestedCallback] = None

    def subscribe(self, callback: AttestedCallback) -> None:
        self._on_attested = callback

    def sign(self, message: bytes) -> bytes:
        return hmac.new(self._key, message, hashlib.sha256).digest()

    def request(self, transfer_id: str, message: bytes) -> Optional[Future]:
        """Schedule issuance; the result lands in the store later."""
        if not self.auto_attest:
            logger.info("Attestation for %s awaits manual issuance", transfer_id)
            return None
        return self._executor.submit(self._produce, transfer_id, message)

    def attest(self, transfer_id: str, message: bytes) -> bytes:
        attestation = self.sign(message)
        with self._lock:
            existing = self._store.get(transfer_id)
            if existing is not None:
                return existing
            self._store[transfer_id] = attestation
        logger.info("Attestation issued for %s", transfer_id)
        if self._on_attested is not None:
            self._on_attested(transfer_id, attestation)
        return attestation

    def get(self, transfer_id: str) -> Optional[bytes]:
        with self._lock:
            return self._store.get(transfer_id)

    def verify(self, transfer_id: str, attestation: bytes) -> bool:
        stored = self.get(transfer_id)
        if stored is None or not attestation:
            return False
        return hmac.compare_digest(stored, attestation)

    def wait(
        self,
        transfer_id: str,
        timeout_s: Optional[float] = None,
        poll_interval_s: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> AttestationResult:
        """Poll until ready, the budget runs out, or ``cancel`` is set."""
        timeout_s = settings.attestation_timeout_s if timeout_s is None else timeout_s
        poll_interval_s = (
            settings.attestation_poll_interval_s
            if poll_interval_s is None
            else poll_interval_s
        )
        stop = cancel or threading.Event()
        deadline = time.monotonic() + max(timeout_s, 0.0)
        while True:
            attestation = self.get(transfer_id)
            if attestation is not None:
                return AttestationResult(transfer_id, AttestationStatus.READY, attestation)
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return AttestationResult(transfer_id, AttestationStatus.NOT_READY)
            if stop.wait(min(poll_interval_s, remaining)):
                return AttestationResult(transfer_id, AttestationStatus.CANCELLED)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _produce(self, transfer_id: str, message: bytes) -> bytes:
        if self.delay_s > 0:
            time.sleep(self.delay_s)
        try:
            return self.attest(transfer_id, message)
        except Exception:
            logger.exception("Attestation production failed for %s", transfer_id)
            raise
