"""Domain registry with bidirectional domain <-> chain lookups."""

from __future__ import annotations

import threading
from typing import Dict, List, Optional

from yield_intel.errors import UnknownDomain, ValidationError
from yield_intel.models.transfer import DomainInfo


class DomainRegistry:
    """Read surface for the core; ``_put`` / ``_remove`` belong to admin."""

    def __init__(self) -> None:
        self._domains: Dict[int, DomainInfo] = {}
        self._by_chain: Dict[int, int] = {}
        self._lock = threading.Lock()
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    def get(self, domain_id: int) -> Optional[DomainInfo]:
        with self._lock:
            return self._domains.get(domain_id)

    def require(self, domain_id: int) -> DomainInfo:
        info = self.get(domain_id)
        if info is None:
            raise UnknownDomain(f"Domain not registered: {domain_id}")
        return info

    def is_supported(self, domain_id: int) -> bool:
        info = self.get(domain_id)
        return bool(info and info.supported)

    def domain_for_chain(self, chain_id: int) -> int:
        with self._lock:
            domain_id = self._by_chain.get(chain_id)
        if domain_id is None:
            raise UnknownDomain(f"No domain registered for chain {chain_id}")
        return domain_id

    def chain_for_domain(self, domain_id: int) -> int:
        return self.require(domain_id).chain_id

    def list_supported(self) -> List[DomainInfo]:
        with self._lock:
            return [info for info in self._domains.values() if info.supported]

    def _put(self, info: DomainInfo) -> int:
        if info.max_transfer and info.min_transfer > info.max_transfer:
            raise ValidationError(
                f"domain {info.domain_id}: min_transfer above max_transfer"
            )
        with self._lock:
            owner = self._by_chain.get(info.chain_id)
            if owner is not None and owner != info.domain_id:
                raise ValidationError(
                    f"chain {info.chain_id} already bound to domain {owner}"
                )
            previous = self._domains.get(info.domain_id)
            if previous is not None and previous.chain_id != info.chain_id:
                self._by_chain.pop(previous.chain_id, None)
            self._domains[info.domain_id] = info
            self._by_chain[info.chain_id] = info.domain_id
            self._version += 1
            return self._version

    def _remove(self, domain_id: int) -> int:
        with self._lock:
            info = self._domains.pop(domain_id, None)
            if info is None:
                raise UnknownDomain(f"Domain not registered: {domain_id}")
            self._by_chain.pop(info.chain_id, None)
            self._version += 1
            return self._version
