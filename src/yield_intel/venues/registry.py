"""Venue registry: read surface for the core, write surface for admin."""

from __future__ import annotations

from dataclasses import dataclass
import threading
from typing import Dict, List, Optional

from yield_intel.errors import UnknownVenue
from yield_intel.models.venue import VenueInfo
from yield_intel.venues.base import VenueAdapter


@dataclass(frozen=True)
class VenueEntry:
    info: VenueInfo
    adapter: VenueAdapter


class VenueRegistry:
    """Venue id -> (metadata, adapter), versioned on every write.

    Only ``yield_intel.admin.AdminConsole`` calls ``_put`` / ``_remove``.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, VenueEntry] = {}
        self._lock = threading.Lock()
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    def get(self, venue_id: str) -> Optional[VenueInfo]:
        with self._lock:
            entry = self._entries.get(venue_id)
        return entry.info if entry else None

    def is_supported(self, venue_id: str) -> bool:
        info = self.get(venue_id)
        return bool(info and info.supported)

    def adapter(self, venue_id: str) -> VenueAdapter:
        with self._lock:
            entry = self._entries.get(venue_id)
        if entry is None:
            raise UnknownVenue(f"Venue not registered: {venue_id}")
        return entry.adapter

    def list_supported(self, domain_id: Optional[int] = None) -> List[VenueInfo]:
        with self._lock:
            infos = [entry.info for entry in self._entries.values()]
        return [
            info
            for info in infos
            if info.supported and (domain_id is None or info.domain_id == domain_id)
        ]

    def _put(self, info: VenueInfo, adapter: VenueAdapter) -> int:
        with self._lock:
            self._entries[info.venue_id] = VenueEntry(info=info, adapter=adapter)
            self._version += 1
            return self._version

    def _remove(self, venue_id: str) -> int:
        with self._lock:
            if venue_id not in self._entries:
                raise UnknownVenue(f"Venue not registered: {venue_id}")
            del self._entries[venue_id]
            self._version += 1
            return self._version
