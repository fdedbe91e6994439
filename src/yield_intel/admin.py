"""Administrative write capability: registries, fee schedule and pause."""

from __future__ import annotations

import logging
from typing import Optional

from yield_intel.models.transfer import DomainInfo
from yield_intel.models.venue import VenueInfo
from yield_intel.transfer.domains import DomainRegistry
from yield_intel.transfer.fees import FeeSchedule
from yield_intel.utils.pause import PauseSwitch
from yield_intel.venues.base import VenueAdapter
from yield_intel.venues.registry import VenueRegistry


logger = logging.getLogger(__name__)


class AdminConsole:
    """The only writer of venue/domain registries, fees and the pause switch."""

    def __init__(
        self,
        venues: VenueRegistry,
        domains: DomainRegistry,
        fees: Optional[FeeSchedule] = None,
        pause: Optional[PauseSwitch] = None,
    ) -> None:
        self.venues = venues
        self.domains = domains
        self.fees = fees or FeeSchedule()
        self.pause = pause or PauseSwitch()

    def add_venue(self, info: VenueInfo, adapter: VenueAdapter) -> int:
        version = self.venues._put(info, adapter)
        logger.info("Venue %s registered on domain %s (v%s)", info.venue_id, info.domain_id, version)
        return version

    def remove_venue(self, venue_id: str) -> int:
        version = self.venues._remove(venue_id)
        logger.info("Venue %s removed (v%s)", venue_id, version)
        return version

    def add_domain(self, info: DomainInfo) -> int:
        version = self.domains._put(info)
        logger.info("Domain %s bound to chain %s (v%s)", info.domain_id, info.chain_id, version)
        return version

    def remove_domain(self, domain_id: int) -> int:
        version = self.domains._remove(domain_id)
        logger.info("Domain %s removed (v%s)", domain_id, version)
        return version

    def set_fast_fee(self, source_domain: int, destination_domain: int, fee_bps: int) -> int:
        """Store the pair rate; returns the effective (capped) rate."""
        self.fees._set(source_domain, destination_domain, fee_bps)
        effective = self.fees.fee_bps(source_domain, destination_domain)
        if effective < fee_bps:
            logger.warning(
                "Fast fee %s -> %s capped from %s to %s bps",
                source_domain,
                destination_domain,
                fee_bps,
                effective,
            )
        return effective

    def pause_system(self) -> None:
        self.pause._set(True)
        logger.warning("System paused")

    def unpause_system(self) -> None:
        self.pause._set(False)
        logger.info("System unpaused")
