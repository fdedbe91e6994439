"""Venue adapter exports."""

from yield_intel.venues.base import VenueAdapter
from yield_intel.venues.registry import VenueEntry, VenueRegistry
from yield_intel.venues.simulated import SimulatedVenueAdapter

__all__ = ["SimulatedVenueAdapter", "VenueAdapter", "VenueEntry", "VenueRegistry"]
