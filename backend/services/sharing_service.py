"""
Driver-side writes of the simulation descriptor.

Only two paths ever write motion state: the driver toggling sharing and
the periodic speed jitter while sharing. Both fold the distance traveled
so far into the descriptor's anchor and persist ``sim``, ``sharing`` and
``position`` in a single partial-merge update, so every observer
extrapolates from the same anchor.
"""

from __future__ import annotations

import logging
import random
from typing import List, Optional

from clock import Clock, system_clock
from models import Bus, SimDescriptor
from route_logic import build_route_for_now
from router_service import build_route_polyline
from services.bus_store import BusNotFoundError, BusStore
from simulation import compute_simulated_position, jitter_speed, start_sharing, stop_sharing
from type_defs import PolylineProvider, Waypoint

logger = logging.getLogger(__name__)


class SharingService:
    """Applies driver toggles and speed jitter to a bus's descriptor."""

    def __init__(
        self,
        store: BusStore,
        clock: Clock = system_clock,
        rng: Optional[random.Random] = None,
        polyline_provider: PolylineProvider = build_route_polyline,
    ) -> None:
        self.store = store
        self.clock = clock
        self.rng = rng or random.Random()
        self.polyline_provider = polyline_provider

    def _require_bus(self, bus_id: str) -> Bus:
        bus = self.store.get_bus(bus_id)
        if bus is None:
            raise BusNotFoundError(bus_id)
        return bus

    def route_polyline(self, bus: Bus) -> List[Waypoint]:
        route = build_route_for_now(bus, self.clock.now(), self.store.get_stops(bus.id))
        return self.polyline_provider(route.polyline)

    def _publish(self, bus: Bus, sim: SimDescriptor, now_ms: int) -> Bus:
        patch = {"sim": sim.to_record(), "sharing": sim.active}
        position = compute_simulated_position(sim, self.route_polyline(bus), now_ms)
        if position is not None:
            patch["position"] = list(position)
        return self.store.update_bus(bus.id, patch)

    def set_sharing(self, bus_id: str, sharing: bool) -> Bus:
        """Start or stop sharing; the bus resumes from (or freezes at) its folded offset."""
        bus = self._require_bus(bus_id)
        now_ms = self.clock.now_ms()
        if sharing:
            sim = start_sharing(bus.sim, now_ms)
        else:
            sim = stop_sharing(bus.sim, now_ms)
        updated = self._publish(bus, sim, now_ms)
        logger.info(
            f"Bus {bus_id} sharing={'on' if sim.active else 'off'} "
            f"offset={sim.offset_km:.3f}km speed={sim.speed_kmph:.0f}km/h"
        )
        return updated

    def jitter(self, bus_id: str) -> Optional[Bus]:
        """Randomize speed while sharing. Returns None when nothing was written."""
        bus = self.store.get_bus(bus_id)
        if bus is None or bus.sim is None or not bus.sim.active:
            return None
        now_ms = self.clock.now_ms()
        sim = jitter_speed(bus.sim, now_ms, self.rng)
        updated = self._publish(bus, sim, now_ms)
        logger.debug(f"Bus {bus_id} speed jitter -> {sim.speed_kmph:.0f}km/h")
        return updated
