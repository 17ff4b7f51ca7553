"""
Live view assembly and the cooperative timers that keep it current.

``LiveTracker`` re-derives the bus position once per second from the
stored descriptor (polling, not a position stream) and, on the driver
side, jitters the speed every 30 seconds. Store notifications only
refresh local snapshots; nothing on the read path writes back.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from clock import Clock, system_clock
from config import config
from eta import build_schedule_rows, describe_progress
from models import Bus, LiveView, Stop
from route_logic import build_route_for_now, localize, planned_start
from router_service import build_route_polyline
from services.bus_store import BusStore
from services.sharing_service import SharingService
from simulation import compute_simulated_position
from type_defs import Polyline, PolylineProvider, Unsubscribe

logger = logging.getLogger(__name__)

ViewListener = Callable[[LiveView], None]


def build_live_view(
    bus: Bus,
    stops: Sequence[Stop],
    now: datetime,
    polyline_provider: PolylineProvider = build_route_polyline,
) -> LiveView:
    """Position, route, ETA rows and progress of ``bus`` at ``now``."""
    now = localize(now)
    route = build_route_for_now(bus, now, stops)
    polyline = polyline_provider(route.polyline)
    now_ms = int(now.timestamp() * 1000)
    position = compute_simulated_position(bus.sim, polyline, now_ms)
    speed = bus.sim.speed_kmph if bus.sim is not None else config.DEFAULT_SPEED_KMPH

    rows = build_schedule_rows(
        position,
        speed,
        route.timeline,
        planned_start(now, route.start_time),
        now,
        sharing=bus.sharing,
    )
    progress = describe_progress(position, route.ordered_stops, speed) if bus.sharing else None
    return LiveView(
        bus_id=bus.id,
        name=bus.name,
        phase=route.phase,
        start_time=route.start_time,
        start_place=route.start_place,
        sharing=bus.sharing,
        speed_kmph=speed,
        position=position,
        rows=rows,
        progress=progress,
        generated_at=now,
    )


class LiveTracker:
    """
    Async context manager owning the timers for one bus.

    Usage:
        async with LiveTracker(store, "bus-1") as tracker:
            tracker.add_listener(render)
            ...
    Timers are cancelled and store subscriptions released on exit.
    """

    def __init__(
        self,
        store: BusStore,
        bus_id: str,
        clock: Clock = system_clock,
        polyline_provider: PolylineProvider = build_route_polyline,
        sharing_service: Optional[SharingService] = None,
        tick_interval: Optional[float] = None,
        jitter_interval: Optional[float] = None,
    ) -> None:
        self.store = store
        self.bus_id = bus_id
        self.clock = clock
        self.polyline_provider = polyline_provider
        # Only the driver side gets a sharing service and thus the jitter timer
        self.sharing_service = sharing_service
        self.tick_interval = tick_interval or config.TICK_INTERVAL_SECONDS
        self.jitter_interval = jitter_interval or config.JITTER_INTERVAL_SECONDS

        self.latest: Optional[LiveView] = None
        self._bus: Optional[Bus] = None
        self._stops: List[Stop] = []
        self._polylines: Dict[Tuple, Polyline] = {}
        self._listeners: List[ViewListener] = []
        self._unsubscribers: List[Unsubscribe] = []
        self._tasks: List[asyncio.Task] = []

    # -------------------- listeners --------------------

    def add_listener(self, callback: ViewListener) -> Unsubscribe:
        self._listeners.append(callback)

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    # -------------------- store snapshots --------------------

    def _on_bus(self, bus: Bus) -> None:
        self._bus = bus

    def _on_stops(self, stops: List[Stop]) -> None:
        self._stops = list(stops)
        self._polylines.clear()

    def _cached_polyline(self, points: Polyline) -> Polyline:
        key = tuple(points)
        polyline = self._polylines.get(key)
        if polyline is None:
            polyline = self.polyline_provider(points)
            self._polylines[key] = polyline
        return polyline

    # -------------------- evaluation --------------------

    def _compute_view(self) -> Optional[LiveView]:
        bus = self._bus
        if bus is None:
            return None
        return build_live_view(bus, self._stops, self.clock.now(), self._cached_polyline)

    def _publish(self, view: Optional[LiveView]) -> Optional[LiveView]:
        if view is None:
            return None
        self.latest = view
        for callback in list(self._listeners):
            try:
                callback(view)
            except Exception:
                logger.exception(f"[LiveTracker] Listener failed for bus {self.bus_id}")
        return view

    def refresh(self) -> Optional[LiveView]:
        """Recompute the live view now and push it to listeners."""
        return self._publish(self._compute_view())

    async def _tick_loop(self) -> None:
        while True:
            try:
                # Geometry lookups may block on the network
                view = await asyncio.to_thread(self._compute_view)
                self._publish(view)
            except Exception:
                logger.exception(f"[LiveTracker] Refresh failed for bus {self.bus_id}")
            await asyncio.sleep(self.tick_interval)

    async def _jitter_loop(self) -> None:
        while True:
            await asyncio.sleep(self.jitter_interval)
            try:
                await asyncio.to_thread(self.sharing_service.jitter, self.bus_id)
            except Exception:
                logger.exception(f"[LiveTracker] Speed jitter failed for bus {self.bus_id}")

    # -------------------- lifecycle --------------------

    async def __aenter__(self) -> "LiveTracker":
        self._unsubscribers.append(self.store.subscribe_bus(self.bus_id, self._on_bus))
        self._unsubscribers.append(self.store.subscribe_stops(self.bus_id, self._on_stops))
        self._tasks.append(asyncio.create_task(self._tick_loop()))
        if self.sharing_service is not None:
            self._tasks.append(asyncio.create_task(self._jitter_loop()))
        logger.info(f"[LiveTracker] Started for bus {self.bus_id}")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        logger.info(f"[LiveTracker] Stopped for bus {self.bus_id}")
