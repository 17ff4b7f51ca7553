"""
Polyline simulation engine.

A bus is modelled as a point traveling along a polyline. Its motion is
fully described by a persisted ``SimDescriptor``; the current position is
derived from elapsed wall-clock time, so every observer computes the same
position without a continuous position stream.

Every mutation of speed, direction or the active flag folds the distance
traveled since ``last_update_at`` into ``offset_km`` and resets the
anchor to "now" in the same step.
"""

import random
import time
from bisect import bisect_right
from typing import List, Optional, Sequence

from config import config
from geo import haversine_km
from models import SimDescriptor
from type_defs import EpochMs, Waypoint

MS_PER_HOUR: int = 3_600_000


def _now_ms() -> EpochMs:
    return int(time.time() * 1000)


# ============================================================
# POLYLINE GEOMETRY
# ============================================================

def cumulative_km(points: Sequence[Waypoint]) -> List[float]:
    """Cumulative great-circle distance from ``points[0]`` to each point."""
    n = len(points or [])
    if n == 0:
        return []
    cum = [0.0] * n
    for i in range(1, n):
        cum[i] = cum[i - 1] + haversine_km(points[i - 1], points[i])
    return cum


def reflect_distance(d: float, total: float) -> float:
    """Fold ``d`` into [0, total] so motion runs 0..L..0..L.. without jumps."""
    if total <= 0:
        return 0.0
    period = 2 * total
    mod = d % period
    if mod < 0:
        mod += period
    return mod if mod <= total else period - mod


def point_at_distance(
    points: Sequence[Waypoint],
    cum: Sequence[float],
    d: float,
    mode: str = "bounce",
) -> Optional[Waypoint]:
    """Return the point at traveled distance ``d`` along the polyline."""
    n = len(points or [])
    if n == 0:
        return None
    if n == 1:
        return tuple(points[0])
    total = cum[n - 1]
    if mode == "loop":
        if total <= 0:
            along = 0.0
        else:
            along = d % total
            if along < 0:
                along += total
            # A full lap ends on the last point before wrapping
            if along == 0 and d > 0:
                along = total
    else:
        along = reflect_distance(d, total)

    # Segment [lo, lo+1] with cum[lo] <= along
    lo = bisect_right(cum, along, 0, n - 1) - 1
    lo = max(0, min(lo, n - 2))
    seg_start = cum[lo]
    seg_len = max(1e-9, cum[lo + 1] - seg_start)
    t = max(0.0, min(1.0, (along - seg_start) / seg_len))
    a = points[lo]
    b = points[lo + 1]
    return (a[0] + (b[0] - a[0]) * t, a[1] + (b[1] - a[1]) * t)


# ============================================================
# DESCRIPTOR EVALUATION
# ============================================================

def traveled_km(sim: SimDescriptor, now_ms: Optional[EpochMs] = None) -> float:
    """
    Arc length traveled at ``now_ms``.

    Extrapolated only while active; an inactive descriptor is a frozen
    snapshot. A missing anchor (``last_update_at <= 0``) means no time
    has elapsed.
    """
    if not sim.active:
        return sim.offset_km
    now = _now_ms() if now_ms is None else now_ms
    last = sim.last_update_at if sim.last_update_at > 0 else now
    elapsed_h = max(0.0, (now - last) / MS_PER_HOUR)
    return sim.offset_km + sim.direction * sim.speed_kmph * elapsed_h


def compute_simulated_position(
    sim: Optional[SimDescriptor],
    points: Sequence[Waypoint],
    now_ms: Optional[EpochMs] = None,
) -> Optional[Waypoint]:
    """
    Current position of the bus on ``points``.

    No descriptor parks the bus at the route origin. An inactive
    descriptor renders at its frozen offset, so pausing keeps the bus in
    place instead of snapping back to the origin.
    """
    if not points:
        return None
    if sim is None:
        return tuple(points[0])
    cum = cumulative_km(points)
    return point_at_distance(points, cum, traveled_km(sim, now_ms), sim.mode)


# ============================================================
# DESCRIPTOR MUTATORS
# ============================================================

def fold_descriptor(sim: SimDescriptor, now_ms: Optional[EpochMs] = None) -> SimDescriptor:
    """Collapse elapsed travel into ``offset_km`` and move the anchor to now."""
    now = _now_ms() if now_ms is None else now_ms
    return sim.model_copy(update={"offset_km": traveled_km(sim, now), "last_update_at": now})


def start_sharing(sim: Optional[SimDescriptor], now_ms: Optional[EpochMs] = None) -> SimDescriptor:
    now = _now_ms() if now_ms is None else now_ms
    base = sim if sim is not None else SimDescriptor()
    folded = fold_descriptor(base, now)
    return folded.model_copy(update={"active": True})


def stop_sharing(sim: Optional[SimDescriptor], now_ms: Optional[EpochMs] = None) -> SimDescriptor:
    now = _now_ms() if now_ms is None else now_ms
    base = sim if sim is not None else SimDescriptor()
    folded = fold_descriptor(base, now)
    return folded.model_copy(update={"active": False})


def jitter_speed(
    sim: SimDescriptor,
    now_ms: Optional[EpochMs] = None,
    rng: Optional[random.Random] = None,
) -> SimDescriptor:
    """Pick a new random speed, folding travel at the old speed first."""
    if not sim.active:
        return sim
    rng = rng or random.Random()
    speed = rng.randint(config.JITTER_MIN_KMPH, config.JITTER_MAX_KMPH)
    folded = fold_descriptor(sim, now_ms)
    return folded.model_copy(update={"speed_kmph": float(speed)})
