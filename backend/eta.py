"""
ETA and delay estimation for the live timeline.

Stops are walked in order from the bus's current position. Each leg's
travel time at the current speed is added to a running clock; the raw
delay against the plan is damped for later stops (``recovery``) and
clamped to +/- ``MAX_DELAY_MINUTES`` so displayed ETAs stay close to the
published schedule.
"""

import math
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from config import config
from geo import haversine_km
from models import ScheduleRow, Stop, TripProgress
from route_logic import get_progress, to_local
from type_defs import Waypoint

MIN_RECOVERY: float = 0.4
RECOVERY_STEP: float = 0.18
UNAVAILABLE: str = "—"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def recovery_factor(index: int) -> float:
    """Damping applied to the delay at the ``index``-th stop."""
    return max(MIN_RECOVERY, 1 - RECOVERY_STEP * index)


def build_schedule_rows(
    current_position: Optional[Waypoint],
    speed_kmph: float,
    timeline: Sequence[Stop],
    start_planned: datetime,
    now: datetime,
    sharing: bool = True,
) -> List[ScheduleRow]:
    """
    One row per timeline stop with planned time and, while sharing, ETA.

    When the bus is not sharing (or has no position) planned times are
    kept and every ETA field is None.
    """
    rows: List[ScheduleRow] = []
    if not timeline:
        return rows

    available = sharing and current_position is not None
    speed = max(config.MIN_SPEED_KMPH, float(speed_kmph or 0))
    limit = config.MAX_DELAY_MINUTES

    anchor = current_position
    clock = now
    for i, stop in enumerate(timeline):
        planned = start_planned + timedelta(minutes=stop.planned_offset_mins)
        if not available:
            rows.append(ScheduleRow(name=stop.name, position=stop.position, planned_at=planned))
            continue

        distance_km = haversine_km(anchor, stop.position)
        travel_mins = _round_half_up(distance_km / speed * 60)
        estimated = clock + timedelta(minutes=travel_mins)
        raw_delay = _round_half_up((estimated - planned).total_seconds() / 60)
        adjusted = _round_half_up(raw_delay * recovery_factor(i))
        delay = max(-limit, min(limit, adjusted))
        eta = planned + timedelta(minutes=delay)

        rows.append(
            ScheduleRow(
                name=stop.name,
                position=stop.position,
                planned_at=planned,
                eta_at=eta,
                delay_mins=delay,
                travel_mins=travel_mins,
                distance_km=round(distance_km, 2),
            )
        )
        # Delay propagates, damped, leg to leg
        anchor = stop.position
        clock = eta
    return rows


def describe_progress(
    position: Optional[Waypoint],
    ordered_stops: Sequence[Stop],
    speed_kmph: float,
) -> TripProgress:
    """
    Arrived/next stop along the ordered route.

    The nearest stop only counts as arrived inside ``ARRIVAL_RADIUS_KM``;
    otherwise the bus is between the previous stop and the nearest one.
    """
    if not ordered_stops or position is None:
        return TripProgress()

    nearest_idx = get_progress(position, ordered_stops)["arrived_idx"]
    dist_to_nearest = haversine_km(position, ordered_stops[nearest_idx].position)
    if dist_to_nearest <= config.ARRIVAL_RADIUS_KM:
        arrived_idx = nearest_idx
    else:
        arrived_idx = max(0, nearest_idx - 1)
    next_idx = min(arrived_idx + 1, len(ordered_stops) - 1)

    arrived = ordered_stops[arrived_idx]
    upcoming = ordered_stops[next_idx]
    dist_from_arrived = haversine_km(position, arrived.position)
    has_left = dist_from_arrived > config.LEFT_THRESHOLD_KM

    left_label = None
    if has_left:
        speed = max(config.MIN_SPEED_KMPH, float(speed_kmph or 0))
        approx_mins = _round_half_up(dist_from_arrived / speed * 60)
        left_label = "just now" if approx_mins <= 0 else f"{format_minutes(approx_mins)} ago"

    return TripProgress(
        arrived_idx=arrived_idx,
        next_idx=next_idx,
        arrived_name=arrived.name,
        next_name=upcoming.name,
        distance_to_next_km=round(haversine_km(position, upcoming.position), 2),
        has_left_arrived=has_left,
        left_label=left_label,
    )


def format_minutes(mins: float) -> str:
    """Human-friendly hours/minutes, e.g. 80 -> '1 hr 20 mins'."""
    m = max(0, _round_half_up(mins))
    h, r = divmod(m, 60)
    parts = []
    if h > 0:
        parts.append(f"{h} {'hr' if h == 1 else 'hrs'}")
    if r > 0 or h == 0:
        parts.append(f"{r} {'min' if r == 1 else 'mins'}")
    return " ".join(parts)


def format_clock(value: Optional[datetime]) -> str:
    if value is None:
        return UNAVAILABLE
    return to_local(value).strftime("%H:%M")
