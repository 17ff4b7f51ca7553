"""
Route direction (morning/evening), ordered stops including the campus
origin, and planned timing.

Morning routes run inbound from the terminus to the campus; evening
routes run outbound from the campus in stored stop order.
"""

from datetime import datetime, timedelta
from typing import Dict, Optional, Sequence
from zoneinfo import ZoneInfo

from config import config
from geo import haversine_km
from models import Bus, RouteForNow, RoutePhase, Stop, parse_hhmm
from type_defs import Minutes, Waypoint


def to_local(now: datetime) -> datetime:
    """Aware datetimes are moved to the configured zone; naive ones are taken as local."""
    if now.tzinfo is None:
        return now
    return now.astimezone(ZoneInfo(config.TIMEZONE))


def localize(now: datetime) -> datetime:
    """Aware datetime in the configured zone; naive values are read as local wall time."""
    zone = ZoneInfo(config.TIMEZONE)
    if now.tzinfo is None:
        return now.replace(tzinfo=zone)
    return now.astimezone(zone)


def _minutes_of(hhmm: str) -> Minutes:
    parsed = parse_hhmm(hhmm)
    if parsed is None:
        raise ValueError(f"Invalid HH:MM value: {hhmm!r}")
    return parsed[0] * 60 + parsed[1]


def get_route_phase(now: datetime) -> RoutePhase:
    """Morning inside the fixed 05:00-10:30 window (inclusive), evening otherwise."""
    local = to_local(now)
    mins = local.hour * 60 + local.minute
    if _minutes_of(config.MORNING_WINDOW_START) <= mins <= _minutes_of(config.MORNING_WINDOW_END):
        return "morning"
    return "evening"


def origin_stop() -> Stop:
    return Stop(name=config.ORIGIN_NAME, position=config.origin(), planned_offset_mins=0)


def build_route_for_now(bus: Optional[Bus], now: datetime, stops: Sequence[Stop]) -> RouteForNow:
    """
    Build ordered stops and the planned timeline for the current phase.

    Morning reverses the stored order, starting at the terminus; planned
    offsets become ``last_offset - offset`` and the origin is reached at
    ``last_offset``. Evening starts at the origin (offset 0) and keeps the
    stored offsets.
    """
    phase = get_route_phase(now)
    origin = origin_stop()
    stops = list(stops or [])

    if not stops:
        return RouteForNow(
            phase=phase,
            start_time=_start_time_for(phase, bus),
            start_place=config.ORIGIN_LABEL,
            ordered_stops=[origin],
            timeline=[origin],
        )

    if phase == "morning":
        terminus = stops[-1]
        reversed_stops = list(reversed(stops))
        ordered = [terminus, *reversed_stops[1:], origin]
        last_offset = terminus.planned_offset_mins or config.MORNING_FALLBACK_DURATION_MINS
        # The terminus starts the morning run at offset 0
        timeline = [terminus.model_copy(update={"planned_offset_mins": 0})]
        timeline.extend(
            Stop(
                name=s.name,
                position=s.position,
                planned_offset_mins=max(0, last_offset - s.planned_offset_mins),
            )
            for s in reversed_stops[1:]
        )
        timeline.append(origin.model_copy(update={"planned_offset_mins": last_offset}))
        return RouteForNow(
            phase=phase,
            start_time=config.MORNING_START_TIME,
            start_place=terminus.name.title(),
            ordered_stops=ordered,
            timeline=timeline,
        )

    return RouteForNow(
        phase=phase,
        start_time=_start_time_for(phase, bus),
        start_place=config.ORIGIN_LABEL,
        ordered_stops=[origin, *stops],
        timeline=[origin, *stops],
    )


def _start_time_for(phase: RoutePhase, bus: Optional[Bus]) -> str:
    if phase == "morning":
        return config.MORNING_START_TIME
    if bus is not None and bus.start_time:
        return bus.start_time
    return config.EVENING_START_TIME


def planned_start(now: datetime, start_time: str) -> datetime:
    """Today's local datetime at ``start_time`` (HH:MM)."""
    local = to_local(now)
    mins = _minutes_of(start_time)
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight + timedelta(minutes=mins)


def get_progress(position: Optional[Waypoint], ordered_stops: Sequence[Stop]) -> Dict[str, int]:
    """Nearest stop index along the ordered route and the one after it."""
    if not ordered_stops or position is None:
        return {"arrived_idx": 0, "next_idx": 0}
    nearest_idx = min(
        range(len(ordered_stops)),
        key=lambda i: haversine_km(position, ordered_stops[i].position),
    )
    next_idx = min(nearest_idx + 1, len(ordered_stops) - 1)
    return {"arrived_idx": nearest_idx, "next_idx": next_idx}
