"""
Pydantic models for buses, stops and the simulation descriptor.

Stored records use the camelCase keys of the realtime store
(``plannedOffsetMins``, ``speedKmph``, ``lastUpdateAt`` ...); models accept
both those aliases and the snake_case field names.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from config import config
from type_defs import Waypoint

RoutePhase = Literal["morning", "evening"]
SimMode = Literal["bounce", "loop"]


# ============================================================
# COERCION HELPERS
# ============================================================

def normalize_position(value: Any) -> Optional[Waypoint]:
    """
    Normalize a stored position into a (lat, lon) tuple.

    Accepts ``[lat, lng]``, ``{"lat", "lng"}``, ``{"latitude", "longitude"}``
    and index-keyed objects (``{"0": lat, "1": lng}``). Returns None when the
    value cannot be read as a coordinate pair.
    """
    lat: Any = None
    lon: Any = None
    if isinstance(value, (list, tuple)):
        if len(value) != 2:
            return None
        lat, lon = value
    elif isinstance(value, dict):
        if "lat" in value and "lng" in value:
            lat, lon = value["lat"], value["lng"]
        elif "lat" in value and "lon" in value:
            lat, lon = value["lat"], value["lon"]
        elif "latitude" in value and "longitude" in value:
            lat, lon = value["latitude"], value["longitude"]
        elif "0" in value and "1" in value:
            lat, lon = value["0"], value["1"]
        elif 0 in value and 1 in value:
            lat, lon = value[0], value[1]
        else:
            return None
    else:
        return None
    try:
        lat_f, lon_f = float(lat), float(lon)
    except (TypeError, ValueError, OverflowError):
        return None
    if not (math.isfinite(lat_f) and math.isfinite(lon_f)):
        return None
    return (lat_f, lon_f)


def parse_hhmm(value: Any) -> Optional[Tuple[int, int]]:
    """Parse an ``HH:MM`` string into (hour, minute); None if invalid."""
    if not isinstance(value, str):
        return None
    try:
        parts = value.strip().split(":")
        hour = int(parts[0])
        minute = int(parts[1])
    except (ValueError, IndexError):
        return None
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return hour, minute


def _to_float(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    return number if math.isfinite(number) else default


# ============================================================
# STOPS
# ============================================================

class Stop(BaseModel):
    """A named stop on a bus route with its planned offset from route start."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    position: Waypoint
    planned_offset_mins: int = Field(0, ge=0, le=config.MAX_PLANNED_OFFSET_MINS, alias="plannedOffsetMins")

    @field_validator("position", mode="before")
    @classmethod
    def _parse_position(cls, v):
        position = normalize_position(v)
        if position is None:
            raise ValueError("position must be a [lat, lon] pair")
        return position

    @field_validator("planned_offset_mins", mode="before")
    @classmethod
    def _parse_offset(cls, v):
        if v is None or v == "":
            return 0
        minutes = _to_float(v, math.nan)
        if math.isnan(minutes):
            raise ValueError("plannedOffsetMins must be a finite number")
        return int(round(minutes))

    def same_name(self, other: str) -> bool:
        """Stop identity is its name, compared case-insensitively."""
        return self.name.strip().lower() == str(other or "").strip().lower()

    def to_record(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ============================================================
# SIMULATION DESCRIPTOR
# ============================================================

class SimDescriptor(BaseModel):
    """
    Persisted motion state of a simulated bus.

    ``offset_km`` is the arc length traveled as of ``last_update_at``
    (epoch ms). While ``active`` the current arc length is extrapolated
    from that anchor; while inactive it is a frozen snapshot.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    active: bool = False
    speed_kmph: float = Field(config.DEFAULT_SPEED_KMPH, alias="speedKmph")
    direction: Literal[1, -1] = Field(1, alias="dir")
    mode: SimMode = "bounce"
    offset_km: float = Field(0.0, alias="offsetKm")
    last_update_at: int = Field(0, alias="lastUpdateAt")

    @field_validator("active", mode="before")
    @classmethod
    def _parse_active(cls, v):
        return bool(v)

    @field_validator("speed_kmph", mode="before")
    @classmethod
    def _parse_speed(cls, v):
        speed = _to_float(v, config.DEFAULT_SPEED_KMPH)
        return speed if speed > 0 else config.DEFAULT_SPEED_KMPH

    @field_validator("direction", mode="before")
    @classmethod
    def _parse_direction(cls, v):
        return -1 if _to_float(v, 1) == -1 else 1

    @field_validator("mode", mode="before")
    @classmethod
    def _parse_mode(cls, v):
        return "loop" if v == "loop" else "bounce"

    @field_validator("offset_km", mode="before")
    @classmethod
    def _parse_offset(cls, v):
        return _to_float(v, 0.0)

    @field_validator("last_update_at", mode="before")
    @classmethod
    def _parse_last_update(cls, v):
        return int(_to_float(v, 0.0))

    def to_record(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


@dataclass(frozen=True)
class Parked:
    """Bus not sharing; rests at the frozen arc length."""
    offset_km: float = 0.0


@dataclass(frozen=True)
class Moving:
    """Bus sharing; position extrapolated from the descriptor."""
    sim: SimDescriptor


MotionState = Union[Parked, Moving]


# ============================================================
# BUS
# ============================================================

class Bus(BaseModel):
    """A bus record as kept in the store."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = ""
    driver_name: str = Field("", alias="driverName")
    driver_phone: str = Field("", alias="driverPhone")
    start_time: Optional[str] = Field(None, alias="startTime")
    position: Optional[Waypoint] = None
    sim: Optional[SimDescriptor] = None

    @field_validator("id", mode="before")
    @classmethod
    def _parse_id(cls, v):
        return str(v) if v is not None else "unknown"

    @field_validator("name", "driver_name", "driver_phone", mode="before")
    @classmethod
    def _parse_text(cls, v):
        return "" if v is None else str(v)

    @field_validator("start_time", mode="before")
    @classmethod
    def _parse_start_time(cls, v):
        parsed = parse_hhmm(v)
        if parsed is None:
            return None
        return f"{parsed[0]:02d}:{parsed[1]:02d}"

    @field_validator("position", mode="before")
    @classmethod
    def _parse_position(cls, v):
        return normalize_position(v)

    @computed_field
    @property
    def sharing(self) -> bool:
        # Derived from the descriptor so the two can never disagree.
        return bool(self.sim is not None and self.sim.active)

    @property
    def motion(self) -> MotionState:
        if self.sim is None:
            return Parked()
        if self.sim.active:
            return Moving(self.sim)
        return Parked(self.sim.offset_km)

    def to_record(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ============================================================
# ROUTE AND SCHEDULE VIEWS
# ============================================================

class RouteForNow(BaseModel):
    """Route direction and ordered stops derived from the time of day."""

    phase: RoutePhase
    start_time: str
    start_place: str
    ordered_stops: List[Stop]
    timeline: List[Stop]

    @property
    def polyline(self) -> List[Waypoint]:
        return [s.position for s in self.ordered_stops]


class ScheduleRow(BaseModel):
    """One stop of the live timeline; ETA fields are None while unavailable."""

    name: str
    position: Waypoint
    planned_at: datetime
    eta_at: Optional[datetime] = None
    delay_mins: Optional[int] = None
    travel_mins: Optional[int] = None
    distance_km: Optional[float] = None

    @property
    def available(self) -> bool:
        return self.eta_at is not None


class TripProgress(BaseModel):
    arrived_idx: int = 0
    next_idx: int = 0
    arrived_name: Optional[str] = None
    next_name: Optional[str] = None
    distance_to_next_km: float = 0.0
    has_left_arrived: bool = False
    left_label: Optional[str] = None


class LiveView(BaseModel):
    """Everything a dashboard needs to render one bus at one instant."""

    bus_id: str
    name: str = ""
    phase: RoutePhase
    start_time: str
    start_place: str
    sharing: bool
    speed_kmph: float
    position: Optional[Waypoint] = None
    rows: List[ScheduleRow] = Field(default_factory=list)
    progress: Optional[TripProgress] = None
    generated_at: datetime
