"""Great-circle distance and straight-line polyline helpers."""

import math
from typing import List, Sequence

from type_defs import Waypoint

EARTH_RADIUS_KM: float = 6371.0


def haversine_km(a: Waypoint, b: Waypoint) -> float:
    """Calculate distance between two (lat, lon) points using haversine formula."""
    lat1_r, lat2_r = math.radians(a[0]), math.radians(b[0])
    dlat = math.radians(b[0] - a[0])
    dlon = math.radians(b[1] - a[1])
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


def lerp(a: Waypoint, b: Waypoint, t: float) -> Waypoint:
    return (a[0] + (b[0] - a[0]) * t, a[1] + (b[1] - a[1]) * t)


def densify_by_km(points: Sequence[Waypoint], step_km: float = 0.12) -> List[Waypoint]:
    """
    Split every segment into equal straight-line steps of at most ``step_km``.

    Used when no road geometry is available so the simulated bus still
    moves smoothly between sparse stops.
    """
    if not points or len(points) < 2:
        return list(points or [])
    out: List[Waypoint] = [tuple(points[0])]
    for a, b in zip(points, points[1:]):
        d = max(0.001, haversine_km(a, b))
        steps = max(1, math.ceil(d / step_km))
        for s in range(1, steps + 1):
            out.append(lerp(a, b, s / steps))
    return out
