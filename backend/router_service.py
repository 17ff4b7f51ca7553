"""
Road geometry for bus routes via OSRM.

The simulation engine works on any polyline; OSRM only makes it follow
real roads. When the service is disabled or fails, stops are joined by
straight lines densified at ``DENSIFY_STEP_KM``.
"""

import logging
from typing import List, Optional, Sequence

import requests

from config import config
from config.osrm import osrm_config
from geo import densify_by_km
from type_defs import CacheKey, Waypoint

logger = logging.getLogger(__name__)

# Simple in-memory cache to avoid hitting the API for the same stop sequence
# Key: "lat,lon;lat,lon;...", Value: geometry as (lat, lon) points
_geometry_cache: dict = {}


def _get_cache_key(points: Sequence[Waypoint]) -> CacheKey:
    return ";".join(f"{round(lat, 5)},{round(lon, 5)}" for lat, lon in points)


def _remember(key: CacheKey, geometry: List[Waypoint]) -> None:
    if not osrm_config.CACHE_ENABLED:
        return
    if len(_geometry_cache) >= osrm_config.CACHE_MAX_SIZE:
        # Drop the oldest entry (dicts keep insertion order)
        _geometry_cache.pop(next(iter(_geometry_cache)))
    _geometry_cache[key] = geometry


def clear_cache() -> None:
    _geometry_cache.clear()


def get_route_geometry(points: Sequence[Waypoint]) -> Optional[List[Waypoint]]:
    """
    Fetch a road-following polyline through ``points`` from OSRM.
    Returns None if disabled or the API fails.
    """
    if not osrm_config.GEOMETRY_ENABLED or len(points or []) < 2:
        return None

    key = _get_cache_key(points)
    if osrm_config.CACHE_ENABLED and key in _geometry_cache:
        return list(_geometry_cache[key])

    # Format: lon,lat;lon,lat
    coords = ";".join(f"{lon},{lat}" for lat, lon in points)
    url = f"{osrm_config.get_route_url()}/{coords}"
    params = {
        "overview": "full",
        "geometries": "geojson",
        "steps": "false",
        "continue_straight": "true",
    }
    try:
        response = requests.get(url, params=params, timeout=osrm_config.TIMEOUT_SECONDS)
        if response.status_code != 200:
            logger.warning(f"[OSRM Geometry] HTTP {response.status_code}")
            return None
        data = response.json()
        if data.get("code") != "Ok" or not data.get("routes"):
            logger.warning(f"[OSRM Geometry] Route error: {data.get('code')}")
            return None
        coordinates = data["routes"][0].get("geometry", {}).get("coordinates") or []
        if not coordinates:
            logger.warning("[OSRM Geometry] Empty geometry")
            return None
        # GeoJSON is [lon, lat]
        geometry = [(float(c[1]), float(c[0])) for c in coordinates]
    except (requests.RequestException, ValueError, KeyError, IndexError, TypeError) as e:
        logger.warning(f"[OSRM Geometry] Request failed: {e}")
        return None

    _remember(key, geometry)
    logger.debug(f"[OSRM Geometry] {len(points)} stops -> {len(geometry)} points")
    return list(geometry)


def build_route_polyline(points: Sequence[Waypoint]) -> List[Waypoint]:
    """Road geometry when available, otherwise densified straight lines."""
    geometry = get_route_geometry(points)
    if geometry:
        return geometry
    return densify_by_km(points, config.DENSIFY_STEP_KM)
