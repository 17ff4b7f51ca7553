"""
Type definitions for the bus tracking backend.

This module contains type aliases and custom types used across the backend.
"""

from typing import Any, Callable, Dict, List, Tuple

# =============================================================================
# Basic type aliases
# =============================================================================

# Coordinates as (lat, lon) tuples, degrees
Waypoint = Tuple[float, float]

# Ordered sequence of waypoints
Polyline = List[Waypoint]

# Epoch milliseconds
EpochMs = int

# Time in minutes since midnight
Minutes = int

# =============================================================================
# Store types
# =============================================================================

# Raw bus/stop record as persisted in the store
RawRecord = Dict[str, Any]

# Subscription callback and its teardown handle
Listener = Callable[[Any], None]
Unsubscribe = Callable[[], None]

# =============================================================================
# Routing types
# =============================================================================

# Maps stop positions to a (possibly denser) road polyline
PolylineProvider = Callable[[Polyline], Polyline]

# OSRM geometry cache key format: "lat,lon;lat,lon;..."
CacheKey = str
