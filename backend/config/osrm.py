"""
OSRM settings for road-following bus geometry.

Only the route service is used; when it is disabled or unreachable the
tracker joins stops with densified straight lines.
"""

import os

PUBLIC_OSRM_HOST = "router.project-osrm.org"


class OSRMConfig:
    """Route geometry provider settings, read from the environment."""

    BASE_URL: str = os.getenv("OSRM_BASE_URL", f"https://{PUBLIC_OSRM_HOST}")
    PROFILE: str = os.getenv("OSRM_PROFILE", "driving")

    # Set to false to always use the straight-line fallback
    GEOMETRY_ENABLED: bool = os.getenv("OSRM_GEOMETRY_ENABLED", "true").lower() == "true"

    # Geometry cache, keyed by stop sequence
    CACHE_ENABLED: bool = os.getenv("OSRM_CACHE_ENABLED", "true").lower() == "true"
    CACHE_MAX_SIZE: int = int(os.getenv("OSRM_CACHE_MAX_SIZE", "256"))

    TIMEOUT_SECONDS: float = float(os.getenv("OSRM_TIMEOUT", "5.0"))

    @classmethod
    def get_route_url(cls) -> str:
        return os.getenv("OSRM_ROUTE_URL", f"{cls.BASE_URL}/route/v1/{cls.PROFILE}")

    @classmethod
    def get_config_dict(cls) -> dict:
        """Return OSRM settings as dictionary (for debugging)."""
        return {
            "ROUTE_URL": cls.get_route_url(),
            "GEOMETRY_ENABLED": cls.GEOMETRY_ENABLED,
            "CACHE_ENABLED": cls.CACHE_ENABLED,
            "CACHE_MAX_SIZE": cls.CACHE_MAX_SIZE,
            "TIMEOUT_SECONDS": cls.TIMEOUT_SECONDS,
            "PUBLIC_SERVER": PUBLIC_OSRM_HOST in cls.BASE_URL,
        }


osrm_config = OSRMConfig()
