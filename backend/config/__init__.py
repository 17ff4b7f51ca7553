"""
Configuration module for the bus tracking backend.

Centralizes tracker settings (route origin, phase window, simulation
timers) loaded from environment variables.
"""

import os
from typing import Tuple


class Config:
    """Application configuration loaded from environment variables."""

    # Local clock used for route phase and planned times
    TIMEZONE: str = os.getenv("TIMEZONE", "Asia/Kolkata")

    # Route origin (campus). Fixed so live movement never mutates it.
    ORIGIN_NAME: str = os.getenv("ORIGIN_NAME", "vignan university")
    ORIGIN_LABEL: str = os.getenv("ORIGIN_LABEL", "Vignan University")
    ORIGIN_LAT: float = float(os.getenv("ORIGIN_LAT", "16.2315471"))
    ORIGIN_LON: float = float(os.getenv("ORIGIN_LON", "80.5526116"))

    # Morning (inbound) window, inclusive on both ends
    MORNING_WINDOW_START: str = os.getenv("MORNING_WINDOW_START", "05:00")
    MORNING_WINDOW_END: str = os.getenv("MORNING_WINDOW_END", "10:30")
    MORNING_START_TIME: str = os.getenv("MORNING_START_TIME", "06:30")
    EVENING_START_TIME: str = os.getenv("EVENING_START_TIME", "16:30")
    MORNING_FALLBACK_DURATION_MINS: int = int(os.getenv("MORNING_FALLBACK_DURATION_MINS", "81"))

    # Simulation
    DEFAULT_SPEED_KMPH: float = float(os.getenv("DEFAULT_SPEED_KMPH", "30"))
    MIN_SPEED_KMPH: float = float(os.getenv("MIN_SPEED_KMPH", "1"))
    JITTER_MIN_KMPH: int = int(os.getenv("JITTER_MIN_KMPH", "10"))
    JITTER_MAX_KMPH: int = int(os.getenv("JITTER_MAX_KMPH", "60"))
    TICK_INTERVAL_SECONDS: float = float(os.getenv("TICK_INTERVAL_SECONDS", "1.0"))
    JITTER_INTERVAL_SECONDS: float = float(os.getenv("JITTER_INTERVAL_SECONDS", "30.0"))
    DENSIFY_STEP_KM: float = float(os.getenv("DENSIFY_STEP_KM", "0.12"))

    # Live timeline
    ARRIVAL_RADIUS_KM: float = float(os.getenv("ARRIVAL_RADIUS_KM", "0.08"))
    LEFT_THRESHOLD_KM: float = float(os.getenv("LEFT_THRESHOLD_KM", "0.1"))
    MAX_DELAY_MINUTES: int = int(os.getenv("MAX_DELAY_MINUTES", "15"))
    MAX_PLANNED_OFFSET_MINS: int = int(os.getenv("MAX_PLANNED_OFFSET_MINS", "1440"))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    @classmethod
    def origin(cls) -> Tuple[float, float]:
        return (cls.ORIGIN_LAT, cls.ORIGIN_LON)

    @classmethod
    def get_config_dict(cls) -> dict:
        """Return configuration as dictionary (for debugging)."""
        return {
            "TIMEZONE": cls.TIMEZONE,
            "ORIGIN": [cls.ORIGIN_LAT, cls.ORIGIN_LON],
            "ORIGIN_LABEL": cls.ORIGIN_LABEL,
            "MORNING_WINDOW": f"{cls.MORNING_WINDOW_START}-{cls.MORNING_WINDOW_END}",
            "MORNING_START_TIME": cls.MORNING_START_TIME,
            "EVENING_START_TIME": cls.EVENING_START_TIME,
            "DEFAULT_SPEED_KMPH": cls.DEFAULT_SPEED_KMPH,
            "TICK_INTERVAL_SECONDS": cls.TICK_INTERVAL_SECONDS,
            "JITTER_INTERVAL_SECONDS": cls.JITTER_INTERVAL_SECONDS,
            "MAX_DELAY_MINUTES": cls.MAX_DELAY_MINUTES,
            "LOG_LEVEL": cls.LOG_LEVEL,
        }


# Global configuration instance
config = Config()

__all__ = ["Config", "config"]
