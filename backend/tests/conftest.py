"""
Pytest configuration and shared fixtures for the bus tracker backend tests.
"""
import os
import sys
from datetime import datetime, timezone
from typing import List

import pytest

# Never reach the public OSRM server from tests
os.environ.setdefault("OSRM_GEOMETRY_ENABLED", "false")

# Add backend to path
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from clock import FrozenClock
from config import config
from models import Stop
from services.bus_store import InMemoryBusStore

# Kilometres per degree of latitude for the haversine radius (6371 km)
KM_PER_DEG_LAT = 6371.0 * 3.141592653589793 / 180.0

ORIGIN = (config.ORIGIN_LAT, config.ORIGIN_LON)

# 17:00 in Asia/Kolkata (evening phase)
EVENING_UTC = datetime(2026, 10, 19, 11, 30, tzinfo=timezone.utc)
# 07:00 in Asia/Kolkata (morning phase)
MORNING_UTC = datetime(2026, 10, 19, 1, 30, tzinfo=timezone.utc)


def north_of(point, km: float):
    """Point ``km`` kilometres due north of ``point`` (exact for haversine)."""
    return (point[0] + km / KM_PER_DEG_LAT, point[1])


# ============================================================
# FIXTURES FOR STOPS
# ============================================================

@pytest.fixture
def three_stops() -> List[Stop]:
    """Stops A, B, C due north of the campus at 2, 6 and 12 km."""
    return [
        Stop(name="Alpha", position=north_of(ORIGIN, 2), planned_offset_mins=0),
        Stop(name="Bravo", position=north_of(ORIGIN, 6), planned_offset_mins=20),
        Stop(name="Charlie", position=north_of(ORIGIN, 12), planned_offset_mins=50),
    ]


@pytest.fixture
def stop_records(three_stops) -> List[dict]:
    return [s.to_record() for s in three_stops]


# ============================================================
# FIXTURES FOR STORE AND CLOCK
# ============================================================

@pytest.fixture
def evening_clock() -> FrozenClock:
    return FrozenClock(EVENING_UTC)


@pytest.fixture
def morning_clock() -> FrozenClock:
    return FrozenClock(MORNING_UTC)


@pytest.fixture
def store() -> InMemoryBusStore:
    return InMemoryBusStore()


@pytest.fixture
def seeded_store(store, stop_records) -> InMemoryBusStore:
    """Store with bus 'bus-1' (not sharing) and the three stops."""
    store.create_bus({
        "id": "bus-1",
        "name": "Route 1",
        "driverName": "R. Kumar",
        "driverPhone": "+91-9000000000",
        "startTime": "16:30",
    })
    store.set_stops("bus-1", stop_records)
    return store


# ============================================================
# TEST CONFIGURATION
# ============================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
