"""
Bus Tracking API.

Endpoints used by the dashboards:
- Bus records (GET/POST /api/buses, PATCH /api/buses/{bus_id})
- Live view per bus (GET /api/buses/{bus_id}/live)
- Driver sharing toggle and speed jitter (POST .../sharing, POST .../jitter)
- Stop list per bus (GET/PUT /api/buses/{bus_id}/stops)

Read endpoints never write to the store. Endpoints that may fetch road
geometry are plain functions so FastAPI runs them in its threadpool.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field, field_validator

from clock import Clock
from models import Bus, LiveView, Stop, parse_hhmm
from services.bus_store import BusNotFoundError, BusStore
from services.live_tracker import build_live_view
from services.sharing_service import SharingService
from type_defs import PolylineProvider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/buses", tags=["tracking"])


# =============================================================================
# Request models
# =============================================================================

def _check_start_time(value: Optional[str]) -> Optional[str]:
    if value in (None, ""):
        return None
    if parse_hhmm(value) is None:
        raise ValueError("start_time must be HH:MM")
    return value


class BusCreate(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    name: str = Field(default="", max_length=120)
    driver_name: str = Field(default="", max_length=120)
    driver_phone: str = Field(default="", max_length=32)
    start_time: Optional[str] = None

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, v):
        return _check_start_time(v)


class BusUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=120)
    driver_name: Optional[str] = Field(default=None, max_length=120)
    driver_phone: Optional[str] = Field(default=None, max_length=32)
    start_time: Optional[str] = None

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, v):
        return _check_start_time(v)


class SharingRequest(BaseModel):
    sharing: bool


# =============================================================================
# Dependencies
# =============================================================================

def get_store(request: Request) -> BusStore:
    return request.app.state.store


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_polyline_provider(request: Request) -> PolylineProvider:
    return request.app.state.polyline_provider


def get_sharing_service(request: Request) -> SharingService:
    return request.app.state.sharing_service


def _require_bus(store: BusStore, bus_id: str) -> Bus:
    bus = store.get_bus(bus_id)
    if bus is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Bus '{bus_id}' not found")
    return bus


# =============================================================================
# Bus records
# =============================================================================

@router.get("", response_model=List[Bus])
async def list_buses(store: BusStore = Depends(get_store)) -> List[Bus]:
    return store.list_buses()


@router.post("", response_model=Bus, status_code=status.HTTP_201_CREATED)
async def create_bus(payload: BusCreate, store: BusStore = Depends(get_store)) -> Bus:
    record = {
        "id": payload.id,
        "name": payload.name,
        "driverName": payload.driver_name,
        "driverPhone": payload.driver_phone,
        "startTime": payload.start_time,
    }
    try:
        return store.create_bus(record)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.patch("/{bus_id}", response_model=Bus)
async def update_bus(bus_id: str, payload: BusUpdate, store: BusStore = Depends(get_store)) -> Bus:
    aliases = {"name": "name", "driver_name": "driverName", "driver_phone": "driverPhone", "start_time": "startTime"}
    patch = {aliases[k]: v for k, v in payload.model_dump(exclude_unset=True).items()}
    try:
        return store.update_bus(bus_id, patch)
    except BusNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Bus '{bus_id}' not found") from exc


@router.get("/{bus_id}", response_model=Bus)
async def get_bus(bus_id: str, store: BusStore = Depends(get_store)) -> Bus:
    return _require_bus(store, bus_id)


# =============================================================================
# Live view and driver controls
# =============================================================================

@router.get("/{bus_id}/live", response_model=LiveView)
def get_live_view(
    bus_id: str,
    store: BusStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
    polyline_provider: PolylineProvider = Depends(get_polyline_provider),
) -> LiveView:
    bus = _require_bus(store, bus_id)
    return build_live_view(bus, store.get_stops(bus_id), clock.now(), polyline_provider)


@router.post("/{bus_id}/sharing", response_model=Bus)
def set_sharing(
    bus_id: str,
    payload: SharingRequest,
    service: SharingService = Depends(get_sharing_service),
) -> Bus:
    try:
        return service.set_sharing(bus_id, payload.sharing)
    except BusNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Bus '{bus_id}' not found") from exc


@router.post("/{bus_id}/jitter")
def jitter_speed(
    bus_id: str,
    store: BusStore = Depends(get_store),
    service: SharingService = Depends(get_sharing_service),
) -> dict:
    _require_bus(store, bus_id)
    updated = service.jitter(bus_id)
    return {
        "bus_id": bus_id,
        "updated": updated is not None,
        "speed_kmph": updated.sim.speed_kmph if updated is not None and updated.sim else None,
    }


# =============================================================================
# Stops
# =============================================================================

@router.get("/{bus_id}/stops", response_model=List[Stop])
async def get_stops(bus_id: str, store: BusStore = Depends(get_store)) -> List[Stop]:
    _require_bus(store, bus_id)
    return store.get_stops(bus_id)


@router.put("/{bus_id}/stops", response_model=List[Stop])
async def replace_stops(
    bus_id: str,
    stops: List[Dict[str, Any]] = Body(...),
    store: BusStore = Depends(get_store),
) -> List[Stop]:
    try:
        return store.set_stops(bus_id, stops)
    except BusNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Bus '{bus_id}' not found") from exc
