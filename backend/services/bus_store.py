"""
Reactive bus/stop store.

Keeps synchronous in-memory snapshots of bus records and per-bus stop
lists and notifies subscribers on every change. Readers always get the
best-known snapshot: unknown ids yield None / an empty list, never an
error. Instances are passed explicitly to the services and the API.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from copy import deepcopy
from threading import RLock
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from models import Bus, Stop, normalize_position
from type_defs import Listener, RawRecord, Unsubscribe

logger = logging.getLogger(__name__)


class BusNotFoundError(KeyError):
    """Raised by writes that need an existing bus record."""


# ============================================================
# NORMALIZATION
# ============================================================

def _as_list(value: Any) -> List[Any]:
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        return list(value.values())
    return []


def normalize_stops(value: Any) -> List[Stop]:
    """
    Read a stored stop list, tolerating the shapes older clients wrote.

    Positions may be nested (``position``) or top-level (``lat``/``lng``,
    ``latitude``/``longitude``). Entries without a usable position are
    dropped.
    """
    stops: List[Stop] = []
    for raw in _as_list(value):
        if isinstance(raw, Stop):
            stops.append(raw)
            continue
        if not isinstance(raw, dict):
            continue
        position = normalize_position(raw.get("position"))
        if position is None:
            position = normalize_position(raw)
        if position is None:
            continue
        try:
            stops.append(Stop.model_validate({**raw, "position": position}))
        except ValidationError as e:
            logger.warning(f"[BusStore] Dropping invalid stop {raw.get('name')!r}: {e.errors()[0]['msg']}")
    return stops


def _to_bus(record: Optional[RawRecord]) -> Optional[Bus]:
    if not record:
        return None
    try:
        return Bus.model_validate(record)
    except ValidationError as e:
        logger.warning(f"[BusStore] Unreadable bus record {record.get('id')!r}: {e}")
        return None


def _merge(target: RawRecord, patch: RawRecord) -> None:
    """Partial merge; nested dicts (e.g. ``sim``) merge key by key."""
    for key, value in patch.items():
        current = target.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            _merge(current, value)
        else:
            target[key] = deepcopy(value)


# ============================================================
# INTERFACE
# ============================================================

class BusStore(ABC):
    """Read/subscribe/write contract of the realtime bus store."""

    @abstractmethod
    def get_bus(self, bus_id: str) -> Optional[Bus]: ...

    @abstractmethod
    def list_buses(self) -> List[Bus]: ...

    @abstractmethod
    def get_stops(self, bus_id: str) -> List[Stop]: ...

    @abstractmethod
    def subscribe_bus(self, bus_id: str, callback: Listener) -> Unsubscribe: ...

    @abstractmethod
    def subscribe_buses(self, callback: Listener) -> Unsubscribe: ...

    @abstractmethod
    def subscribe_stops(self, bus_id: str, callback: Listener) -> Unsubscribe: ...

    @abstractmethod
    def create_bus(self, record: RawRecord) -> Bus: ...

    @abstractmethod
    def update_bus(self, bus_id: str, patch: RawRecord) -> Bus: ...

    @abstractmethod
    def set_stops(self, bus_id: str, stops: Iterable[Any]) -> List[Stop]: ...


# ============================================================
# IN-MEMORY IMPLEMENTATION
# ============================================================

class InMemoryBusStore(BusStore):
    """Thread-safe in-memory store with per-bus and list subscriptions."""

    def __init__(self) -> None:
        self._buses: Dict[str, RawRecord] = {}
        self._stops: Dict[str, List[RawRecord]] = {}
        self._bus_subs: Dict[str, List[Listener]] = {}
        self._stops_subs: Dict[str, List[Listener]] = {}
        self._list_subs: List[Listener] = []
        self._lock = RLock()

    # -------------------- reads --------------------

    def get_bus(self, bus_id: str) -> Optional[Bus]:
        with self._lock:
            record = deepcopy(self._buses.get(bus_id))
        return _to_bus(record)

    def list_buses(self) -> List[Bus]:
        with self._lock:
            records = deepcopy(list(self._buses.values()))
        return [bus for bus in (_to_bus(r) for r in records) if bus is not None]

    def get_stops(self, bus_id: str) -> List[Stop]:
        with self._lock:
            records = deepcopy(self._stops.get(bus_id, []))
        return normalize_stops(records)

    # -------------------- subscriptions --------------------

    def subscribe_bus(self, bus_id: str, callback: Listener) -> Unsubscribe:
        with self._lock:
            self._bus_subs.setdefault(bus_id, []).append(callback)
        current = self.get_bus(bus_id)
        if current is not None:
            self._deliver(callback, current)

        def unsubscribe() -> None:
            with self._lock:
                subs = self._bus_subs.get(bus_id, [])
                if callback in subs:
                    subs.remove(callback)
                if not subs:
                    self._bus_subs.pop(bus_id, None)

        return unsubscribe

    def subscribe_buses(self, callback: Listener) -> Unsubscribe:
        with self._lock:
            self._list_subs.append(callback)
        self._deliver(callback, self.list_buses())

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._list_subs:
                    self._list_subs.remove(callback)

        return unsubscribe

    def subscribe_stops(self, bus_id: str, callback: Listener) -> Unsubscribe:
        with self._lock:
            self._stops_subs.setdefault(bus_id, []).append(callback)
        self._deliver(callback, self.get_stops(bus_id))

        def unsubscribe() -> None:
            with self._lock:
                subs = self._stops_subs.get(bus_id, [])
                if callback in subs:
                    subs.remove(callback)
                if not subs:
                    self._stops_subs.pop(bus_id, None)

        return unsubscribe

    # -------------------- writes --------------------

    def create_bus(self, record: RawRecord) -> Bus:
        bus = Bus.model_validate(record)
        with self._lock:
            if bus.id in self._buses:
                raise ValueError(f"Bus '{bus.id}' already exists")
            self._buses[bus.id] = bus.to_record()
            self._stops.setdefault(bus.id, [])
        logger.info(f"[BusStore] Created bus {bus.id}")
        self._notify_bus(bus.id)
        return bus

    def update_bus(self, bus_id: str, patch: RawRecord) -> Bus:
        with self._lock:
            record = self._buses.get(bus_id)
            if record is None:
                raise BusNotFoundError(bus_id)
            candidate = deepcopy(record)
            _merge(candidate, dict(patch))
            candidate["id"] = bus_id
            bus = Bus.model_validate(candidate)
            self._buses[bus_id] = candidate
        self._notify_bus(bus_id)
        return bus

    def set_stops(self, bus_id: str, stops: Iterable[Any]) -> List[Stop]:
        normalized = normalize_stops(list(stops))
        with self._lock:
            if bus_id not in self._buses:
                raise BusNotFoundError(bus_id)
            self._stops[bus_id] = [s.to_record() for s in normalized]
        logger.info(f"[BusStore] Stored {len(normalized)} stops for bus {bus_id}")
        self._notify_stops(bus_id)
        return normalized

    # -------------------- delivery --------------------

    def _deliver(self, callback: Listener, payload: Any) -> None:
        try:
            callback(payload)
        except Exception:
            logger.exception("[BusStore] Subscriber callback failed")

    def _notify_bus(self, bus_id: str) -> None:
        bus = self.get_bus(bus_id)
        with self._lock:
            per_bus = list(self._bus_subs.get(bus_id, []))
            list_subs = list(self._list_subs)
        if bus is not None:
            for callback in per_bus:
                self._deliver(callback, bus)
        if list_subs:
            snapshot = self.list_buses()
            for callback in list_subs:
                self._deliver(callback, snapshot)

    def _notify_stops(self, bus_id: str) -> None:
        stops = self.get_stops(bus_id)
        with self._lock:
            subs = list(self._stops_subs.get(bus_id, []))
        for callback in subs:
            self._deliver(callback, stops)
