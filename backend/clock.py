"""Injectable wall clock used by the tracker, services and API."""

from datetime import datetime, timedelta, timezone
from typing import Optional


class Clock:
    """System wall clock (UTC-aware)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def now_ms(self) -> int:
        return int(self.now().timestamp() * 1000)


class FrozenClock(Clock):
    """Manually driven clock for deterministic simulations and tests."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        current = start or datetime.now(timezone.utc)
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        self._current = current

    def now(self) -> datetime:
        return self._current

    def set(self, value: datetime) -> None:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        self._current = value

    def advance(self, seconds: float = 0.0, minutes: float = 0.0) -> datetime:
        self._current = self._current + timedelta(seconds=seconds, minutes=minutes)
        return self._current


system_clock = Clock()
