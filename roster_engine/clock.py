"""Time sources used for ``submitted_at`` stamps and window checks."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Deterministic clock for tests and replays.

    Every call to :meth:`now` returns the current instant and then moves it
    forward by ``step``, so consecutive stamps stay strictly ordered when a
    non-zero step is given.
    """

    def __init__(self, current: datetime, *, step: timedelta = timedelta(0)) -> None:
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        self.current = current
        self.step = step

    def now(self) -> datetime:
        value = self.current
        self.current = self.current + self.step
        return value

    def advance(self, delta: timedelta) -> datetime:
        self.current = self.current + delta
        return self.current

    def set(self, value: datetime) -> None:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        self.current = value


__all__ = ["Clock", "FixedClock", "SystemClock"]
