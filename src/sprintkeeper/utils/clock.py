"""
Clock seam.

The lifecycle engine reads the time exactly once per call, at its outermost
boundary, and hands the instant down to the pure calendar/validator code.
"""
from datetime import datetime, timedelta, timezone
from typing import Protocol


def as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """A clock that only moves when told to. Used by tests and replays."""

    def __init__(self, moment: datetime):
        self._moment = as_utc(moment)

    def now(self) -> datetime:
        return self._moment

    def set(self, moment: datetime):
        self._moment = as_utc(moment)

    def advance(self, delta: timedelta):
        self._moment = self._moment + delta
