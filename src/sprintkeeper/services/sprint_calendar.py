"""
Sprint Calendar
Pure index <-> date arithmetic for fixed-length sprint cycles.

Sprint 0 starts at the anchor instant. Every sprint lasts exactly one cycle and
ends one second before the next one starts. Nothing here reads the system
clock; callers pass `now` in.
"""
import math
from datetime import datetime, timedelta
from typing import List, Optional

from sprintkeeper.config import settings
from sprintkeeper.core.exceptions import ConfigurationError
from sprintkeeper.schema.api import SprintInfo
from sprintkeeper.schema.enums import SprintStatus
from sprintkeeper.utils.clock import as_utc

ONE_SECOND = timedelta(seconds=1)
ONE_DAY = timedelta(days=1)

DEFAULT_HISTORIC_COUNT = 24
DEFAULT_FUTURE_COUNT = 6


def _require_count(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {value}")
    return value


class SprintCalendar:
    def __init__(self, anchor: Optional[datetime] = None, cycle_length: Optional[timedelta] = None):
        if anchor is None:
            anchor = settings.sprint_anchor
        if cycle_length is None:
            cycle_length = timedelta(days=settings.sprint_cycle_days)

        if not isinstance(anchor, datetime):
            raise ConfigurationError(f"Sprint anchor must be a datetime, got {anchor!r}")
        if not isinstance(cycle_length, timedelta) or cycle_length <= ONE_SECOND:
            raise ConfigurationError(f"Cycle length must be longer than one second, got {cycle_length!r}")

        self.anchor = as_utc(anchor)
        self.cycle_length = cycle_length

    @classmethod
    def from_settings(cls) -> "SprintCalendar":
        return cls(settings.sprint_anchor, timedelta(days=settings.sprint_cycle_days))

    def sprint_index_for(self, moment: datetime) -> int:
        """Index of the sprint containing `moment`. Negative before the anchor."""
        return (as_utc(moment) - self.anchor) // self.cycle_length

    def start_of(self, index: int) -> datetime:
        return self.anchor + index * self.cycle_length

    def end_of(self, index: int) -> datetime:
        return self.start_of(index) + self.cycle_length - ONE_SECOND

    def status_of(self, index: int, now: datetime) -> SprintStatus:
        current = self.sprint_index_for(now)
        if index < current:
            return SprintStatus.HISTORIC
        if index == current:
            return SprintStatus.CURRENT
        return SprintStatus.FUTURE

    def historic_indices(self, now: datetime, max_count: int = DEFAULT_HISTORIC_COUNT) -> List[int]:
        """Up to `max_count` indices right before the current one, never below 0, ascending."""
        max_count = _require_count("max_count", max_count)
        current = self.sprint_index_for(now)
        first = max(0, current - max_count)
        return list(range(first, current))

    def future_indices(self, now: datetime, count: int = DEFAULT_FUTURE_COUNT) -> List[int]:
        count = _require_count("count", count)
        current = self.sprint_index_for(now)
        return list(range(current + 1, current + 1 + count))

    def wanted_indices(
        self,
        now: datetime,
        historic_count: int = DEFAULT_HISTORIC_COUNT,
        future_count: int = DEFAULT_FUTURE_COUNT,
    ) -> List[int]:
        """Every index an owner should have stored at `now`, ascending."""
        current = self.sprint_index_for(now)
        return (
            self.historic_indices(now, historic_count)
            + [current]
            + self.future_indices(now, future_count)
        )

    def sprint_info(self, index: int, now: datetime) -> SprintInfo:
        return SprintInfo(
            index=index,
            start_at=self.start_of(index),
            end_at=self.end_of(index),
            status=self.status_of(index, now),
        )

    def days_remaining(self, now: datetime) -> int:
        """Whole days (rounded up) until the current sprint ends."""
        now = as_utc(now)
        remaining = self.end_of(self.sprint_index_for(now)) - now
        return max(0, math.ceil(remaining / ONE_DAY))

    @staticmethod
    def format_date(moment: datetime) -> str:
        moment = as_utc(moment)
        return f"{moment:%b} {moment.day}, {moment.year}"

    @staticmethod
    def format_date_range(start: datetime, end: datetime) -> str:
        start, end = as_utc(start), as_utc(end)
        return f"{start:%b} {start.day} - {end:%b} {end.day}, {end.year}"
