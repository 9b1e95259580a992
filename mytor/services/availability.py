"""
Availability Model

Answers "is the business open on this date, and when?" from
- weekly windows (one or more per weekday)
- blocked dates, which close the whole day regardless of windows
"""
from datetime import date
from typing import Iterable, List, Set

from mytor.models.db_models import BusinessProfile, DateException, TimeWindow
from mytor.services import time_utils


class AvailabilityModel:
    def __init__(self, windows: Iterable[TimeWindow], exceptions: Iterable[DateException] = ()):
        self._windows = [w for w in windows if w.active]
        self._blocked: Set[date] = {e.date for e in exceptions}

    @classmethod
    def from_profile(cls, profile: BusinessProfile) -> "AvailabilityModel":
        return cls(profile.windows, profile.exceptions)

    def is_exception(self, target: date) -> bool:
        return target in self._blocked

    def windows_for(self, target: date) -> List[TimeWindow]:
        if self.is_exception(target):
            return []
        weekday = target.weekday()
        matching = [w for w in self._windows if w.weekday == weekday]
        return sorted(matching, key=lambda w: w.start_minutes)

    def is_open(self, target: date) -> bool:
        return bool(self.windows_for(target))

    def is_time_within_hours(self, target: date, start_time: str) -> bool:
        """True when `start_time` begins inside one of the day's windows."""
        return any(
            time_utils.is_within_window(start_time, w.start, w.end)
            for w in self.windows_for(target)
        )
