"""
Time arithmetic shared by every scheduling component.

Times of day travel as "HH:MM" strings and are compared as minutes since
midnight. Intervals are half-open: [start, start + duration).
"""
import re
from datetime import date, datetime

from mytor.core.exceptions import ValidationError

MINUTES_PER_DAY = 24 * 60

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def to_minutes(value: str) -> int:
    """Parses "HH:MM" or "HH:MM:SS" into minutes since midnight; seconds are dropped."""
    if not isinstance(value, str):
        raise ValidationError(f"Invalid time value: {value!r}")

    match = _TIME_RE.match(value.strip())
    if not match:
        raise ValidationError(f"Invalid time format: {value!r}. Expected HH:MM")

    hours, minutes = int(match.group(1)), int(match.group(2))
    seconds = int(match.group(3)) if match.group(3) else 0
    if not (0 <= hours <= 23) or not (0 <= minutes <= 59) or not (0 <= seconds <= 59):
        raise ValidationError(f"Invalid time value: {value!r}")

    return hours * 60 + minutes


def to_time_string(minutes: int) -> str:
    if not isinstance(minutes, int) or isinstance(minutes, bool) or not (0 <= minutes < MINUTES_PER_DAY):
        raise ValidationError(f"Invalid minutes value: {minutes!r}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_time(value: str) -> str:
    """Canonical zero-padded "HH:MM" form ("9:05:30" -> "09:05")."""
    return to_time_string(to_minutes(value))


def overlaps(start_a: int, duration_a: int, start_b: int, duration_b: int) -> bool:
    # Touching intervals (a ends exactly when b starts) do not overlap
    return start_a < start_b + duration_b and start_b < start_a + duration_a


def add_minutes(value: str, minutes: int) -> str:
    return to_time_string(to_minutes(value) + minutes)


def minutes_between(start: str, end: str) -> int:
    return to_minutes(end) - to_minutes(start)


def is_within_window(value: str, window_start: str, window_end: str) -> bool:
    t = to_minutes(value)
    return to_minutes(window_start) <= t < to_minutes(window_end)


def parse_date(value) -> date:
    """Accepts a date or an ISO "YYYY-MM-DD" string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r}. Expected YYYY-MM-DD")


def now_minutes(now: datetime) -> int:
    return now.hour * 60 + now.minute


def is_past_date(target: date, now: datetime) -> bool:
    return target < now.date()


def is_past_time(value: str, target: date, now: datetime) -> bool:
    """True only when `target` is today and `value` is at or before the current minute."""
    if target != now.date():
        return False
    return to_minutes(value) <= now_minutes(now)
