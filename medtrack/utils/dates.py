# medtrack/utils/dates.py
from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Iterator, Optional, Tuple, Union

from medtrack.core.errors import ValidationError

DateLike = Union[date, datetime, str]

_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*([AaPp][Mm])?\s*$")
_LOOSE_TIME_RE = re.compile(r"(\d{1,2}):(\d{2})")

WEEKDAY_LABELS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")


class Clock:
    def now(self) -> datetime:
        raise NotImplementedError

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now()


class FixedClock(Clock):
    """Clock pinned to one instant; tests move it with `advance`."""

    def __init__(self, at: datetime):
        self._at = at

    def now(self) -> datetime:
        return self._at

    def advance(self, **kwargs) -> None:
        self._at = self._at + timedelta(**kwargs)


def format_iso_date(d: date) -> str:
    return d.strftime("%Y-%m-%d")


def parse_iso_date(value: DateLike) -> date:
    """
    Accepts a date, a datetime, "YYYY-MM-DD" or a full ISO date-time string
    (the date part is kept).
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Invalid date: {value!r}")

    text = value.strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r}")


def parse_iso_datetime(value: DateLike) -> Optional[datetime]:
    """Lenient: returns None when the value has no usable date."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip().replace("Z", "+00:00")
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    # naive local time everywhere else in the service
    return dt.replace(tzinfo=None) if dt.tzinfo else dt


def iter_days(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def days_between(start: date, end: date) -> int:
    return (end - start).days


def js_weekday(d: date) -> int:
    # 0 = Sunday .. 6 = Saturday
    return (d.weekday() + 1) % 7


def month_day(d: date) -> int:
    return d.day


def parse_time(value: str) -> Tuple[int, int]:
    """
    "08:00", "8:00 AM", "12:30 pm" -> (hour, minute) on a 24h clock.
    """
    m = _TIME_RE.match(value or "")
    if not m:
        raise ValidationError(f"Invalid time: {value!r}")

    hour, minute = int(m.group(1)), int(m.group(2))
    period = (m.group(3) or "").upper()

    if period:
        if not 1 <= hour <= 12:
            raise ValidationError(f"Invalid time: {value!r}")
        if period == "PM" and hour < 12:
            hour += 12
        if period == "AM" and hour == 12:
            hour = 0

    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValidationError(f"Invalid time: {value!r}")
    return hour, minute


def time_to_minutes(value: str) -> Optional[int]:
    if not value or not isinstance(value, str):
        return None
    m = _LOOSE_TIME_RE.search(value)
    if not m:
        return None
    hour, minute = int(m.group(1)), int(m.group(2))
    upper = value.upper()
    if "PM" in upper and hour != 12:
        hour += 12
    if "AM" in upper and hour == 12:
        hour = 0
    return hour * 60 + minute


def format_hhmm(hour: int, minute: int) -> str:
    return f"{hour:02d}:{minute:02d}"


def shift_minutes(hour: int, minute: int, weekday: int, delta: int) -> Tuple[int, int, int]:
    """
    Move a weekly (hour, minute, weekday) slot by `delta` minutes.
    Crossing midnight moves the weekday with it, modulo 7.
    """
    total = hour * 60 + minute + delta
    day_shift, mins = divmod(total, 24 * 60)
    return mins // 60, mins % 60, (weekday + day_shift) % 7
