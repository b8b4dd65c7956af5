"""
Time-of-day arithmetic shared by every part of the engine.

Times travel as 24-hour "HH:MM" strings and are compared as minute offsets
from midnight. Windows are half-open: ``[start, end)``, so two windows that
merely touch do not overlap.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterator, Optional, Union

import pendulum
from pendulum import Date

from .exceptions import FormatError, ValidationError

MINUTES_PER_DAY = 24 * 60

TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")

TimeValue = Union[str, int]


def to_minutes(value: str) -> int:
    """Convert an "HH:MM" string into minutes since midnight."""
    if not isinstance(value, str) or not TIME_PATTERN.match(value):
        raise FormatError(f"Invalid time format: {value!r} (expected HH:MM)")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def from_minutes(minutes: int) -> str:
    """Format minutes since midnight as a zero-padded "HH:MM" string."""
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValidationError(f"Minute offset out of range: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_time(value: str) -> str:
    """Return the canonical "HH:MM" spelling of a time ("9:05" -> "09:05")."""
    return from_minutes(to_minutes(value))


def is_valid_time(value: str) -> bool:
    return isinstance(value, str) and TIME_PATTERN.match(value) is not None


def _as_minutes(value: TimeValue) -> int:
    if isinstance(value, bool):
        raise FormatError(f"Invalid time value: {value!r}")
    if isinstance(value, int):
        if not 0 <= value <= MINUTES_PER_DAY:
            raise ValidationError(f"Minute offset out of range: {value}")
        return value
    return to_minutes(value)


def overlaps(a_start: TimeValue, a_end: TimeValue, b_start: TimeValue, b_end: TimeValue) -> bool:
    """
    Check whether two half-open windows share at least one minute.

    Accepts "HH:MM" strings or minute offsets. Touching endpoints
    (09:00-10:00 and 10:00-11:00) do not overlap.
    """
    return _as_minutes(a_start) < _as_minutes(b_end) and _as_minutes(b_start) < _as_minutes(a_end)


@dataclass(frozen=True)
class TimeWindow:
    """
    An immutable half-open window within a single day.

    Invariant: start must be before end.
    """
    start: str
    end: str

    def __post_init__(self):
        object.__setattr__(self, "start", normalize_time(self.start))
        object.__setattr__(self, "end", normalize_time(self.end))
        if self.start_minutes >= self.end_minutes:
            raise ValidationError(f"Start time {self.start} must be before end time {self.end}")

    @classmethod
    def from_minutes(cls, start: int, end: int) -> "TimeWindow":
        return cls(start=from_minutes(start), end=from_minutes(end))

    @property
    def start_minutes(self) -> int:
        return to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return to_minutes(self.end)

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return self.end_minutes - self.start_minutes

    def overlaps(self, other: "TimeWindow") -> bool:
        """Check if this window overlaps with another."""
        return overlaps(self.start, self.end, other.start, other.end)

    def contains(self, other: "TimeWindow") -> bool:
        """Check if the other window lies entirely inside this one."""
        return self.start_minutes <= other.start_minutes and other.end_minutes <= self.end_minutes

    def sort_key(self):
        return (self.start_minutes, self.end_minutes)

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"


def generate_slots(
    start: str,
    end: str,
    duration: int,
    step: Optional[int] = None,
) -> Iterator[TimeWindow]:
    """
    Lazily yield windows of exactly ``duration`` minutes between start and end.

    Windows begin at ``start`` and advance by ``step`` (defaults to the
    duration). A trailing remainder shorter than the duration is dropped,
    never returned as a short slot. Calling it again with the same inputs
    yields the same sequence.
    """
    if duration <= 0:
        raise ValidationError(f"Slot duration must be positive, got {duration}")
    if step is None:
        step = duration
    if step <= 0:
        raise ValidationError(f"Slot step must be positive, got {step}")

    return _iter_slots(to_minutes(start), to_minutes(end), duration, step)


def _iter_slots(start: int, end: int, duration: int, step: int) -> Iterator[TimeWindow]:
    current = start
    while current + duration <= end:
        yield TimeWindow.from_minutes(current, current + duration)
        current += step


def parse_date(value: str) -> Date:
    """
    Parse a "YYYY-MM-DD" calendar date.

    Raises:
        FormatError: If the value does not match the format or names a
            day that does not exist (2030-02-30)
    """
    if not isinstance(value, str):
        raise FormatError(f"Invalid date format: {value!r} (expected YYYY-MM-DD)")
    try:
        return pendulum.from_format(value, "YYYY-MM-DD").date()
    except ValueError as exc:
        raise FormatError(f"Invalid date format: {value!r} (expected YYYY-MM-DD)") from exc


def as_date(value: Union[str, date]) -> Date:
    """Normalise strings, stdlib dates and datetimes to a pendulum ``Date``."""
    if isinstance(value, str):
        return parse_date(value)
    if isinstance(value, datetime):
        return pendulum.date(value.year, value.month, value.day)
    if isinstance(value, date):
        return pendulum.date(value.year, value.month, value.day)
    raise FormatError(f"Unsupported date value: {value!r}")
