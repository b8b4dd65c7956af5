"""
Domain models for schedules, overrides and appointments.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum, IntEnum
from typing import Any, Dict, FrozenSet, Optional, Union

from pendulum import Date, DateTime

from .exceptions import InvalidStateError, ValidationError
from .timerange import TimeWindow, as_date, normalize_time


class Weekday(IntEnum):
    """
    Day of week, numbered like ``date.weekday()``.

    External payloads number days from Sunday (0=Sunday); convert at the
    boundary with ``from_sunday_based`` / ``to_sunday_based``.
    """
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @classmethod
    def of(cls, day: Date) -> "Weekday":
        return cls(day.weekday())

    @classmethod
    def from_sunday_based(cls, value: int) -> "Weekday":
        if value not in range(7):
            raise ValidationError(f"Day of week must be between 0 and 6, got {value}")
        return cls((value + 6) % 7)

    def to_sunday_based(self) -> int:
        return (int(self) + 1) % 7

    @property
    def label(self) -> str:
        return self.name.capitalize()


@dataclass(frozen=True)
class ScheduleEntry:
    """
    One requested weekly interval, as submitted by the caller.

    Unvalidated; the weekly store checks a whole batch and reports every
    problem at once.
    """
    day_of_week: int
    start: str
    end: str

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ScheduleEntry":
        """Build an entry from a wire payload that numbers days from Sunday."""
        raw_day = payload.get("dayOfWeek", payload.get("day_of_week"))
        try:
            day = Weekday.from_sunday_based(int(raw_day))
        except (TypeError, ValueError):
            day = raw_day
        return cls(
            day_of_week=day,
            start=payload.get("startTime", payload.get("start", "")),
            end=payload.get("endTime", payload.get("end", "")),
        )


@dataclass(frozen=True)
class WeeklyAvailabilitySlot:
    """A recurring weekly interval during which a doctor can be booked."""
    doctor_id: str
    tenant_id: str
    day_of_week: Weekday
    start: str
    end: str
    active: bool = True

    @property
    def window(self) -> TimeWindow:
        return TimeWindow(start=self.start, end=self.end)

    def sort_key(self):
        return (int(self.day_of_week), self.window.start_minutes)


@dataclass(frozen=True)
class AvailabilityOverride:
    """
    A date-specific exception replacing the weekly schedule for one day.

    When ``is_available`` is false the whole day is blocked and any
    start/end values are ignored.
    """
    id: str
    doctor_id: str
    tenant_id: str
    date: Date
    is_available: bool
    start: Optional[str] = None
    end: Optional[str] = None
    reason: Optional[str] = None

    @property
    def window(self) -> Optional[TimeWindow]:
        if not self.is_available or self.start is None or self.end is None:
            return None
        return TimeWindow(start=self.start, end=self.end)


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


# Statuses that still occupy time on the calendar
ACTIVE_STATUSES: FrozenSet[AppointmentStatus] = frozenset({
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.IN_PROGRESS,
})

TERMINAL_STATUSES: FrozenSet[AppointmentStatus] = frozenset({
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELLED,
    AppointmentStatus.NO_SHOW,
})

RESCHEDULABLE_STATUSES: FrozenSet[AppointmentStatus] = frozenset({
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.CONFIRMED,
})

# action -> (allowed source statuses, target status)
TRANSITIONS: Dict[str, tuple] = {
    "confirm": (RESCHEDULABLE_STATUSES, AppointmentStatus.CONFIRMED),
    "start": (frozenset({AppointmentStatus.CONFIRMED}), AppointmentStatus.IN_PROGRESS),
    "complete": (frozenset({AppointmentStatus.IN_PROGRESS}), AppointmentStatus.COMPLETED),
    "cancel": (RESCHEDULABLE_STATUSES, AppointmentStatus.CANCELLED),
    "mark_no_show": (ACTIVE_STATUSES, AppointmentStatus.NO_SHOW),
}


@dataclass(frozen=True)
class Appointment:
    """
    A booked appointment in a tenant's ledger.

    Instances are immutable; status transitions return an updated copy.
    """
    id: str
    tenant_id: str
    doctor_id: str
    patient_id: str
    date: Date
    start: str
    end: str
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    reason_for_visit: Optional[str] = None
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    cancelled_at: Optional[DateTime] = None
    confirmed_at: Optional[DateTime] = None
    created_at: Optional[DateTime] = None

    def __post_init__(self):
        object.__setattr__(self, "date", as_date(self.date))
        object.__setattr__(self, "status", AppointmentStatus(self.status))
        # Validates ordering and canonicalises both times
        window = TimeWindow(start=self.start, end=self.end)
        object.__setattr__(self, "start", window.start)
        object.__setattr__(self, "end", window.end)

    @property
    def window(self) -> TimeWindow:
        return TimeWindow(start=self.start, end=self.end)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def can_be_rescheduled(self) -> bool:
        return self.status in RESCHEDULABLE_STATUSES

    def check_transition(self, action: str) -> AppointmentStatus:
        """Return the target status of an action, or raise if it is not allowed."""
        allowed, target = TRANSITIONS[action]
        if self.status not in allowed:
            raise InvalidStateError(
                f"Cannot {action.replace('_', ' ')} appointment {self.id} "
                f"in status '{self.status.value}'"
            )
        return target

    def transition(self, action: str, **changes: Any) -> "Appointment":
        """Apply a state-machine action, returning the updated appointment."""
        target = self.check_transition(action)
        return replace(self, status=target, **changes)

    def confirm(self, at: DateTime) -> "Appointment":
        return self.transition("confirm", confirmed_at=at)

    def start_visit(self) -> "Appointment":
        return self.transition("start")

    def complete(self) -> "Appointment":
        return self.transition("complete")

    def cancel(self, reason: str, cancelled_by: str, at: DateTime) -> "Appointment":
        self.check_transition("cancel")
        if not reason or not reason.strip():
            raise ValidationError("A cancellation reason is required")
        return self.transition(
            "cancel",
            cancellation_reason=reason.strip(),
            cancelled_by=cancelled_by,
            cancelled_at=at,
        )

    def mark_no_show(self) -> "Appointment":
        return self.transition("mark_no_show")


class ConflictType(str, Enum):
    DOCTOR = "doctor"
    PATIENT = "patient"


@dataclass(frozen=True)
class ConflictReport:
    """Details of one overlap, suitable for an error payload."""
    type: ConflictType
    conflicting_appointment_id: str
    conflicting_start: str
    conflicting_end: str
    message: str

    @classmethod
    def for_appointment(cls, conflict_type: ConflictType, appointment: Appointment) -> "ConflictReport":
        party = "Doctor" if conflict_type is ConflictType.DOCTOR else "Patient"
        return cls(
            type=conflict_type,
            conflicting_appointment_id=appointment.id,
            conflicting_start=appointment.start,
            conflicting_end=appointment.end,
            message=(
                f"{party} already has an appointment from "
                f"{appointment.start} to {appointment.end}"
            ),
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "type": self.type.value,
            "conflictingAppointmentId": self.conflicting_appointment_id,
            "conflictingStartTime": self.conflicting_start,
            "conflictingEndTime": self.conflicting_end,
            "message": self.message,
        }


@dataclass(frozen=True)
class ConflictCheckRequest:
    """A proposed booking window to be checked against the ledger."""
    tenant_id: str
    doctor_id: str
    patient_id: str
    date: Date
    start: str
    end: str
    exclude_appointment_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "date", as_date(self.date))
        object.__setattr__(self, "start", normalize_time(self.start))
        object.__setattr__(self, "end", normalize_time(self.end))


@dataclass(frozen=True)
class BookingRequest:
    """A request to book a new appointment. Times are checked by the service."""
    tenant_id: str
    doctor_id: str
    patient_id: str
    date: Union[Date, str]
    start: str
    end: str
    reason_for_visit: Optional[str] = None


@dataclass(frozen=True)
class FreeSlot:
    """A bookable window on a specific date."""
    date: Date
    window: TimeWindow

    @property
    def start(self) -> str:
        return self.window.start

    @property
    def end(self) -> str:
        return self.window.end

    def format_display(self) -> str:
        """Format: Weekday, YYYY-MM-DD | HH:MM - HH:MM (N min)"""
        weekday = Weekday.of(self.date).label
        return (
            f"{weekday}, {self.date.to_date_string()} | {self.start} - {self.end} "
            f"({self.window.duration_minutes()} min)"
        )


@dataclass(frozen=True)
class ScheduleSummary:
    """Aggregate view of a doctor's recurring availability."""
    total_slots: int
    active_days: int
    upcoming_overrides: int
    weekly_hours: float
    days: tuple = ()
