"""
Domain layer - Pure scheduling rules without I/O.
"""

from .access import UserRole, can_view_note
from .booking_policy import BookingPolicy
from .events import DomainEvent, EventType
from .exceptions import (
    ConflictError,
    FormatError,
    InvalidStateError,
    NotFoundError,
    PolicyError,
    ScheduleValidationError,
    SchedulingError,
    ValidationError,
)
from .models import (
    ACTIVE_STATUSES,
    Appointment,
    AppointmentStatus,
    AvailabilityOverride,
    BookingRequest,
    ConflictCheckRequest,
    ConflictReport,
    ConflictType,
    FreeSlot,
    ScheduleEntry,
    ScheduleSummary,
    WeeklyAvailabilitySlot,
    Weekday,
)
from .timerange import TimeWindow, generate_slots, overlaps, to_minutes

__all__ = [
    "ACTIVE_STATUSES",
    "Appointment",
    "AppointmentStatus",
    "AvailabilityOverride",
    "BookingPolicy",
    "BookingRequest",
    "ConflictCheckRequest",
    "ConflictError",
    "ConflictReport",
    "ConflictType",
    "DomainEvent",
    "EventType",
    "FormatError",
    "FreeSlot",
    "InvalidStateError",
    "NotFoundError",
    "PolicyError",
    "ScheduleEntry",
    "ScheduleSummary",
    "ScheduleValidationError",
    "SchedulingError",
    "TimeWindow",
    "UserRole",
    "ValidationError",
    "WeeklyAvailabilitySlot",
    "Weekday",
    "can_view_note",
    "generate_slots",
    "overlaps",
    "to_minutes",
]
