"""
Services layer - Scheduling use cases orchestrated over ports.
"""

from .booking import BookingService
from .conflict_detector import ConflictDetector
from .engine import SchedulingEngine, build_engine, build_policy
from .events import EventPublisher
from .overrides import OverrideStore
from .slot_generator import SlotGenerator
from .weekly_availability import WeeklyAvailabilityStore

__all__ = [
    "BookingService",
    "ConflictDetector",
    "EventPublisher",
    "OverrideStore",
    "SchedulingEngine",
    "SlotGenerator",
    "WeeklyAvailabilityStore",
    "build_engine",
    "build_policy",
]
