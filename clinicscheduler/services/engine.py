"""
Wiring of the scheduling services from an AppConfig.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..config import AppConfig
from ..domain.booking_policy import BookingPolicy
from .booking import BookingService
from .conflict_detector import ConflictDetector
from .events import EventPublisher
from .overrides import OverrideStore
from .ports import AppointmentLedger, Clock, EventSink, ProjectionCache, ScheduleLedger
from .slot_generator import SlotGenerator
from .weekly_availability import WeeklyAvailabilityStore


@dataclass
class SchedulingEngine:
    """The assembled services sharing one set of ledgers, clock and sink."""
    config: AppConfig
    clock: Clock
    policy: BookingPolicy
    weekly: WeeklyAvailabilityStore
    overrides: OverrideStore
    conflicts: ConflictDetector
    slots: SlotGenerator
    bookings: BookingService

    def today(self):
        return self.policy.today(self.clock.now())


def build_policy(config: AppConfig) -> BookingPolicy:
    booking = config.booking
    return BookingPolicy(
        slot_granularity_minutes=booking.slot_granularity_minutes,
        min_duration_minutes=booking.min_duration_minutes,
        max_duration_minutes=booking.max_duration_minutes,
        business_start=booking.business_start,
        business_end=booking.business_end,
        min_advance_hours=booking.min_advance_hours,
        max_advance_days=booking.max_advance_days,
        timezone=config.timezone,
    )


def build_engine(
    config: AppConfig,
    appointment_ledger: AppointmentLedger,
    schedule_ledger: ScheduleLedger,
    event_sink: EventSink,
    clock: Clock,
    cache: Optional[ProjectionCache] = None,
) -> SchedulingEngine:
    """Create every service for the given adapters."""
    events = EventPublisher(event_sink, clock)
    policy = build_policy(config)

    weekly = WeeklyAvailabilityStore(
        schedule_ledger,
        events,
        cache=cache,
        min_slot_minutes=config.schedule.min_slot_minutes,
        max_slot_minutes=config.schedule.max_slot_minutes,
        cache_ttl_seconds=config.cache_ttl_seconds,
    )
    overrides = OverrideStore(
        schedule_ledger,
        clock,
        events,
        timezone=config.timezone,
        max_range_days=config.schedule.override_range_days,
    )
    conflicts = ConflictDetector(appointment_ledger)
    slots = SlotGenerator(
        weekly,
        schedule_ledger,
        appointment_ledger,
        default_max_days=config.search.max_days_to_scan,
        max_days_cap=config.search.max_days_cap,
        skip_weekdays=config.search.skip_weekdays,
        policy=policy,
        clock=clock,
    )
    bookings = BookingService(appointment_ledger, conflicts, policy, clock, events)

    return SchedulingEngine(
        config=config,
        clock=clock,
        policy=policy,
        weekly=weekly,
        overrides=overrides,
        conflicts=conflicts,
        slots=slots,
        bookings=bookings,
    )
