"""
Bookable slot computation.

Algorithm for one date:
1. Resolve the day's raw windows: an override replaces the weekly schedule
   outright (one window, or none when the day is blocked); otherwise every
   weekly slot for that weekday is used
2. Cut each window into fixed-length slots, union, deduplicate and sort
3. Drop every slot touching an active appointment (no partial slots)
4. Drop every slot whose start the booking lead-time rules would refuse
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Collection, List, Optional, Union

from pendulum import Date

from ..domain.booking_policy import BookingPolicy
from ..domain.exceptions import ValidationError
from ..domain.models import (
    ACTIVE_STATUSES,
    Appointment,
    FreeSlot,
    ScheduleSummary,
    Weekday,
)
from ..domain.timerange import TimeWindow, as_date, generate_slots
from .ports import AppointmentLedger, Clock, ScheduleLedger
from .weekly_availability import WeeklyAvailabilityStore

logger = logging.getLogger(__name__)

DateLike = Union[Date, date, str]


def _check_duration(duration: int) -> None:
    if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
        raise ValidationError(f"Slot duration must be a positive number of minutes, got {duration!r}")


class SlotGenerator:
    """
    Merges weekly availability, overrides and bookings into free slots.

    When a policy and a clock are given, slots that start too soon (or
    beyond the booking horizon) are left out, so every slot returned can
    be booked right away.
    """

    def __init__(
        self,
        weekly_store: WeeklyAvailabilityStore,
        schedule_ledger: ScheduleLedger,
        appointment_ledger: AppointmentLedger,
        default_max_days: int = 30,
        max_days_cap: int = 90,
        skip_weekdays: Collection[Weekday] = (),
        policy: Optional[BookingPolicy] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._weekly_store = weekly_store
        self._schedule_ledger = schedule_ledger
        self._appointment_ledger = appointment_ledger
        self._policy = policy
        self._clock = clock
        self.default_max_days = default_max_days
        self.max_days_cap = max_days_cap
        self.skip_weekdays = frozenset(Weekday(day) for day in skip_weekdays)

    async def resolve_windows(self, doctor_id: str, tenant_id: str, day: DateLike) -> List[TimeWindow]:
        """Return the day's raw availability windows, ordered by start."""
        day = as_date(day)

        override = await self._schedule_ledger.get_override(doctor_id, tenant_id, day)
        if override is not None:
            window = override.window
            return [window] if window is not None else []

        weekly = await self._weekly_store.slots_for_day(doctor_id, tenant_id, Weekday.of(day))
        return sorted((slot.window for slot in weekly), key=TimeWindow.sort_key)

    async def free_slots_for_date(
        self,
        doctor_id: str,
        tenant_id: str,
        day: DateLike,
        duration: int,
        step: Optional[int] = None,
    ) -> List[TimeWindow]:
        """
        Compute the bookable slots of one day.

        Args:
            doctor_id: Doctor whose schedule is used
            tenant_id: Tenant scope
            day: Calendar date, as a date or "YYYY-MM-DD"
            duration: Slot length in minutes
            step: Distance between slot starts (defaults to ``duration``)

        Returns:
            Free slots of exactly ``duration`` minutes, ordered by start

        Raises:
            ValidationError: If ``duration`` or ``step`` is not positive
        """
        _check_duration(duration)
        day = as_date(day)
        windows = await self.resolve_windows(doctor_id, tenant_id, day)
        if not windows:
            return []

        candidates = set()
        for window in windows:
            candidates.update(generate_slots(window.start, window.end, duration, step))

        booked = await self._active_appointments(doctor_id, tenant_id, day)
        booked_windows = [appointment.window for appointment in booked]
        now = self._clock.now() if self._policy is not None and self._clock is not None else None

        return sorted(
            (
                slot
                for slot in candidates
                if not any(slot.overlaps(taken) for taken in booked_windows)
                and (now is None or self._policy.accepts_lead_time(day, slot.start, now))
            ),
            key=TimeWindow.sort_key,
        )

    async def next_available_slot(
        self,
        doctor_id: str,
        tenant_id: str,
        from_date: DateLike,
        duration: int,
        max_days_to_scan: Optional[int] = None,
    ) -> Optional[FreeSlot]:
        """
        Scan forward day by day and return the first free slot.

        Days listed in ``skip_weekdays`` are passed over but still count
        toward ``max_days_to_scan``.

        Args:
            doctor_id: Doctor whose schedule is searched
            tenant_id: Tenant scope
            from_date: First day to look at
            duration: Slot length in minutes
            max_days_to_scan: Number of days to look at (1 up to ``max_days_cap``)

        Returns:
            The earliest FreeSlot, or None when nothing is free in range

        Raises:
            ValidationError: If ``duration`` or ``max_days_to_scan`` is out of range
        """
        _check_duration(duration)
        max_days = self.default_max_days if max_days_to_scan is None else max_days_to_scan
        if not 1 <= max_days <= self.max_days_cap:
            raise ValidationError(f"max_days_to_scan must be between 1 and {self.max_days_cap}, got {max_days}")

        start = as_date(from_date)
        for offset in range(max_days):
            day = start.add(days=offset)
            if Weekday.of(day) in self.skip_weekdays:
                continue

            slots = await self.free_slots_for_date(doctor_id, tenant_id, day, duration)
            if slots:
                return FreeSlot(date=day, window=slots[0])

        logger.info(
            "No %d-minute slot for doctor %s within %d day(s) from %s",
            duration,
            doctor_id,
            max_days,
            start.to_date_string(),
        )
        return None

    async def find_displaced_appointments(
        self,
        doctor_id: str,
        tenant_id: str,
        day: DateLike,
    ) -> List[Appointment]:
        """Return active appointments that no longer fit inside the day's windows."""
        day = as_date(day)
        windows = await self.resolve_windows(doctor_id, tenant_id, day)
        booked = await self._active_appointments(doctor_id, tenant_id, day)

        return [
            appointment
            for appointment in booked
            if not any(window.contains(appointment.window) for window in windows)
        ]

    async def summarize(
        self,
        doctor_id: str,
        tenant_id: str,
        from_date: DateLike,
        horizon_days: int = 30,
    ) -> ScheduleSummary:
        """Summarise the weekly schedule and the overrides coming up."""
        start = as_date(from_date)
        weekly = await self._weekly_store.get_weekly_schedule(doctor_id, tenant_id)
        overrides = await self._schedule_ledger.list_overrides(
            doctor_id, tenant_id, start, start.add(days=horizon_days)
        )

        days = sorted({slot.day_of_week for slot in weekly})
        weekly_minutes = sum(slot.window.duration_minutes() for slot in weekly)

        return ScheduleSummary(
            total_slots=len(weekly),
            active_days=len(days),
            upcoming_overrides=len(overrides),
            weekly_hours=round(weekly_minutes / 60, 2),
            days=tuple(days),
        )

    async def _active_appointments(self, doctor_id: str, tenant_id: str, day: Date) -> List[Appointment]:
        appointments = await self._appointment_ledger.find_by_doctor(
            doctor_id,
            tenant_id,
            start_date=day,
            end_date=day,
            statuses=ACTIVE_STATUSES,
        )
        return [appointment for appointment in appointments if appointment.is_active and appointment.date == day]
