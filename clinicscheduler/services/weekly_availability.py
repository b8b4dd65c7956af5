"""
Recurring weekly availability per doctor.

A doctor's week is only ever replaced as a whole: the new batch is validated
completely, then swapped in under a per-doctor lock in a single ledger call.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence

from ..domain.events import EventType
from ..domain.exceptions import ScheduleValidationError
from ..domain.models import ScheduleEntry, WeeklyAvailabilitySlot, Weekday
from ..domain.timerange import is_valid_time, normalize_time, to_minutes
from .events import EventPublisher
from .ports import ProjectionCache, ScheduleLedger

logger = logging.getLogger(__name__)


def schedule_cache_key(doctor_id: str, tenant_id: str) -> str:
    return f"schedule:{tenant_id}:{doctor_id}"


def _is_weekday(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= 6


class WeeklyAvailabilityStore:
    """Validates, stores and serves each doctor's recurring weekly schedule."""

    def __init__(
        self,
        schedule_ledger: ScheduleLedger,
        events: EventPublisher,
        cache: Optional[ProjectionCache] = None,
        min_slot_minutes: int = 30,
        max_slot_minutes: int = 12 * 60,
        cache_ttl_seconds: int = 1800,
    ) -> None:
        self._ledger = schedule_ledger
        self._events = events
        self._cache = cache
        self.min_slot_minutes = min_slot_minutes
        self.max_slot_minutes = max_slot_minutes
        self.cache_ttl_seconds = cache_ttl_seconds

    def validate_weekly_schedule(self, entries: Sequence[ScheduleEntry]) -> List[str]:
        """
        Check a whole batch and return every violation found.

        Nothing is written.

        Args:
            entries: The proposed week, in any order

        Returns:
            Human-readable violations; an empty list means the batch can be stored
        """
        violations: List[str] = []
        by_day: Dict[int, List[ScheduleEntry]] = defaultdict(list)

        for position, entry in enumerate(entries, start=1):
            label = f"Slot {position}"
            entry_ok = True

            if not _is_weekday(entry.day_of_week):
                violations.append(f"{label}: invalid day of week {entry.day_of_week!r} (expected 0-6)")
                entry_ok = False
            else:
                label = f"Slot {position} ({Weekday(entry.day_of_week).label})"

            for field_name, value in (("start", entry.start), ("end", entry.end)):
                if not is_valid_time(value):
                    violations.append(f"{label}: invalid {field_name} time {value!r} (expected HH:MM)")
                    entry_ok = False

            if not is_valid_time(entry.start) or not is_valid_time(entry.end):
                continue

            duration = to_minutes(entry.end) - to_minutes(entry.start)
            if duration <= 0:
                violations.append(f"{label}: end time {entry.end} must be after start time {entry.start}")
                continue
            if duration < self.min_slot_minutes:
                violations.append(
                    f"{label}: {entry.start}-{entry.end} is shorter than {self.min_slot_minutes} minutes"
                )
            if duration > self.max_slot_minutes:
                violations.append(
                    f"{label}: {entry.start}-{entry.end} is longer than {self.max_slot_minutes // 60} hours"
                )

            if entry_ok:
                by_day[int(entry.day_of_week)].append(entry)

        for day in sorted(by_day):
            ordered = sorted(by_day[day], key=lambda e: to_minutes(e.start))
            # Compare against the furthest-reaching slot so far, not just the neighbour
            reach = ordered[0]
            for current in ordered[1:]:
                if to_minutes(current.start) < to_minutes(reach.end):
                    violations.append(
                        f"Overlapping slots on {Weekday(day).label}: "
                        f"{reach.start}-{reach.end} and {current.start}-{current.end}"
                    )
                if to_minutes(current.end) > to_minutes(reach.end):
                    reach = current

        return violations

    async def set_weekly_schedule(
        self,
        doctor_id: str,
        tenant_id: str,
        entries: Sequence[ScheduleEntry],
        actor_user_id: Optional[str] = None,
    ) -> List[WeeklyAvailabilitySlot]:
        """
        Replace the doctor's whole week.

        Args:
            doctor_id: Doctor whose week is replaced
            tenant_id: Tenant scope
            entries: The new week; an empty sequence clears it
            actor_user_id: User recorded on the emitted event

        Returns:
            The stored slots ordered by day and start time

        Raises:
            ScheduleValidationError: listing every violation; nothing is written
        """
        violations = self.validate_weekly_schedule(entries)
        if violations:
            logger.info(
                "Rejected weekly schedule for doctor %s (tenant %s): %d violation(s)",
                doctor_id,
                tenant_id,
                len(violations),
            )
            raise ScheduleValidationError(violations)

        slots = sorted(
            (
                WeeklyAvailabilitySlot(
                    doctor_id=doctor_id,
                    tenant_id=tenant_id,
                    day_of_week=Weekday(entry.day_of_week),
                    start=normalize_time(entry.start),
                    end=normalize_time(entry.end),
                )
                for entry in entries
            ),
            key=lambda slot: slot.sort_key(),
        )

        async with self._ledger.doctor_lock(doctor_id, tenant_id):
            await self._ledger.replace_weekly(doctor_id, tenant_id, slots)
            await self._invalidate(doctor_id, tenant_id)

        logger.info(
            "Weekly schedule updated for doctor %s (tenant %s): %d slot(s)",
            doctor_id,
            tenant_id,
            len(slots),
        )

        await self._events.publish(
            EventType.DOCTOR_AVAILABILITY_UPDATED,
            tenant_id,
            doctor_id,
            "doctor",
            {
                "doctorId": doctor_id,
                "availabilityType": "weekly",
                "changes": {
                    "updated": [
                        {
                            "dayOfWeek": slot.day_of_week.to_sunday_based(),
                            "startTime": slot.start,
                            "endTime": slot.end,
                        }
                        for slot in slots
                    ]
                },
            },
            actor_user_id,
        )

        return slots

    async def get_weekly_schedule(self, doctor_id: str, tenant_id: str) -> List[WeeklyAvailabilitySlot]:
        """Return the doctor's active slots ordered by day and start time."""
        key = schedule_cache_key(doctor_id, tenant_id)

        if self._cache is not None:
            cached = await self._cache.get(key)
            if cached is not None:
                return list(cached)

        stored = await self._ledger.get_weekly(doctor_id, tenant_id)
        slots = sorted(
            (slot for slot in stored if slot.active and slot.tenant_id == tenant_id),
            key=lambda slot: slot.sort_key(),
        )

        if self._cache is not None:
            await self._cache.set(key, tuple(slots), self.cache_ttl_seconds)

        return slots

    async def slots_for_day(
        self,
        doctor_id: str,
        tenant_id: str,
        day_of_week: Weekday,
    ) -> List[WeeklyAvailabilitySlot]:
        schedule = await self.get_weekly_schedule(doctor_id, tenant_id)
        return [slot for slot in schedule if slot.day_of_week == day_of_week]

    async def _invalidate(self, doctor_id: str, tenant_id: str) -> None:
        if self._cache is not None:
            await self._cache.delete(schedule_cache_key(doctor_id, tenant_id))
