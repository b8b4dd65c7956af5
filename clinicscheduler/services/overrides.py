"""
Date-specific availability overrides.

At most one override exists per (doctor, tenant, date); writing the same key
again replaces the earlier record.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import List, Optional, Union

from pendulum import Date

from ..domain.events import EventType
from ..domain.exceptions import NotFoundError, ValidationError
from ..domain.models import AvailabilityOverride
from ..domain.timerange import as_date, normalize_time, to_minutes
from .events import EventPublisher
from .ports import Clock, ScheduleLedger

logger = logging.getLogger(__name__)

DateLike = Union[Date, date, str]


def _override_payload(override: AvailabilityOverride) -> dict:
    return {
        "id": override.id,
        "date": override.date.to_date_string(),
        "startTime": override.start,
        "endTime": override.end,
        "isAvailable": override.is_available,
        "reason": override.reason,
    }


class OverrideStore:
    """Creates, lists and removes per-day availability overrides."""

    def __init__(
        self,
        schedule_ledger: ScheduleLedger,
        clock: Clock,
        events: EventPublisher,
        timezone: str = "UTC",
        max_range_days: int = 90,
    ) -> None:
        self._ledger = schedule_ledger
        self._clock = clock
        self._events = events
        self.timezone = timezone
        self.max_range_days = max_range_days

    async def upsert_override(
        self,
        doctor_id: str,
        tenant_id: str,
        day: DateLike,
        is_available: bool,
        start: Optional[str] = None,
        end: Optional[str] = None,
        reason: Optional[str] = None,
        actor_user_id: Optional[str] = None,
    ) -> AvailabilityOverride:
        """
        Create or replace the override for a date.

        Args:
            doctor_id: Doctor the override applies to
            tenant_id: Tenant scope
            day: Calendar date, today or later
            is_available: False blocks the whole day
            start: Opening time when available
            end: Closing time when available
            reason: Free-text note such as "Conference"
            actor_user_id: User recorded on the emitted event

        Returns:
            The stored override; a replaced one keeps its id

        Raises:
            FormatError: If a date or time literal is malformed
            ValidationError: For past dates, missing hours on an available
                day, or an inverted window
        """
        day = as_date(day)
        if day < self._today():
            raise ValidationError("Cannot create availability override for past dates")

        start = normalize_time(start) if start else None
        end = normalize_time(end) if end else None

        if is_available and (start is None or end is None):
            raise ValidationError("Start and end times are required when the doctor is available")

        if start is not None and end is not None and to_minutes(start) >= to_minutes(end):
            raise ValidationError("End time must be after start time")

        if not is_available:
            # A blocked day has no hours
            start = end = None

        existing = await self._ledger.get_override(doctor_id, tenant_id, day)
        override = AvailabilityOverride(
            id=existing.id if existing else str(uuid.uuid4()),
            doctor_id=doctor_id,
            tenant_id=tenant_id,
            date=day,
            is_available=is_available,
            start=start,
            end=end,
            reason=reason,
        )
        stored = await self._ledger.upsert_override(override)

        logger.info(
            "Availability override %s for doctor %s on %s (available=%s)",
            "replaced" if existing else "created",
            doctor_id,
            day.to_date_string(),
            is_available,
        )

        await self._events.publish(
            EventType.DOCTOR_AVAILABILITY_UPDATED,
            tenant_id,
            doctor_id,
            "doctor",
            {
                "doctorId": doctor_id,
                "availabilityType": "override",
                "changes": {"updated" if existing else "added": [_override_payload(stored)]},
            },
            actor_user_id,
        )

        return stored

    async def get_override(self, doctor_id: str, tenant_id: str, day: DateLike) -> Optional[AvailabilityOverride]:
        return await self._ledger.get_override(doctor_id, tenant_id, as_date(day))

    async def list_overrides(
        self,
        doctor_id: str,
        tenant_id: str,
        start_date: DateLike,
        end_date: DateLike,
    ) -> List[AvailabilityOverride]:
        """
        Return overrides between two dates (inclusive), ordered by date.

        Raises:
            ValidationError: If the range is inverted or longer than ``max_range_days``
        """
        start_date = as_date(start_date)
        end_date = as_date(end_date)

        if end_date < start_date:
            raise ValidationError("End date must not be before start date")

        if (end_date - start_date).days > self.max_range_days:
            raise ValidationError(f"Date range cannot exceed {self.max_range_days} days")

        overrides = await self._ledger.list_overrides(doctor_id, tenant_id, start_date, end_date)
        return sorted(overrides, key=lambda override: override.date)

    async def delete_override(
        self,
        override_id: str,
        tenant_id: str,
        actor_user_id: Optional[str] = None,
    ) -> AvailabilityOverride:
        """
        Remove an override.

        Raises:
            NotFoundError: If no override with this id exists in the tenant
        """
        override = await self._ledger.get_override_by_id(override_id, tenant_id)
        if override is None or not await self._ledger.delete_override(override_id, tenant_id):
            raise NotFoundError(f"Availability override {override_id} not found")

        logger.info(
            "Availability override %s deleted for doctor %s",
            override_id,
            override.doctor_id,
        )

        await self._events.publish(
            EventType.DOCTOR_AVAILABILITY_UPDATED,
            tenant_id,
            override.doctor_id,
            "doctor",
            {
                "doctorId": override.doctor_id,
                "availabilityType": "override",
                "changes": {"removed": [{"id": override_id, "date": override.date.to_date_string()}]},
            },
            actor_user_id,
        )

        return override

    def _today(self) -> Date:
        return self._clock.now().in_timezone(self.timezone).date()
