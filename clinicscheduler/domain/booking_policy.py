"""
Business-rule gate applied before a booking or reschedule is committed.

Pure domain logic: every check receives "now" explicitly so the rules can be
exercised with a fixed clock.
"""

from datetime import date, datetime
from typing import Optional, Union

import pendulum
from pendulum import Date, DateTime

from .exceptions import PolicyError, ValidationError
from .timerange import TimeWindow, as_date, to_minutes


class BookingPolicy:
    """
    Validates slot granularity, duration, business hours and booking lead time.

    Defaults mirror the clinic rules: 15-minute boundaries, visits between
    15 minutes and 4 hours, business hours 08:00-18:00, booked at least two
    hours and at most 90 days ahead.
    """

    def __init__(
        self,
        slot_granularity_minutes: int = 15,
        min_duration_minutes: int = 15,
        max_duration_minutes: int = 240,
        business_start: str = "08:00",
        business_end: str = "18:00",
        min_advance_hours: float = 2,
        max_advance_days: int = 90,
        timezone: str = "UTC",
    ):
        self.slot_granularity_minutes = slot_granularity_minutes
        self.min_duration_minutes = min_duration_minutes
        self.max_duration_minutes = max_duration_minutes
        self.business_start = business_start
        self.business_end = business_end
        self.min_advance_hours = min_advance_hours
        self.max_advance_days = max_advance_days
        self.timezone = timezone

    def validate_timing(
        self,
        start: str,
        end: str,
        min_duration_minutes: Optional[int] = None,
        max_duration_minutes: Optional[int] = None,
    ) -> None:
        """
        Check the visit length and that both ends sit on slot boundaries.

        Args:
            start: Start time as "HH:MM"
            end: End time as "HH:MM"
            min_duration_minutes: Overrides the configured minimum length
            max_duration_minutes: Overrides the configured maximum length

        Raises:
            PolicyError: If the visit is too short, too long or off-grid
        """
        min_duration = min_duration_minutes if min_duration_minutes is not None else self.min_duration_minutes
        max_duration = max_duration_minutes if max_duration_minutes is not None else self.max_duration_minutes

        start_minutes = to_minutes(start)
        end_minutes = to_minutes(end)
        duration = end_minutes - start_minutes

        if duration < min_duration:
            raise PolicyError(f"Appointment must be at least {min_duration} minutes long")

        if duration > max_duration:
            raise PolicyError(f"Appointment cannot be longer than {max_duration} minutes")

        granularity = self.slot_granularity_minutes
        if start_minutes % granularity or end_minutes % granularity:
            raise PolicyError(f"Appointment times must be on {granularity}-minute boundaries")

    def validate_business_hours(
        self,
        start: str,
        end: str,
        business_start: Optional[str] = None,
        business_end: Optional[str] = None,
    ) -> None:
        opening = TimeWindow(
            start=business_start or self.business_start,
            end=business_end or self.business_end,
        )
        requested = TimeWindow(start=start, end=end)

        if not opening.contains(requested):
            raise PolicyError(
                f"Appointment must be within business hours ({opening.start} - {opening.end})"
            )

    def validate_advance_window(
        self,
        day: Union[Date, date, str],
        start: str,
        now: datetime,
        min_hours: Optional[float] = None,
        max_days: Optional[int] = None,
    ) -> None:
        """
        Check the lead time between now and the appointment start.

        Exactly ``min_hours`` ahead is accepted; one minute less is not.

        Args:
            day: Calendar date of the visit
            start: Start time as "HH:MM" in the tenant time zone
            now: Current instant
            min_hours: Overrides the configured minimum lead time
            max_days: Overrides the configured booking horizon

        Raises:
            PolicyError: If the start is too close or too far ahead
        """
        min_hours = self.min_advance_hours if min_hours is None else min_hours
        max_days = self.max_advance_days if max_days is None else max_days

        lead_seconds = self._lead_seconds(day, start, now)

        if lead_seconds < min_hours * 3600:
            raise PolicyError(
                f"Appointments must be scheduled at least {min_hours:g} hours in advance"
            )

        if lead_seconds > max_days * 24 * 3600:
            raise PolicyError(
                f"Appointments cannot be scheduled more than {max_days} days in advance"
            )

    def accepts_lead_time(self, day: Union[Date, date, str], start: str, now: datetime) -> bool:
        """
        Check a candidate start against the lead-time rules without raising.

        Args:
            day: Calendar date of the candidate
            start: Start time as "HH:MM" in the tenant time zone
            now: Current instant

        Returns:
            True if ``validate_advance_window`` would accept the start
        """
        lead_seconds = self._lead_seconds(day, start, now)
        return self.min_advance_hours * 3600 <= lead_seconds <= self.max_advance_days * 24 * 3600

    def validate_not_past(self, day: Union[Date, date, str], now: datetime) -> None:
        """Reject dates strictly before today in the tenant's calendar."""
        if as_date(day) < self.today(now):
            raise ValidationError("Cannot schedule appointments in the past")

    def validate(self, day: Union[Date, date, str], start: str, end: str, now: datetime) -> None:
        """
        Run every rule in the order a booking request is checked.

        Args:
            day: Calendar date of the visit
            start: Start time as "HH:MM"
            end: End time as "HH:MM"
            now: Current instant

        Raises:
            ValidationError: If the date lies in the past
            PolicyError: If a timing, business-hours or lead-time rule fails
        """
        self.validate_not_past(day, now)
        self.validate_timing(start, end)
        self.validate_business_hours(start, end)
        self.validate_advance_window(day, start, now)

    def starts_at(self, day: Union[Date, date, str], start: str) -> DateTime:
        """Combine a calendar date and "HH:MM" into an aware tenant-local datetime."""
        day = as_date(day)
        minutes = to_minutes(start)
        return pendulum.datetime(
            day.year, day.month, day.day, minutes // 60, minutes % 60, tz=self.timezone
        )

    def today(self, now: datetime) -> Date:
        return self._aware(now).in_timezone(self.timezone).date()

    def _lead_seconds(self, day: Union[Date, date, str], start: str, now: datetime) -> float:
        return (self.starts_at(day, start) - self._aware(now)).total_seconds()

    def _aware(self, now: datetime) -> DateTime:
        return pendulum.instance(now, tz=self.timezone)
