"""
Tests for WeeklyAvailabilityStore.
"""

import asyncio

import pytest

from clinicscheduler.domain.events import EventType
from clinicscheduler.domain.exceptions import ScheduleValidationError
from clinicscheduler.domain.models import ScheduleEntry, Weekday
from clinicscheduler.services.weekly_availability import schedule_cache_key

MON, TUE, WED, THU, FRI = (
    Weekday.MONDAY,
    Weekday.TUESDAY,
    Weekday.WEDNESDAY,
    Weekday.THURSDAY,
    Weekday.FRIDAY,
)


def _entries(*rows):
    return [ScheduleEntry(day_of_week=day, start=start, end=end) for day, start, end in rows]


class TestValidateWeeklySchedule:
    """Tests for batch validation."""

    def test_valid_batch_has_no_violations(self, harness):
        entries = _entries((MON, "08:00", "12:00"), (MON, "12:00", "17:00"), (TUE, "09:00", "10:00"))
        assert harness.engine.weekly.validate_weekly_schedule(entries) == []

    def test_reports_every_violation(self, harness):
        """One message per problem, not only the first."""
        entries = _entries(
            (TUE, "10:00", "09:00"),  # inverted
            (9, "08:00", "09:00"),  # bad day
            (WED, "08:00", "08:15"),  # too short
            (THU, "08:00", "21:00"),  # too long
            (FRI, "8:0", "09:00"),  # bad format
        )
        violations = harness.engine.weekly.validate_weekly_schedule(entries)

        assert len(violations) == 5
        assert any("must be after start time" in v for v in violations)
        assert any("invalid day of week 9" in v for v in violations)
        assert any("shorter than 30 minutes" in v for v in violations)
        assert any("longer than 12 hours" in v for v in violations)
        assert any("invalid start time '8:0'" in v for v in violations)

    def test_overlapping_slots_on_same_day(self, harness):
        entries = _entries((MON, "08:00", "12:00"), (MON, "11:00", "13:00"), (TUE, "11:00", "13:00"))
        violations = harness.engine.weekly.validate_weekly_schedule(entries)
        assert violations == ["Overlapping slots on Monday: 08:00-12:00 and 11:00-13:00"]

    def test_overlap_against_long_earlier_slot(self, harness):
        """A long slot covering two later ones is reported against both."""
        entries = _entries((MON, "08:00", "17:00"), (MON, "09:00", "10:00"), (MON, "11:00", "12:00"))
        violations = harness.engine.weekly.validate_weekly_schedule(entries)
        assert len(violations) == 2


class TestSetWeeklySchedule:
    """Tests for replacing a doctor's week."""

    def test_stores_sorted_slots(self, harness):
        weekly = harness.engine.weekly
        entries = _entries((WED, "13:00", "17:00"), (MON, "09:00", "12:00"), (WED, "08:00", "12:00"))

        asyncio.run(weekly.set_weekly_schedule("dr-a", harness.tenant, entries))
        stored = asyncio.run(weekly.get_weekly_schedule("dr-a", harness.tenant))

        assert [(s.day_of_week, s.start, s.end) for s in stored] == [
            (MON, "09:00", "12:00"),
            (WED, "08:00", "12:00"),
            (WED, "13:00", "17:00"),
        ]

    def test_invalid_batch_leaves_previous_schedule(self, harness):
        weekly = harness.engine.weekly
        asyncio.run(weekly.set_weekly_schedule("dr-a", harness.tenant, _entries((MON, "09:00", "17:00"))))
        before = asyncio.run(weekly.get_weekly_schedule("dr-a", harness.tenant))

        with pytest.raises(ScheduleValidationError) as exc_info:
            asyncio.run(
                weekly.set_weekly_schedule(
                    "dr-a",
                    harness.tenant,
                    _entries((TUE, "09:00", "12:00"), (WED, "12:00", "12:00")),
                )
            )

        assert len(exc_info.value.violations) == 1
        assert asyncio.run(weekly.get_weekly_schedule("dr-a", harness.tenant)) == before

    def test_publishes_availability_event_with_wire_days(self, harness):
        asyncio.run(
            harness.engine.weekly.set_weekly_schedule(
                "dr-a", harness.tenant, _entries((MON, "09:00", "12:00")), actor_user_id="admin-1"
            )
        )

        events = harness.sink.of_type(EventType.DOCTOR_AVAILABILITY_UPDATED)
        assert len(events) == 1
        payload = events[0].payload
        assert payload["availabilityType"] == "weekly"
        assert payload["changes"]["updated"] == [{"dayOfWeek": 1, "startTime": "09:00", "endTime": "12:00"}]
        assert events[0].actor_user_id == "admin-1"

    def test_replacement_invalidates_cached_projection(self, harness):
        weekly = harness.engine.weekly
        asyncio.run(weekly.set_weekly_schedule("dr-a", harness.tenant, _entries((MON, "09:00", "12:00"))))
        asyncio.run(weekly.get_weekly_schedule("dr-a", harness.tenant))
        assert schedule_cache_key("dr-a", harness.tenant) in harness.cache

        asyncio.run(weekly.set_weekly_schedule("dr-a", harness.tenant, _entries((FRI, "14:00", "18:00"))))

        assert schedule_cache_key("dr-a", harness.tenant) not in harness.cache
        stored = asyncio.run(weekly.get_weekly_schedule("dr-a", harness.tenant))
        assert [(s.day_of_week, s.start) for s in stored] == [(FRI, "14:00")]

    def test_concurrent_replacements_do_not_interleave(self, harness):
        weekly = harness.engine.weekly
        first = _entries((MON, "08:00", "12:00"), (TUE, "08:00", "12:00"))
        second = _entries((WED, "13:00", "17:00"), (THU, "13:00", "17:00"))

        async def race():
            await asyncio.gather(
                weekly.set_weekly_schedule("dr-a", harness.tenant, first),
                weekly.set_weekly_schedule("dr-a", harness.tenant, second),
            )
            return await weekly.get_weekly_schedule("dr-a", harness.tenant)

        days = {slot.day_of_week for slot in asyncio.run(race())}
        assert days in ({MON, TUE}, {WED, THU})

    def test_slots_for_day(self, harness):
        weekly = harness.engine.weekly
        asyncio.run(
            weekly.set_weekly_schedule(
                "dr-a", harness.tenant, _entries((MON, "13:00", "17:00"), (MON, "08:00", "12:00"), (TUE, "08:00", "12:00"))
            )
        )
        monday = asyncio.run(weekly.slots_for_day("dr-a", harness.tenant, MON))
        assert [slot.start for slot in monday] == ["08:00", "13:00"]

    def test_schedules_are_scoped_by_tenant(self, harness):
        weekly = harness.engine.weekly
        asyncio.run(weekly.set_weekly_schedule("dr-a", harness.tenant, _entries((MON, "09:00", "12:00"))))
        assert asyncio.run(weekly.get_weekly_schedule("dr-a", "other-clinic")) == []
