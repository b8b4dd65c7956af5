"""
Tests for BookingPolicy.
"""

import pendulum
import pytest

from clinicscheduler.domain.booking_policy import BookingPolicy
from clinicscheduler.domain.exceptions import PolicyError, ValidationError

# Tuesday 07:00 UTC
NOW = pendulum.datetime(2030, 1, 1, 7, 0, tz="UTC")


class TestTiming:
    """Tests for duration and granularity rules."""

    def test_accepts_quarter_hour_visit(self):
        BookingPolicy().validate_timing("10:00", "10:15")

    def test_too_short(self):
        with pytest.raises(PolicyError, match="at least 15 minutes"):
            BookingPolicy().validate_timing("10:00", "10:10")

    def test_too_long(self):
        with pytest.raises(PolicyError, match="longer than 240 minutes"):
            BookingPolicy().validate_timing("08:00", "12:15")

    def test_off_boundary(self):
        with pytest.raises(PolicyError, match="15-minute boundaries"):
            BookingPolicy().validate_timing("10:05", "10:35")

    def test_explicit_limits_override_defaults(self):
        BookingPolicy().validate_timing("08:00", "14:00", max_duration_minutes=360)


class TestBusinessHours:
    """Tests for the opening-hours rule."""

    def test_visit_ending_at_closing_time(self):
        BookingPolicy().validate_business_hours("17:45", "18:00")

    @pytest.mark.parametrize("start, end", [("07:45", "08:15"), ("17:45", "18:15")])
    def test_visit_outside_hours(self, start, end):
        with pytest.raises(PolicyError, match="business hours"):
            BookingPolicy().validate_business_hours(start, end)


class TestAdvanceWindow:
    """Tests for booking lead time."""

    def test_exactly_two_hours_ahead_is_accepted(self):
        BookingPolicy().validate_advance_window("2030-01-01", "09:00", NOW)

    def test_one_hour_fifty_nine_minutes_is_rejected(self):
        with pytest.raises(PolicyError, match="at least 2 hours"):
            BookingPolicy().validate_advance_window("2030-01-01", "09:00", NOW.add(minutes=1))

    def test_exactly_ninety_days_ahead_is_accepted(self):
        BookingPolicy().validate_advance_window("2030-04-01", "07:00", NOW)

    def test_beyond_ninety_days_is_rejected(self):
        with pytest.raises(PolicyError, match="more than 90 days"):
            BookingPolicy().validate_advance_window("2030-04-01", "07:15", NOW)

    def test_uses_tenant_timezone(self):
        """09:00 in Berlin is 08:00 UTC, only one hour after NOW."""
        policy = BookingPolicy(timezone="Europe/Berlin")
        with pytest.raises(PolicyError):
            policy.validate_advance_window("2030-01-01", "09:00", NOW)

    @pytest.mark.parametrize(
        "day, start, expected",
        [
            ("2030-01-01", "08:45", False),
            ("2030-01-01", "09:00", True),
            ("2030-04-01", "07:00", True),
            ("2030-04-01", "07:15", False),
        ],
    )
    def test_accepts_lead_time_matches_validation(self, day, start, expected):
        assert BookingPolicy().accepts_lead_time(day, start, NOW) is expected


class TestNotPast:
    """Tests for past-date rejection."""

    def test_today_is_allowed(self):
        BookingPolicy().validate_not_past("2030-01-01", NOW)

    def test_yesterday_is_rejected(self):
        with pytest.raises(ValidationError):
            BookingPolicy().validate_not_past("2029-12-31", NOW)

    def test_today_follows_tenant_calendar(self):
        """Late evening UTC is already tomorrow in Berlin."""
        policy = BookingPolicy(timezone="Europe/Berlin")
        late = pendulum.datetime(2030, 1, 1, 23, 30, tz="UTC")
        assert policy.today(late) == pendulum.date(2030, 1, 2)
        with pytest.raises(ValidationError):
            policy.validate_not_past("2030-01-01", late)


def test_validate_runs_every_rule():
    policy = BookingPolicy()
    policy.validate("2030-01-02", "10:00", "10:30", NOW)
    with pytest.raises(PolicyError):
        policy.validate("2030-01-02", "18:00", "18:30", NOW)
