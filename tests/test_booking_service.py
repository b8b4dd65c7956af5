"""
Tests for BookingService.
"""

import asyncio

import pendulum
import pytest

from clinicscheduler.config import AppConfig
from clinicscheduler.domain.events import EventType
from clinicscheduler.domain.exceptions import (
    ConflictError,
    FormatError,
    InvalidStateError,
    NotFoundError,
    PolicyError,
    ValidationError,
)
from clinicscheduler.domain.models import Appointment, AppointmentStatus, BookingRequest
from clinicscheduler.services.engine import build_engine

TUESDAY = "2030-01-01"


def _request(harness, start="10:00", end="10:30", doctor_id="dr-a", patient_id="pat-1", day=TUESDAY, reason=None):
    return BookingRequest(
        tenant_id=harness.tenant,
        doctor_id=doctor_id,
        patient_id=patient_id,
        date=day,
        start=start,
        end=end,
        reason_for_visit=reason,
    )


def _book(harness, **kwargs) -> Appointment:
    return asyncio.run(harness.engine.bookings.book(_request(harness, **kwargs), actor_user_id="user-1"))


class FailingSink:
    """Event sink that is always down."""

    async def publish(self, event):
        raise RuntimeError("broker unavailable")


class TestBook:
    """Tests for creating appointments."""

    def test_creates_scheduled_appointment(self, harness):
        appointment = _book(harness, reason="Check-up")

        assert appointment.status is AppointmentStatus.SCHEDULED
        assert appointment.date == pendulum.date(2030, 1, 1)
        assert (appointment.start, appointment.end) == ("10:00", "10:30")
        assert appointment.created_at == harness.clock.now()
        assert harness.appointments.all() == [appointment]

        created = harness.sink.of_type(EventType.APPOINTMENT_CREATED)
        assert len(created) == 1
        assert created[0].aggregate_id == appointment.id
        assert created[0].payload["appointmentDate"] == TUESDAY
        assert created[0].payload["reasonForVisit"] == "Check-up"
        assert created[0].actor_user_id == "user-1"

    def test_doctor_conflict(self, harness):
        _book(harness)

        with pytest.raises(ConflictError) as exc_info:
            _book(harness, start="10:15", end="10:45", patient_id="pat-2")

        assert exc_info.value.report.type.value == "doctor"
        assert len(harness.appointments.all()) == 1

    def test_patient_conflict(self, harness):
        _book(harness)

        with pytest.raises(ConflictError) as exc_info:
            _book(harness, doctor_id="dr-b")

        assert exc_info.value.report.type.value == "patient"

    def test_back_to_back_bookings(self, harness):
        _book(harness)
        _book(harness, start="10:30", end="11:00", patient_id="pat-2")
        assert len(harness.appointments.all()) == 2

    def test_concurrent_overlapping_requests_commit_once(self, harness):
        """Two patients racing for the same doctor: exactly one wins."""
        bookings = harness.engine.bookings

        async def race():
            return await asyncio.gather(
                bookings.book(_request(harness, patient_id="pat-1")),
                bookings.book(_request(harness, start="10:15", end="10:45", patient_id="pat-2")),
                return_exceptions=True,
            )

        results = asyncio.run(race())

        assert sum(isinstance(result, Appointment) for result in results) == 1
        assert sum(isinstance(result, ConflictError) for result in results) == 1
        assert len(harness.appointments.all()) == 1

    def test_concurrent_requests_for_one_patient_commit_once(self, harness):
        bookings = harness.engine.bookings

        async def race():
            return await asyncio.gather(
                bookings.book(_request(harness, doctor_id="dr-a")),
                bookings.book(_request(harness, doctor_id="dr-b")),
                return_exceptions=True,
            )

        results = asyncio.run(race())

        assert sum(isinstance(result, Appointment) for result in results) == 1
        assert len(harness.appointments.all()) == 1

    def test_advance_window_boundary(self, make_harness):
        """Booked exactly two hours ahead passes; one minute less fails."""
        harness = make_harness(now=pendulum.datetime(2030, 1, 1, 8, 0, tz="UTC"))
        _book(harness, start="10:00", end="10:30")

        harness.clock.advance(minutes=1)
        with pytest.raises(PolicyError):
            _book(harness, start="10:00", end="10:30", doctor_id="dr-b", patient_id="pat-2")

    def test_past_date(self, harness):
        with pytest.raises(ValidationError, match="past"):
            _book(harness, day="2029-12-30")

    def test_outside_business_hours(self, harness):
        with pytest.raises(PolicyError):
            _book(harness, start="18:00", end="18:30")

    def test_malformed_input(self, harness):
        with pytest.raises(FormatError):
            _book(harness, start="10h00")
        with pytest.raises(FormatError):
            _book(harness, day="01/01/2030")

    def test_inverted_window(self, harness):
        with pytest.raises(ValidationError):
            _book(harness, start="11:00", end="10:00")

    def test_missing_ids(self, harness):
        with pytest.raises(ValidationError, match="Doctor ID"):
            _book(harness, doctor_id="")
        with pytest.raises(ValidationError, match="Patient ID"):
            _book(harness, patient_id="")

    def test_failing_event_sink_does_not_undo_booking(self, harness):
        engine = build_engine(AppConfig(), harness.appointments, harness.schedules, FailingSink(), harness.clock)

        appointment = asyncio.run(engine.bookings.book(_request(harness)))

        assert harness.appointments.all() == [appointment]


class TestReschedule:
    """Tests for moving appointments."""

    def test_move_to_new_time(self, harness):
        appointment = _book(harness)

        moved = asyncio.run(
            harness.engine.bookings.reschedule(appointment.id, harness.tenant, start="11:00", end="11:30")
        )

        assert (moved.start, moved.end) == ("11:00", "11:30")
        updated = harness.sink.of_type(EventType.APPOINTMENT_UPDATED)[-1]
        assert updated.payload["changes"] == {"date": TUESDAY, "start": "11:00", "end": "11:30"}

    def test_overlapping_its_own_slot_is_fine(self, harness):
        appointment = _book(harness)
        moved = asyncio.run(
            harness.engine.bookings.reschedule(appointment.id, harness.tenant, start="10:15", end="10:45")
        )
        assert moved.start == "10:15"

    def test_move_to_another_day(self, harness):
        appointment = _book(harness)
        moved = asyncio.run(harness.engine.bookings.reschedule(appointment.id, harness.tenant, day="2030-01-02"))
        assert moved.date == pendulum.date(2030, 1, 2)
        assert (moved.start, moved.end) == ("10:00", "10:30")

    def test_conflict_with_other_booking(self, harness):
        appointment = _book(harness)
        _book(harness, start="11:00", end="11:30", patient_id="pat-2")

        with pytest.raises(ConflictError):
            asyncio.run(
                harness.engine.bookings.reschedule(appointment.id, harness.tenant, start="11:00", end="11:30")
            )

    def test_nothing_to_change(self, harness):
        appointment = _book(harness)
        with pytest.raises(ValidationError):
            asyncio.run(harness.engine.bookings.reschedule(appointment.id, harness.tenant))

    def test_cancelled_appointment_cannot_move(self, harness):
        appointment = _book(harness)
        asyncio.run(harness.engine.bookings.cancel(appointment.id, harness.tenant, "Travel"))

        with pytest.raises(InvalidStateError):
            asyncio.run(
                harness.engine.bookings.reschedule(appointment.id, harness.tenant, start="11:00", end="11:30")
            )

    def test_policy_applies(self, harness):
        appointment = _book(harness)
        with pytest.raises(PolicyError):
            asyncio.run(
                harness.engine.bookings.reschedule(appointment.id, harness.tenant, start="11:05", end="11:35")
            )


class TestLifecycle:
    """Tests for status transitions through the service."""

    def test_confirm_start_complete(self, harness):
        bookings = harness.engine.bookings
        appointment = _book(harness)

        confirmed = asyncio.run(bookings.confirm(appointment.id, harness.tenant, actor_user_id="dr-a"))
        assert confirmed.status is AppointmentStatus.CONFIRMED
        assert confirmed.confirmed_at == harness.clock.now()

        started = asyncio.run(bookings.start(appointment.id, harness.tenant))
        assert started.status is AppointmentStatus.IN_PROGRESS

        completed = asyncio.run(bookings.complete(appointment.id, harness.tenant))
        assert completed.status is AppointmentStatus.COMPLETED

        assert harness.sink.of_type(EventType.APPOINTMENT_CONFIRMED)[0].payload["confirmedBy"] == "dr-a"
        assert len(harness.sink.of_type(EventType.APPOINTMENT_COMPLETED)) == 1

    def test_cancel(self, harness):
        appointment = _book(harness)

        cancelled = asyncio.run(
            harness.engine.bookings.cancel(appointment.id, harness.tenant, "Feeling better", actor_user_id="pat-1")
        )

        assert cancelled.status is AppointmentStatus.CANCELLED
        assert cancelled.cancelled_by == "pat-1"
        event = harness.sink.of_type(EventType.APPOINTMENT_CANCELLED)[0]
        assert event.payload["cancellationReason"] == "Feeling better"

    def test_cancel_frees_the_slot(self, harness):
        appointment = _book(harness)
        asyncio.run(harness.engine.bookings.cancel(appointment.id, harness.tenant, "Travel"))
        _book(harness, patient_id="pat-2")

    def test_cancel_requires_reason(self, harness):
        appointment = _book(harness)
        with pytest.raises(ValidationError):
            asyncio.run(harness.engine.bookings.cancel(appointment.id, harness.tenant, ""))
        assert asyncio.run(harness.engine.bookings.get_appointment(appointment.id, harness.tenant)).status is (
            AppointmentStatus.SCHEDULED
        )

    def test_completed_cannot_be_cancelled(self, harness):
        bookings = harness.engine.bookings
        appointment = _book(harness)
        for step in (bookings.confirm, bookings.start, bookings.complete):
            asyncio.run(step(appointment.id, harness.tenant))

        with pytest.raises(InvalidStateError):
            asyncio.run(bookings.cancel(appointment.id, harness.tenant, "Too late"))

    def test_no_show(self, harness):
        appointment = _book(harness)
        marked = asyncio.run(harness.engine.bookings.mark_no_show(appointment.id, harness.tenant))
        assert marked.status is AppointmentStatus.NO_SHOW
        assert len(harness.sink.of_type(EventType.APPOINTMENT_NO_SHOW)) == 1

    def test_update_details(self, harness):
        appointment = _book(harness)
        updated = asyncio.run(
            harness.engine.bookings.update_details(appointment.id, harness.tenant, notes="Bring lab results")
        )
        assert updated.notes == "Bring lab results"
        assert harness.sink.of_type(EventType.APPOINTMENT_UPDATED)[-1].payload["changes"] == {
            "notes": "Bring lab results"
        }

    def test_update_details_refused_when_closed(self, harness):
        appointment = _book(harness)
        asyncio.run(harness.engine.bookings.mark_no_show(appointment.id, harness.tenant))
        with pytest.raises(InvalidStateError):
            asyncio.run(harness.engine.bookings.update_details(appointment.id, harness.tenant, notes="x"))


class TestQueries:
    """Tests for lookups."""

    def test_missing_appointment(self, harness):
        with pytest.raises(NotFoundError):
            asyncio.run(harness.engine.bookings.get_appointment("nope", harness.tenant))

    def test_other_tenant_cannot_see_appointment(self, harness):
        appointment = _book(harness)
        with pytest.raises(NotFoundError):
            asyncio.run(harness.engine.bookings.get_appointment(appointment.id, "other-clinic"))
        with pytest.raises(NotFoundError):
            asyncio.run(harness.engine.bookings.confirm(appointment.id, "other-clinic"))

    def test_list_with_filters(self, harness):
        bookings = harness.engine.bookings
        first = _book(harness)
        second = _book(harness, day="2030-01-02")
        asyncio.run(bookings.cancel(second.id, harness.tenant, "Travel"))
        _book(harness, doctor_id="dr-b", start="11:00", end="11:30")

        by_doctor = asyncio.run(bookings.list_for_doctor("dr-a", harness.tenant))
        assert [a.id for a in by_doctor] == [first.id, second.id]

        active = asyncio.run(
            bookings.list_for_patient("pat-1", harness.tenant, statuses={AppointmentStatus.SCHEDULED})
        )
        assert len(active) == 2
        assert second.id not in {a.id for a in active}

        one_day = asyncio.run(bookings.list_for_doctor("dr-a", harness.tenant, "2030-01-02", "2030-01-02"))
        assert [a.id for a in one_day] == [second.id]
