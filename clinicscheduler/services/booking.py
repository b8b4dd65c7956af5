"""
Appointment booking and lifecycle management.

Every write that can create an overlap runs inside a ledger transaction
holding per-(doctor, date) and per-(patient, date) locks, and repeats the
conflict check there before inserting. Two overlapping requests therefore
cannot both commit.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Any, Collection, Dict, List, Optional, Sequence, Union

from pendulum import Date

from ..domain.booking_policy import BookingPolicy
from ..domain.events import EventType
from ..domain.exceptions import InvalidStateError, NotFoundError, ValidationError
from ..domain.models import (
    Appointment,
    AppointmentStatus,
    BookingRequest,
    ConflictCheckRequest,
)
from ..domain.timerange import TimeWindow, as_date
from .conflict_detector import ConflictDetector
from .events import EventPublisher
from .ports import AppointmentLedger, Clock

logger = logging.getLogger(__name__)

DateLike = Union[Date, date, str]


def booking_lock_keys(doctor_id: str, patient_id: str, day: Date) -> List[str]:
    day_key = day.to_date_string()
    return [f"doctor:{doctor_id}:{day_key}", f"patient:{patient_id}:{day_key}"]


def _appointment_key(appointment_id: str) -> str:
    return f"appointment:{appointment_id}"


def _serialize_changes(changes: Dict[str, Any]) -> Dict[str, Any]:
    serialized: Dict[str, Any] = {}
    for key, value in changes.items():
        if isinstance(value, AppointmentStatus):
            value = value.value
        elif isinstance(value, date):
            value = value.isoformat()
        serialized[key] = value
    return serialized


class BookingService:
    """
    Books, reschedules and moves appointments through their lifecycle.

    Flow for a new booking: format checks, BookingPolicy rules, then the
    conflict re-check and insert inside one ledger transaction, and finally
    a domain event.
    """

    def __init__(
        self,
        appointment_ledger: AppointmentLedger,
        conflict_detector: ConflictDetector,
        policy: BookingPolicy,
        clock: Clock,
        events: EventPublisher,
    ) -> None:
        self._ledger = appointment_ledger
        self._detector = conflict_detector
        self._policy = policy
        self._clock = clock
        self._events = events

    async def book(self, request: BookingRequest, actor_user_id: Optional[str] = None) -> Appointment:
        """
        Create a new appointment in ``scheduled`` status.

        Args:
            request: Who, when and why
            actor_user_id: User recorded on the emitted event

        Returns:
            The stored appointment with a fresh id

        Raises:
            FormatError: Malformed date or time
            ValidationError: Missing ids, inverted window or a past date
            PolicyError: Timing, business-hours or lead-time rule violated
            ConflictError: The doctor or the patient is already booked
        """
        if not request.doctor_id:
            raise ValidationError("Doctor ID is required")
        if not request.patient_id:
            raise ValidationError("Patient ID is required")

        day = as_date(request.date)
        window = TimeWindow(start=request.start, end=request.end)
        now = self._clock.now()

        self._policy.validate(day, window.start, window.end, now)

        check = ConflictCheckRequest(
            tenant_id=request.tenant_id,
            doctor_id=request.doctor_id,
            patient_id=request.patient_id,
            date=day,
            start=window.start,
            end=window.end,
        )

        async with self._ledger.transaction(
            request.tenant_id,
            booking_lock_keys(request.doctor_id, request.patient_id, day),
        ):
            await self._detector.check_for_conflicts(check)
            appointment = await self._ledger.create(
                Appointment(
                    id=str(uuid.uuid4()),
                    tenant_id=request.tenant_id,
                    doctor_id=request.doctor_id,
                    patient_id=request.patient_id,
                    date=day,
                    start=window.start,
                    end=window.end,
                    status=AppointmentStatus.SCHEDULED,
                    reason_for_visit=request.reason_for_visit,
                    created_at=now,
                )
            )

        logger.info(
            "Appointment %s booked: doctor %s, patient %s, %s %s-%s",
            appointment.id,
            appointment.doctor_id,
            appointment.patient_id,
            day.to_date_string(),
            appointment.start,
            appointment.end,
        )

        await self._events.publish(
            EventType.APPOINTMENT_CREATED,
            appointment.tenant_id,
            appointment.id,
            "appointment",
            {
                "appointmentId": appointment.id,
                "doctorId": appointment.doctor_id,
                "patientId": appointment.patient_id,
                "appointmentDate": day.to_date_string(),
                "startTime": appointment.start,
                "endTime": appointment.end,
                "reasonForVisit": appointment.reason_for_visit,
            },
            actor_user_id,
        )

        return appointment

    async def reschedule(
        self,
        appointment_id: str,
        tenant_id: str,
        day: Optional[DateLike] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
        actor_user_id: Optional[str] = None,
    ) -> Appointment:
        """
        Move a scheduled or confirmed appointment to a new date and/or window.

        Omitted values keep their current setting. The appointment never
        conflicts with itself.

        Args:
            appointment_id: Appointment to move
            tenant_id: Tenant scope
            day: New calendar date
            start: New start time as "HH:MM"
            end: New end time as "HH:MM"
            actor_user_id: User recorded on the emitted event

        Returns:
            The updated appointment

        Raises:
            ValidationError: If nothing would change or the new date is past
            InvalidStateError: If the appointment is no longer scheduled or confirmed
            PolicyError: If the new time breaks a booking rule
            ConflictError: If the new time collides with another booking
        """
        if day is None and start is None and end is None:
            raise ValidationError("Nothing to reschedule: provide a date, start or end time")

        existing = await self.get_appointment(appointment_id, tenant_id)
        self._require_reschedulable(existing)

        new_day = as_date(day) if day is not None else existing.date
        window = TimeWindow(start=start or existing.start, end=end or existing.end)
        now = self._clock.now()

        self._policy.validate(new_day, window.start, window.end, now)

        lock_keys = booking_lock_keys(existing.doctor_id, existing.patient_id, new_day)
        lock_keys.append(_appointment_key(appointment_id))

        async with self._ledger.transaction(tenant_id, lock_keys):
            current = await self.get_appointment(appointment_id, tenant_id)
            self._require_reschedulable(current)

            await self._detector.check_for_conflicts(
                ConflictCheckRequest(
                    tenant_id=tenant_id,
                    doctor_id=current.doctor_id,
                    patient_id=current.patient_id,
                    date=new_day,
                    start=window.start,
                    end=window.end,
                    exclude_appointment_id=appointment_id,
                )
            )

            changes = {"date": new_day, "start": window.start, "end": window.end}
            updated = await self._ledger.update(appointment_id, changes, tenant_id)

        logger.info(
            "Appointment %s rescheduled to %s %s-%s",
            appointment_id,
            new_day.to_date_string(),
            window.start,
            window.end,
        )

        await self._publish_update(updated, changes, actor_user_id)
        return updated

    async def update_details(
        self,
        appointment_id: str,
        tenant_id: str,
        reason_for_visit: Optional[str] = None,
        notes: Optional[str] = None,
        actor_user_id: Optional[str] = None,
    ) -> Appointment:
        """Change the visit reason or notes of an appointment that is not closed."""
        changes: Dict[str, Any] = {}
        if reason_for_visit is not None:
            changes["reason_for_visit"] = reason_for_visit
        if notes is not None:
            changes["notes"] = notes

        async with self._ledger.transaction(tenant_id, [_appointment_key(appointment_id)]):
            existing = await self.get_appointment(appointment_id, tenant_id)
            if existing.is_terminal:
                raise InvalidStateError(
                    f"Cannot update appointment {appointment_id} in status '{existing.status.value}'"
                )
            if not changes:
                return existing
            updated = await self._ledger.update(appointment_id, changes, tenant_id)

        await self._publish_update(updated, changes, actor_user_id)
        return updated

    async def confirm(self, appointment_id: str, tenant_id: str, actor_user_id: Optional[str] = None) -> Appointment:
        now = self._clock.now()
        return await self._transition(
            appointment_id,
            tenant_id,
            lambda appointment: appointment.confirm(now),
            EventType.APPOINTMENT_CONFIRMED,
            actor_user_id,
            {"confirmedBy": actor_user_id},
        )

    async def start(self, appointment_id: str, tenant_id: str, actor_user_id: Optional[str] = None) -> Appointment:
        return await self._transition(
            appointment_id,
            tenant_id,
            lambda appointment: appointment.start_visit(),
            EventType.APPOINTMENT_UPDATED,
            actor_user_id,
        )

    async def complete(self, appointment_id: str, tenant_id: str, actor_user_id: Optional[str] = None) -> Appointment:
        return await self._transition(
            appointment_id,
            tenant_id,
            lambda appointment: appointment.complete(),
            EventType.APPOINTMENT_COMPLETED,
            actor_user_id,
        )

    async def cancel(
        self,
        appointment_id: str,
        tenant_id: str,
        reason: str,
        actor_user_id: Optional[str] = None,
    ) -> Appointment:
        """
        Cancel a scheduled or confirmed appointment.

        Raises:
            InvalidStateError: The appointment is already in progress or closed
            ValidationError: No reason was given
        """
        now = self._clock.now()
        return await self._transition(
            appointment_id,
            tenant_id,
            lambda appointment: appointment.cancel(reason, actor_user_id, now),
            EventType.APPOINTMENT_CANCELLED,
            actor_user_id,
            {"cancellationReason": reason, "cancelledBy": actor_user_id},
        )

    async def mark_no_show(self, appointment_id: str, tenant_id: str, actor_user_id: Optional[str] = None) -> Appointment:
        return await self._transition(
            appointment_id,
            tenant_id,
            lambda appointment: appointment.mark_no_show(),
            EventType.APPOINTMENT_NO_SHOW,
            actor_user_id,
        )

    async def get_appointment(self, appointment_id: str, tenant_id: str) -> Appointment:
        appointment = await self._ledger.find_by_id(appointment_id, tenant_id)
        if appointment is None or appointment.tenant_id != tenant_id:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return appointment

    async def list_for_doctor(
        self,
        doctor_id: str,
        tenant_id: str,
        start_date: Optional[DateLike] = None,
        end_date: Optional[DateLike] = None,
        statuses: Optional[Collection[AppointmentStatus]] = None,
    ) -> List[Appointment]:
        return await self._ledger.find_by_doctor(
            doctor_id,
            tenant_id,
            start_date=as_date(start_date) if start_date is not None else None,
            end_date=as_date(end_date) if end_date is not None else None,
            statuses=statuses,
        )

    async def list_for_patient(
        self,
        patient_id: str,
        tenant_id: str,
        start_date: Optional[DateLike] = None,
        end_date: Optional[DateLike] = None,
        statuses: Optional[Collection[AppointmentStatus]] = None,
    ) -> List[Appointment]:
        return await self._ledger.find_by_patient(
            patient_id,
            tenant_id,
            start_date=as_date(start_date) if start_date is not None else None,
            end_date=as_date(end_date) if end_date is not None else None,
            statuses=statuses,
        )

    async def _transition(
        self,
        appointment_id: str,
        tenant_id: str,
        apply,
        event_type: EventType,
        actor_user_id: Optional[str],
        extra_payload: Optional[Dict[str, Any]] = None,
    ) -> Appointment:
        async with self._ledger.transaction(tenant_id, [_appointment_key(appointment_id)]):
            existing = await self.get_appointment(appointment_id, tenant_id)
            transitioned = apply(existing)
            changes = self._diff(existing, transitioned)
            updated = await self._ledger.update(appointment_id, changes, tenant_id)

        logger.info(
            "Appointment %s moved from %s to %s",
            appointment_id,
            existing.status.value,
            updated.status.value,
        )

        payload = {
            "appointmentId": updated.id,
            "doctorId": updated.doctor_id,
            "patientId": updated.patient_id,
            "status": updated.status.value,
        }
        payload.update(extra_payload or {})
        await self._events.publish(
            event_type,
            tenant_id,
            updated.id,
            "appointment",
            payload,
            actor_user_id,
        )
        return updated

    async def _publish_update(
        self,
        appointment: Appointment,
        changes: Dict[str, Any],
        actor_user_id: Optional[str],
    ) -> None:
        await self._events.publish(
            EventType.APPOINTMENT_UPDATED,
            appointment.tenant_id,
            appointment.id,
            "appointment",
            {
                "appointmentId": appointment.id,
                "doctorId": appointment.doctor_id,
                "patientId": appointment.patient_id,
                "changes": _serialize_changes(changes),
                "updatedBy": actor_user_id,
            },
            actor_user_id,
        )

    @staticmethod
    def _require_reschedulable(appointment: Appointment) -> None:
        if not appointment.can_be_rescheduled():
            raise InvalidStateError(
                f"Cannot reschedule appointment {appointment.id} in status '{appointment.status.value}'"
            )

    @staticmethod
    def _diff(before: Appointment, after: Appointment) -> Dict[str, Any]:
        fields: Sequence[str] = (
            "status",
            "confirmed_at",
            "cancellation_reason",
            "cancelled_by",
            "cancelled_at",
        )
        return {
            name: getattr(after, name)
            for name in fields
            if getattr(before, name) != getattr(after, name)
        }
