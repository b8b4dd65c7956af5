"""
Overlap detection between a proposed booking and the appointment ledger.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional, Union

from pendulum import Date

from ..domain.exceptions import ConflictError
from ..domain.models import (
    Appointment,
    ConflictCheckRequest,
    ConflictReport,
    ConflictType,
)
from ..domain.timerange import TimeWindow, as_date
from .ports import AppointmentLedger

logger = logging.getLogger(__name__)


class ConflictDetector:
    """
    Decides whether a doctor or patient is already booked for a window.

    Only active appointments count, and windows are half-open: a visit
    ending at 10:30 does not collide with one starting at 10:30.
    """

    def __init__(self, appointment_ledger: AppointmentLedger) -> None:
        self._ledger = appointment_ledger

    async def find_overlapping(
        self,
        doctor_id: str,
        patient_id: str,
        day: Union[Date, date, str],
        start: str,
        end: str,
        tenant_id: str,
        exclude_appointment_id: Optional[str] = None,
    ) -> List[Appointment]:
        """
        Find active appointments of the doctor or the patient that overlap [start, end).

        Args:
            doctor_id: Doctor to check
            patient_id: Patient to check
            day: Calendar date of the window
            start: Window start as "HH:MM"
            end: Window end as "HH:MM"
            tenant_id: Tenant scope
            exclude_appointment_id: Appointment to ignore, used when rescheduling

        Returns:
            Overlapping appointments ordered by start time
        """
        day = as_date(day)
        window = TimeWindow(start=start, end=end)

        candidates = await self._ledger.find_overlapping(
            doctor_id,
            patient_id,
            day,
            window.start,
            window.end,
            tenant_id,
            exclude_appointment_id,
        )

        # The ledger narrows the query; the rules themselves are enforced here
        return [
            appointment
            for appointment in candidates
            if appointment.tenant_id == tenant_id
            and appointment.date == day
            and appointment.is_active
            and appointment.id != exclude_appointment_id
            and (appointment.doctor_id == doctor_id or appointment.patient_id == patient_id)
            and appointment.window.overlaps(window)
        ]

    async def collect_conflicts(self, request: ConflictCheckRequest) -> List[ConflictReport]:
        """Return every conflict for the request, doctor conflicts first."""
        overlapping = await self.find_overlapping(
            request.doctor_id,
            request.patient_id,
            request.date,
            request.start,
            request.end,
            request.tenant_id,
            request.exclude_appointment_id,
        )

        doctor_conflicts = [
            ConflictReport.for_appointment(ConflictType.DOCTOR, appointment)
            for appointment in overlapping
            if appointment.doctor_id == request.doctor_id
        ]
        patient_conflicts = [
            ConflictReport.for_appointment(ConflictType.PATIENT, appointment)
            for appointment in overlapping
            if appointment.patient_id == request.patient_id
        ]
        return doctor_conflicts + patient_conflicts

    async def check_for_conflicts(self, request: ConflictCheckRequest) -> None:
        """
        Raise for the first conflict found; return silently when there is none.

        Raises:
            ConflictError: Tagged ``doctor`` when the doctor is busy, otherwise
                ``patient`` when the patient is busy
        """
        conflicts = await self.collect_conflicts(request)
        if not conflicts:
            return

        conflict = conflicts[0]
        logger.warning(
            "Appointment conflict detected for doctor %s / patient %s on %s %s-%s: %s",
            request.doctor_id,
            request.patient_id,
            request.date.to_date_string(),
            request.start,
            request.end,
            conflict.message,
        )
        raise ConflictError(conflict)

    async def is_doctor_free(
        self,
        doctor_id: str,
        tenant_id: str,
        day: Union[Date, date, str],
        start: str,
        end: str,
    ) -> bool:
        overlapping = await self.find_overlapping(doctor_id, "", day, start, end, tenant_id)
        return not any(appointment.doctor_id == doctor_id for appointment in overlapping)
