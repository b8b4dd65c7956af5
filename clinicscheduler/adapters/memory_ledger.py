"""
In-memory ledgers implementing the scheduling ports.

Used by the CLI demo mode and as fakes in tests. Each query yields to the
event loop once, like a database round-trip, so unguarded check-then-insert
races show up under concurrency exactly as they would against a real store.
"""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import replace
from typing import (
    Any,
    AsyncIterator,
    Collection,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
)

from pendulum import Date

from ..domain.exceptions import NotFoundError
from ..domain.models import (
    ACTIVE_STATUSES,
    Appointment,
    AppointmentStatus,
    AvailabilityOverride,
    WeeklyAvailabilitySlot,
)
from ..domain.timerange import overlaps


class KeyedLocks:
    """
    A family of asyncio locks addressed by string keys.

    A key's lock exists only while some task holds it or waits for it, so
    the map does not grow with every doctor, patient and date ever seen.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, keys: Iterable[str]) -> AsyncIterator[None]:
        # Sorted acquisition order keeps overlapping key sets deadlock-free
        async with AsyncExitStack() as stack:
            for key in sorted(set(keys)):
                await stack.enter_async_context(self._hold_one(key))
            yield

    @asynccontextmanager
    async def _hold_one(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


async def _round_trip() -> None:
    await asyncio.sleep(0)


class InMemoryAppointmentLedger:
    """Dictionary-backed appointment store keyed by (tenant, id)."""

    def __init__(self, appointments: Iterable[Appointment] = ()) -> None:
        self._rows: Dict[Tuple[str, str], Appointment] = {}
        self._locks = KeyedLocks()
        for appointment in appointments:
            self._rows[(appointment.tenant_id, appointment.id)] = appointment

    def transaction(self, tenant_id: str, lock_keys: Sequence[str]):
        return self._locks.hold(f"{tenant_id}:{key}" for key in lock_keys)

    async def create(self, appointment: Appointment) -> Appointment:
        await _round_trip()
        key = (appointment.tenant_id, appointment.id)
        if key in self._rows:
            raise ValueError(f"Appointment {appointment.id} already exists")
        self._rows[key] = appointment
        return appointment

    async def find_by_id(self, appointment_id: str, tenant_id: str) -> Optional[Appointment]:
        await _round_trip()
        return self._rows.get((tenant_id, appointment_id))

    async def find_overlapping(
        self,
        doctor_id: str,
        patient_id: str,
        date: Date,
        start: str,
        end: str,
        tenant_id: str,
        exclude_id: Optional[str] = None,
    ) -> List[Appointment]:
        await _round_trip()
        return self._sorted(
            appointment
            for appointment in self._tenant_rows(tenant_id)
            if appointment.date == date
            and appointment.status in ACTIVE_STATUSES
            and appointment.id != exclude_id
            and (appointment.doctor_id == doctor_id or appointment.patient_id == patient_id)
            and overlaps(appointment.start, appointment.end, start, end)
        )

    async def update(self, appointment_id: str, changes: Dict[str, Any], tenant_id: str) -> Appointment:
        await _round_trip()
        key = (tenant_id, appointment_id)
        if key not in self._rows:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        updated = replace(self._rows[key], **changes)
        self._rows[key] = updated
        return updated

    async def find_by_doctor(
        self,
        doctor_id: str,
        tenant_id: str,
        start_date: Optional[Date] = None,
        end_date: Optional[Date] = None,
        statuses: Optional[Collection[AppointmentStatus]] = None,
    ) -> List[Appointment]:
        await _round_trip()
        return self._filtered(
            (a for a in self._tenant_rows(tenant_id) if a.doctor_id == doctor_id),
            start_date,
            end_date,
            statuses,
        )

    async def find_by_patient(
        self,
        patient_id: str,
        tenant_id: str,
        start_date: Optional[Date] = None,
        end_date: Optional[Date] = None,
        statuses: Optional[Collection[AppointmentStatus]] = None,
    ) -> List[Appointment]:
        await _round_trip()
        return self._filtered(
            (a for a in self._tenant_rows(tenant_id) if a.patient_id == patient_id),
            start_date,
            end_date,
            statuses,
        )

    def all(self) -> List[Appointment]:
        return self._sorted(self._rows.values())

    def _tenant_rows(self, tenant_id: str) -> Iterable[Appointment]:
        return (appointment for (tenant, _), appointment in self._rows.items() if tenant == tenant_id)

    def _filtered(
        self,
        appointments: Iterable[Appointment],
        start_date: Optional[Date],
        end_date: Optional[Date],
        statuses: Optional[Collection[AppointmentStatus]],
    ) -> List[Appointment]:
        return self._sorted(
            a
            for a in appointments
            if (start_date is None or a.date >= start_date)
            and (end_date is None or a.date <= end_date)
            and (statuses is None or a.status in statuses)
        )

    @staticmethod
    def _sorted(appointments: Iterable[Appointment]) -> List[Appointment]:
        return sorted(appointments, key=lambda a: (a.date, a.window.start_minutes, a.id))


class InMemoryScheduleLedger:
    """Dictionary-backed store for weekly slots and overrides."""

    def __init__(self) -> None:
        self._weekly: Dict[Tuple[str, str], Tuple[WeeklyAvailabilitySlot, ...]] = {}
        self._overrides: Dict[Tuple[str, str, Date], AvailabilityOverride] = {}
        self._locks = KeyedLocks()

    def doctor_lock(self, doctor_id: str, tenant_id: str):
        return self._locks.hold([f"{tenant_id}:schedule:{doctor_id}"])

    async def replace_weekly(
        self,
        doctor_id: str,
        tenant_id: str,
        slots: Sequence[WeeklyAvailabilitySlot],
    ) -> None:
        await _round_trip()
        # Single assignment: readers see the old week or the new one, never a gap
        self._weekly[(tenant_id, doctor_id)] = tuple(slots)

    async def get_weekly(self, doctor_id: str, tenant_id: str) -> List[WeeklyAvailabilitySlot]:
        await _round_trip()
        return list(self._weekly.get((tenant_id, doctor_id), ()))

    async def upsert_override(self, override: AvailabilityOverride) -> AvailabilityOverride:
        await _round_trip()
        self._overrides[(override.tenant_id, override.doctor_id, override.date)] = override
        return override

    async def get_override(self, doctor_id: str, tenant_id: str, date: Date) -> Optional[AvailabilityOverride]:
        await _round_trip()
        return self._overrides.get((tenant_id, doctor_id, date))

    async def get_override_by_id(self, override_id: str, tenant_id: str) -> Optional[AvailabilityOverride]:
        await _round_trip()
        for (tenant, _, _), override in self._overrides.items():
            if tenant == tenant_id and override.id == override_id:
                return override
        return None

    async def list_overrides(
        self,
        doctor_id: str,
        tenant_id: str,
        start_date: Date,
        end_date: Date,
    ) -> List[AvailabilityOverride]:
        await _round_trip()
        return sorted(
            (
                override
                for (tenant, doctor, day), override in self._overrides.items()
                if tenant == tenant_id and doctor == doctor_id and start_date <= day <= end_date
            ),
            key=lambda override: override.date,
        )

    async def delete_override(self, override_id: str, tenant_id: str) -> bool:
        await _round_trip()
        for key, override in list(self._overrides.items()):
            if key[0] == tenant_id and override.id == override_id:
                del self._overrides[key]
                return True
        return False
