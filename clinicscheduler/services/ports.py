"""
Collaborator protocols consumed by the scheduling services.

Storage, caching, event delivery and time are injected through these
narrow interfaces, so the services run unchanged against a SQL backend or
the in-memory adapters used in tests.
"""

from __future__ import annotations

from typing import (
    Any,
    AsyncContextManager,
    Collection,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
)

from pendulum import Date, DateTime

from ..domain.events import DomainEvent
from ..domain.models import (
    Appointment,
    AppointmentStatus,
    AvailabilityOverride,
    WeeklyAvailabilitySlot,
)


class AppointmentLedger(Protocol):
    """Tenant-scoped appointment storage."""

    def transaction(self, tenant_id: str, lock_keys: Sequence[str]) -> AsyncContextManager[None]:
        """
        Open a unit of work holding exclusive locks on ``lock_keys``.

        Bookings whose lock keys intersect are serialized; the conflict
        re-check and the insert must both run inside it.
        """

    async def create(self, appointment: Appointment) -> Appointment:
        """Persist a new appointment."""

    async def find_by_id(self, appointment_id: str, tenant_id: str) -> Optional[Appointment]:
        """Return the appointment or None."""

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
        """Return active appointments of the doctor or patient overlapping [start, end)."""

    async def update(self, appointment_id: str, changes: Dict[str, Any], tenant_id: str) -> Appointment:
        """Apply field changes and return the stored appointment."""

    async def find_by_doctor(
        self,
        doctor_id: str,
        tenant_id: str,
        start_date: Optional[Date] = None,
        end_date: Optional[Date] = None,
        statuses: Optional[Collection[AppointmentStatus]] = None,
    ) -> List[Appointment]:
        """Return the doctor's appointments ordered by date and start."""

    async def find_by_patient(
        self,
        patient_id: str,
        tenant_id: str,
        start_date: Optional[Date] = None,
        end_date: Optional[Date] = None,
        statuses: Optional[Collection[AppointmentStatus]] = None,
    ) -> List[Appointment]:
        """Return the patient's appointments ordered by date and start."""


class ScheduleLedger(Protocol):
    """Tenant-scoped storage for weekly availability and date overrides."""

    def doctor_lock(self, doctor_id: str, tenant_id: str) -> AsyncContextManager[None]:
        """Exclusive lock serializing full schedule replacements for one doctor."""

    async def replace_weekly(
        self,
        doctor_id: str,
        tenant_id: str,
        slots: Sequence[WeeklyAvailabilitySlot],
    ) -> None:
        """Atomically delete the doctor's weekly rows and insert ``slots``."""

    async def get_weekly(self, doctor_id: str, tenant_id: str) -> List[WeeklyAvailabilitySlot]:
        """Return the doctor's weekly slots."""

    async def upsert_override(self, override: AvailabilityOverride) -> AvailabilityOverride:
        """Insert or replace the override keyed on (doctor, tenant, date)."""

    async def get_override(self, doctor_id: str, tenant_id: str, date: Date) -> Optional[AvailabilityOverride]:
        """Return the override for the date, if any."""

    async def get_override_by_id(self, override_id: str, tenant_id: str) -> Optional[AvailabilityOverride]:
        """Return the override with this id, if any."""

    async def list_overrides(
        self,
        doctor_id: str,
        tenant_id: str,
        start_date: Date,
        end_date: Date,
    ) -> List[AvailabilityOverride]:
        """Return overrides with start_date <= date <= end_date ordered by date."""

    async def delete_override(self, override_id: str, tenant_id: str) -> bool:
        """Delete the override; return False when nothing was deleted."""


class EventSink(Protocol):
    """Destination for domain events."""

    async def publish(self, event: DomainEvent) -> None:
        """Deliver the event."""


class ProjectionCache(Protocol):
    """Key-value cache for read projections such as a doctor's weekly schedule."""

    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value or None."""

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store a value for ``ttl_seconds``."""

    async def delete(self, key: str) -> None:
        """Drop the key if present."""


class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> DateTime:
        """Return the current aware datetime."""
