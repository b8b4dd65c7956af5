"""
Loads a demo clinic from JSON into the in-memory ledgers.

Entries may pin a calendar ``date`` or give a ``dayOffset`` relative to the
reference day, so the bundled data stays in the future.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from pendulum import Date

from ..domain.models import (
    Appointment,
    AvailabilityOverride,
    ScheduleEntry,
    WeeklyAvailabilitySlot,
    Weekday,
)
from ..domain.timerange import as_date, normalize_time
from .memory_ledger import InMemoryAppointmentLedger, InMemoryScheduleLedger

logger = logging.getLogger(__name__)

DEFAULT_DATA_FILE = Path(__file__).parent / "demo_clinic.json"


@dataclass
class DemoClinic:
    """Summary of what was loaded."""
    tenant_id: str
    doctors: Dict[str, str] = field(default_factory=dict)  # id -> display name
    patients: Dict[str, str] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)

    def doctor_name(self, doctor_id: str) -> str:
        return self.doctors.get(doctor_id, doctor_id)


def _resolve_day(entry: Dict[str, Any], today: Date) -> Date:
    if "dayOffset" in entry:
        return today.add(days=int(entry["dayOffset"]))
    return as_date(entry["date"])


async def load_demo_clinic(
    schedule_ledger: InMemoryScheduleLedger,
    appointment_ledger: InMemoryAppointmentLedger,
    today: Date,
    data_file: Optional[Path] = None,
    default_tenant_id: str = "default",
) -> DemoClinic:
    """
    Populate the ledgers from a JSON file.

    Malformed entries are skipped and reported in ``DemoClinic.skipped``.
    """
    path = data_file or DEFAULT_DATA_FILE
    if not path.exists():
        raise FileNotFoundError(f"Demo data file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    clinic = DemoClinic(tenant_id=data.get("tenantId", default_tenant_id))
    tenant_id = clinic.tenant_id

    for doctor in data.get("doctors", []):
        doctor_id = doctor["id"]
        clinic.doctors[doctor_id] = doctor.get("name", doctor_id)

        slots: List[WeeklyAvailabilitySlot] = []
        for raw in doctor.get("weekly", []):
            try:
                entry = ScheduleEntry.from_payload(raw)
                slots.append(
                    WeeklyAvailabilitySlot(
                        doctor_id=doctor_id,
                        tenant_id=tenant_id,
                        day_of_week=Weekday(entry.day_of_week),
                        start=normalize_time(entry.start),
                        end=normalize_time(entry.end),
                    )
                )
            except (TypeError, ValueError) as exc:
                clinic.skipped.append(f"weekly slot for {doctor_id}: {exc}")
        await schedule_ledger.replace_weekly(doctor_id, tenant_id, slots)

    for index, raw in enumerate(data.get("overrides", [])):
        try:
            is_available = bool(raw.get("isAvailable", False))
            await schedule_ledger.upsert_override(
                AvailabilityOverride(
                    id=raw.get("id", f"override-{index + 1}"),
                    doctor_id=raw["doctorId"],
                    tenant_id=tenant_id,
                    date=_resolve_day(raw, today),
                    is_available=is_available,
                    start=normalize_time(raw["startTime"]) if is_available else None,
                    end=normalize_time(raw["endTime"]) if is_available else None,
                    reason=raw.get("reason"),
                )
            )
        except (KeyError, ValueError) as exc:
            clinic.skipped.append(f"override #{index + 1}: {exc}")

    for patient in data.get("patients", []):
        clinic.patients[patient["id"]] = patient.get("name", patient["id"])

    for index, raw in enumerate(data.get("appointments", [])):
        try:
            await appointment_ledger.create(
                Appointment(
                    id=raw.get("id", f"appointment-{index + 1}"),
                    tenant_id=tenant_id,
                    doctor_id=raw["doctorId"],
                    patient_id=raw["patientId"],
                    date=_resolve_day(raw, today),
                    start=raw["startTime"],
                    end=raw["endTime"],
                    status=raw.get("status", "scheduled"),
                    reason_for_visit=raw.get("reasonForVisit"),
                )
            )
        except (KeyError, ValueError) as exc:
            clinic.skipped.append(f"appointment #{index + 1}: {exc}")

    for problem in clinic.skipped:
        logger.warning("Skipped demo entry: %s", problem)

    return clinic
