"""
Shared fixtures: a scheduling engine wired to the in-memory adapters.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

import pendulum
import pytest

from clinicscheduler.adapters.cache import InMemoryProjectionCache
from clinicscheduler.adapters.clock import FixedClock
from clinicscheduler.adapters.event_sinks import InMemoryEventSink
from clinicscheduler.adapters.memory_ledger import InMemoryAppointmentLedger, InMemoryScheduleLedger
from clinicscheduler.config import AppConfig
from clinicscheduler.domain.models import Appointment
from clinicscheduler.services.engine import SchedulingEngine, build_engine


@dataclass
class Harness:
    tenant: str
    clock: FixedClock
    appointments: InMemoryAppointmentLedger
    schedules: InMemoryScheduleLedger
    sink: InMemoryEventSink
    cache: InMemoryProjectionCache
    engine: SchedulingEngine


def build_harness(
    config: Optional[AppConfig] = None,
    now=None,
    appointments: Iterable[Appointment] = (),
) -> Harness:
    # Monday noon; the following Tuesday is 2030-01-01
    clock = FixedClock(now or pendulum.datetime(2029, 12, 31, 12, 0, tz="UTC"))
    appointment_ledger = InMemoryAppointmentLedger(appointments)
    schedule_ledger = InMemoryScheduleLedger()
    sink = InMemoryEventSink()
    cache = InMemoryProjectionCache()
    engine = build_engine(
        config or AppConfig(),
        appointment_ledger=appointment_ledger,
        schedule_ledger=schedule_ledger,
        event_sink=sink,
        clock=clock,
        cache=cache,
    )
    return Harness(
        tenant="clinic",
        clock=clock,
        appointments=appointment_ledger,
        schedules=schedule_ledger,
        sink=sink,
        cache=cache,
        engine=engine,
    )


@pytest.fixture
def harness() -> Harness:
    return build_harness()


@pytest.fixture
def make_harness():
    return build_harness
