"""
Adapters layer - In-memory ledgers, clocks, caches and event sinks.
"""

from .cache import InMemoryProjectionCache
from .clock import FixedClock, SystemClock
from .demo_data import DemoClinic, load_demo_clinic
from .event_sinks import InMemoryEventSink, LoggingEventSink
from .memory_ledger import InMemoryAppointmentLedger, InMemoryScheduleLedger, KeyedLocks

__all__ = [
    "DemoClinic",
    "FixedClock",
    "InMemoryAppointmentLedger",
    "InMemoryEventSink",
    "InMemoryProjectionCache",
    "InMemoryScheduleLedger",
    "KeyedLocks",
    "LoggingEventSink",
    "SystemClock",
    "load_demo_clinic",
]
