"""
Immutable domain events emitted after successful mutations.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from pendulum import DateTime


class EventType(str, Enum):
    APPOINTMENT_CREATED = "appointment.created"
    APPOINTMENT_UPDATED = "appointment.updated"
    APPOINTMENT_CANCELLED = "appointment.cancelled"
    APPOINTMENT_CONFIRMED = "appointment.confirmed"
    APPOINTMENT_COMPLETED = "appointment.completed"
    APPOINTMENT_NO_SHOW = "appointment.no_show"
    DOCTOR_AVAILABILITY_UPDATED = "doctor.availability.updated"


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class DomainEvent:
    """A state change notification, published fire-and-forget."""
    type: EventType
    tenant_id: str
    aggregate_id: str
    aggregate_type: str
    payload: Dict[str, Any]
    occurred_at: DateTime
    actor_user_id: Optional[str] = None
    version: int = 1
    id: str = field(default_factory=_new_id)
    correlation_id: str = field(default_factory=_new_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "tenantId": self.tenant_id,
            "aggregateId": self.aggregate_id,
            "aggregateType": self.aggregate_type,
            "data": self.payload,
            "version": self.version,
            "timestamp": self.occurred_at.to_iso8601_string(),
            "userId": self.actor_user_id,
            "correlationId": self.correlation_id,
        }
