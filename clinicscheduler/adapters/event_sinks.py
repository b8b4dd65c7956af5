"""
Event sinks for domain events.
"""

import logging
from typing import List

from ..domain.events import DomainEvent, EventType

logger = logging.getLogger(__name__)


class InMemoryEventSink:
    """Keeps every published event; handy for assertions and the CLI."""

    def __init__(self) -> None:
        self.events: List[DomainEvent] = []

    async def publish(self, event: DomainEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> List[DomainEvent]:
        return [event for event in self.events if event.type is event_type]


class LoggingEventSink:
    """Writes each event to the log instead of a message bus."""

    async def publish(self, event: DomainEvent) -> None:
        logger.info(
            "Event %s %s/%s tenant=%s actor=%s",
            event.type.value,
            event.aggregate_type,
            event.aggregate_id,
            event.tenant_id,
            event.actor_user_id,
        )
