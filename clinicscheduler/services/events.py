"""
Fire-and-forget publication of domain events.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..domain.events import DomainEvent, EventType
from .ports import Clock, EventSink

logger = logging.getLogger(__name__)


class EventPublisher:
    """
    Builds domain events and hands them to the configured sink.

    Mutations have already committed when an event is published, so a
    failing sink is logged and never surfaces to the caller.
    """

    def __init__(self, sink: EventSink, clock: Clock) -> None:
        self._sink = sink
        self._clock = clock

    async def publish(
        self,
        event_type: EventType,
        tenant_id: str,
        aggregate_id: str,
        aggregate_type: str,
        payload: Dict[str, Any],
        actor_user_id: Optional[str] = None,
    ) -> Optional[DomainEvent]:
        event = DomainEvent(
            type=event_type,
            tenant_id=tenant_id,
            aggregate_id=aggregate_id,
            aggregate_type=aggregate_type,
            payload=payload,
            occurred_at=self._clock.now(),
            actor_user_id=actor_user_id,
        )

        try:
            await self._sink.publish(event)
        except Exception as exc:
            logger.warning(
                "Could not publish %s for %s %s: %s",
                event_type.value,
                aggregate_type,
                aggregate_id,
                exc,
            )
            return None

        return event
