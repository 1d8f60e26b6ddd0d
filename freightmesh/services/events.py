"""Event publishing for consolidation outcomes.

Services publish only after their transaction commits. Delivery is
best-effort: `publish_safely` logs a failing publisher and carries on, so
a broken subscriber never undoes committed state.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

OPPORTUNITY_DETECTED = "opportunity.detected"
OPPORTUNITY_COMPLETED = "opportunity.completed"
SYNERGY_MATCH = "synergy.match"

ALL_TOPICS = (OPPORTUNITY_DETECTED, OPPORTUNITY_COMPLETED, SYNERGY_MATCH)


class Event:
    """Published event."""

    def __init__(
        self,
        topic: str,
        data: Dict[str, Any],
        timestamp: Optional[datetime] = None,
    ):
        self.topic = topic
        self.data = data
        self.timestamp = timestamp or datetime.now()

    def to_message(self) -> Dict[str, Any]:
        """Wire format shared by every transport."""
        return {
            "type": self.topic,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


class EventPublisher(ABC):
    """Outbound event channel."""

    @abstractmethod
    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        """Deliver one event. May raise; callers use publish_safely."""


class InMemoryEventPublisher(EventPublisher):
    """Keeps published events in order."""

    def __init__(self):
        self.events: List[Event] = []

    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        self.events.append(Event(topic, payload))

    def topics(self) -> List[str]:
        return [e.topic for e in self.events]

    def of_topic(self, topic: str) -> List[Dict[str, Any]]:
        return [e.data for e in self.events if e.topic == topic]


async def publish_safely(
    publisher: Optional[EventPublisher], topic: str, payload: Dict[str, Any]
) -> bool:
    """Publish and report success; failures are logged, never raised."""
    if publisher is None:
        return False

    try:
        await publisher.publish(topic, payload)
        return True
    except Exception:
        logger.exception(f"Failed to publish {topic}")
        return False
