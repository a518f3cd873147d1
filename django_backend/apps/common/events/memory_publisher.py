import logging
from typing import Dict, List, Tuple

from .base import DomainEvent, EventPublisher

logger = logging.getLogger(__name__)


class MemoryEventPublisher(EventPublisher):
    """Keeps published events in process, used by tests and local runs"""

    def __init__(self):
        self.published: List[Tuple[str, Dict]] = []

    def publish(self, topic: str, event: DomainEvent) -> bool:
        self.published.append((topic, {**event.to_dict(), "key": event.key}))
        logger.debug(f"Stored {event.event_type} for {topic}")
        return True

    def get_events(self, topic: str) -> List[Dict]:
        return [payload for t, payload in self.published if t == topic]

    def event_types(self) -> List[str]:
        return [payload["event_type"] for _, payload in self.published]

    def clear_events(self):
        self.published.clear()
