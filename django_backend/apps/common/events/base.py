"""
Event envelope and publisher interface.

Services publish events only after their transaction commits. Publishing is
best effort: a publisher reports failure by returning False and the caller
logs it, the committed change stands either way.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from django.conf import settings
from django.utils.module_loading import import_string

PUBLISHER_BACKENDS = {
    "kafka": "apps.common.events.kafka_publisher.KafkaEventPublisher",
    "memory": "apps.common.events.memory_publisher.MemoryEventPublisher",
}


class DomainEvent:
    """A change to a task, approval request or time log, as seen by consumers"""

    def __init__(self, event_type: str, actor_id: Optional[int], data: Dict[str, Any] = None,
                 occurred_at: datetime = None):
        self.event_type = event_type
        self.actor_id = actor_id
        self.data = data or {}
        self.occurred_at = occurred_at or datetime.now(timezone.utc)

    @property
    def key(self) -> str:
        """Partition key: events of one task stay ordered"""
        task_id = self.data.get("task_id")
        return str(task_id if task_id is not None else self.actor_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "actor_id": self.actor_id,
            "occurred_at": self.occurred_at.isoformat(),
            "data": self.data,
        }


class EventPublisher(ABC):
    @abstractmethod
    def publish(self, topic: str, event: DomainEvent) -> bool:
        """Send one event; True when the backend accepted it"""

    def close(self):
        pass


class EventPublisherFactory:
    """Process-wide publisher chosen by the EVENT_PUBLISHER_TYPE setting"""

    _publisher = None

    @classmethod
    def get_publisher(cls) -> EventPublisher:
        if cls._publisher is None:
            backend = getattr(settings, "EVENT_PUBLISHER_TYPE", "kafka")
            try:
                path = PUBLISHER_BACKENDS[backend]
            except KeyError:
                raise ValueError(
                    f"Unknown event publisher type: {backend}. Must be one of: {', '.join(PUBLISHER_BACKENDS)}"
                )
            cls._publisher = import_string(path)()
        return cls._publisher

    @classmethod
    def reset_publisher(cls):
        if cls._publisher is not None:
            cls._publisher.close()
            cls._publisher = None
