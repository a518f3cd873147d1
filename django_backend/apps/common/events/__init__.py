from .base import DomainEvent, EventPublisher, EventPublisherFactory

__all__ = ["DomainEvent", "EventPublisher", "EventPublisherFactory"]
