import logging

from kafka.errors import KafkaError

from apps.common.kafka.config import KafkaConnection
from .base import DomainEvent, EventPublisher

logger = logging.getLogger(__name__)


class KafkaEventPublisher(EventPublisher):
    def publish(self, topic: str, event: DomainEvent) -> bool:
        producer = KafkaConnection.get_producer()
        if producer is None:
            logger.error(f"Dropping {event.event_type} for task key {event.key}, no Kafka producer")
            return False

        try:
            producer.send(topic, value=event.to_dict(), key=event.key).get(timeout=10)
        except KafkaError as e:
            logger.error(f"Failed to publish {event.event_type} to {topic}: {e}")
            return False
        logger.info(f"Published {event.event_type} to {topic} (key {event.key})")
        return True

    def close(self):
        KafkaConnection.close_producer()
