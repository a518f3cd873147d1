import json
import logging
from typing import Any, Dict

from django.conf import settings
from kafka import KafkaProducer
from kafka.errors import KafkaError

logger = logging.getLogger(__name__)

TASK_EVENTS_TOPIC = "task-events"
APPROVAL_EVENTS_TOPIC = "approval-events"


def producer_config() -> Dict[str, Any]:
    return {
        "bootstrap_servers": settings.KAFKA_BOOTSTRAP_SERVERS.split(","),
        "client_id": getattr(settings, "KAFKA_CLIENT_ID", "task-assignment-service"),
        "value_serializer": lambda value: json.dumps(value, default=str).encode("utf-8"),
        "key_serializer": lambda key: key.encode("utf-8") if key else None,
        "acks": "all",
        "retries": 3,
        "retry_backoff_ms": 300,
        "request_timeout_ms": getattr(settings, "KAFKA_REQUEST_TIMEOUT_MS", 10000),
    }


class KafkaConnection:
    """One lazily created producer per process"""

    _producer = None

    @classmethod
    def get_producer(cls):
        if cls._producer is None:
            try:
                cls._producer = KafkaProducer(**producer_config())
            except KafkaError as e:
                # the next publish retries the connection
                logger.error(f"Kafka producer unavailable: {e}")
                return None
            logger.info("Kafka producer connected")
        return cls._producer

    @classmethod
    def close_producer(cls):
        if cls._producer is not None:
            cls._producer.close()
            cls._producer = None
