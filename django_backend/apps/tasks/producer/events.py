import logging
from enum import Enum
from typing import Any, Dict, Optional

from kafka.errors import KafkaError

from apps.common.events import DomainEvent, EventPublisherFactory
from apps.common.kafka.config import APPROVAL_EVENTS_TOPIC, TASK_EVENTS_TOPIC

logger = logging.getLogger(__name__)


class TaskEventType(Enum):
    """Task event types"""
    # Assignment
    TASK_ASSIGNED = "task_assigned"
    APPROVAL_REQUESTED = "approval_requested"

    # Approval decisions
    APPROVAL_APPROVED = "approval_approved"
    APPROVAL_REJECTED = "approval_rejected"

    # Time tracking
    TIME_LOGGED = "time_logged"
    TASK_COMPLETED = "task_completed"


APPROVAL_EVENTS = {
    TaskEventType.APPROVAL_REQUESTED,
    TaskEventType.APPROVAL_APPROVED,
    TaskEventType.APPROVAL_REJECTED,
}


def publish_task_event(event_type: TaskEventType, actor_id: Optional[int], data: Dict[str, Any]) -> bool:
    """
    Publish a task event through the configured publisher.

    Events are fire and forget: a broker failure is logged and reported as
    False, it never fails the operation that produced the event.

    Args:
        event_type: Type of task event
        actor_id: ID of the user performing the action
        data: Event-specific data, keyed by task_id where there is one
    """
    topic = APPROVAL_EVENTS_TOPIC if event_type in APPROVAL_EVENTS else TASK_EVENTS_TOPIC
    event = DomainEvent(event_type.value, actor_id, data)

    try:
        success = EventPublisherFactory.get_publisher().publish(topic, event)
    except KafkaError as e:
        logger.error(f"Error publishing task event {event_type.value}: {e}")
        return False

    if not success:
        logger.warning(f"Task event {event_type.value} for key {event.key} was not published")
    return success


# Convenience functions for specific events

def publish_task_assigned(user_id: Optional[int], task_id: int, title: str, assigned_to_id: int,
                          strategy: str, status: str, approval_request_id: Optional[int] = None):
    """Publishes task assignment event"""
    data = {
        "task_id": task_id,
        "title": title,
        "assigned_to_id": assigned_to_id,
        "strategy": strategy,
        "status": status,
        "approval_request_id": approval_request_id,
    }
    return publish_task_event(TaskEventType.TASK_ASSIGNED, user_id, data)


def publish_approval_requested(user_id: int, task_id: int, approval_request_id: int, reason: str):
    """Publishes approval request event"""
    data = {
        "task_id": task_id,
        "approval_request_id": approval_request_id,
        "reason": reason,
    }
    return publish_task_event(TaskEventType.APPROVAL_REQUESTED, user_id, data)


def publish_approval_decided(user_id: int, task_id: int, approval_request_id: int,
                             approved: bool, task_status: str):
    """Publishes approval decision event"""
    data = {
        "task_id": task_id,
        "approval_request_id": approval_request_id,
        "task_status": task_status,
    }
    event_type = TaskEventType.APPROVAL_APPROVED if approved else TaskEventType.APPROVAL_REJECTED
    return publish_task_event(event_type, user_id, data)


def publish_time_logged(user_id: int, task_id: int, entry_id: int, hours: float, total_hours: float):
    """Publishes time log event"""
    data = {
        "task_id": task_id,
        "entry_id": entry_id,
        "hours": hours,
        "total_logged_hours": total_hours,
    }
    return publish_task_event(TaskEventType.TIME_LOGGED, user_id, data)


def publish_task_completed(user_id: int, task_id: int, title: str):
    """Publishes task completion event"""
    data = {
        "task_id": task_id,
        "title": title,
    }
    return publish_task_event(TaskEventType.TASK_COMPLETED, user_id, data)
