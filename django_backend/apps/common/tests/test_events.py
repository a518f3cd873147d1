from unittest import mock

from django.test import SimpleTestCase, override_settings
from kafka.errors import KafkaError

from apps.common.events import EventPublisherFactory
from apps.common.events.base import DomainEvent
from apps.common.events.memory_publisher import MemoryEventPublisher
from apps.common.kafka.config import APPROVAL_EVENTS_TOPIC, TASK_EVENTS_TOPIC
from apps.tasks.producer.events import (
    publish_approval_decided,
    publish_task_assigned,
    publish_time_logged,
)


class MemoryEventPublisherTest(SimpleTestCase):
    """Test the in-memory publisher"""

    def test_stores_events_per_topic(self):
        publisher = MemoryEventPublisher()
        publisher.publish("topic-a", DomainEvent("thing_happened", 1, data={"task_id": 9}))
        publisher.publish("topic-b", DomainEvent("other_thing", 2))

        events = publisher.get_events("topic-a")
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0]["event_type"], "thing_happened")
        self.assertEqual(events[0]["key"], "9")
        self.assertEqual(publisher.get_events("topic-b")[0]["key"], "2")
        self.assertEqual(publisher.event_types(), ["thing_happened", "other_thing"])

        publisher.clear_events()
        self.assertEqual(publisher.get_events("topic-a"), [])


class EventPublisherFactoryTest(SimpleTestCase):
    def tearDown(self):
        EventPublisherFactory.reset_publisher()

    def test_publisher_is_shared(self):
        EventPublisherFactory.reset_publisher()
        self.assertIs(EventPublisherFactory.get_publisher(), EventPublisherFactory.get_publisher())

    @override_settings(EVENT_PUBLISHER_TYPE="carrier-pigeon")
    def test_unknown_backend(self):
        EventPublisherFactory.reset_publisher()
        with self.assertRaises(ValueError):
            EventPublisherFactory.get_publisher()


class TaskEventsTest(SimpleTestCase):
    """Test routing of task events to topics"""

    def setUp(self):
        EventPublisherFactory.reset_publisher()
        self.publisher = EventPublisherFactory.get_publisher()

    def tearDown(self):
        EventPublisherFactory.reset_publisher()

    def test_assignment_events_go_to_task_topic(self):
        self.assertTrue(publish_task_assigned(1, 10, "Deploy", 2, "balanced", "DRAFT", 5))

        event = self.publisher.get_events(TASK_EVENTS_TOPIC)[0]
        self.assertEqual(event["event_type"], "task_assigned")
        self.assertEqual(event["data"]["task_id"], 10)
        self.assertEqual(event["key"], "10")

    def test_decisions_go_to_approval_topic(self):
        publish_approval_decided(1, 10, 5, False, "REJECTED")

        events = self.publisher.get_events(APPROVAL_EVENTS_TOPIC)
        self.assertEqual(events[0]["event_type"], "approval_rejected")

    def test_broker_failure_does_not_raise(self):
        with mock.patch.object(self.publisher, "publish", side_effect=KafkaError("broker down")):
            self.assertFalse(publish_time_logged(1, 10, 3, 1.5, 4.0))
