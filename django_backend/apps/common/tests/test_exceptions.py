from django.db import OperationalError
from django.test import SimpleTestCase, TestCase
from rest_framework.exceptions import ValidationError

from apps.common.db import atomic_with_timeout
from apps.common.exceptions import (
    AlreadyResolved,
    CrossTeamApproval,
    DegradedServiceError,
    MissingReason,
    TaskNotFound,
    TransientError,
    UnparsableResponse,
    exception_handler,
)


class ExceptionHandlerTest(SimpleTestCase):
    """Test mapping service errors onto responses"""

    def handle(self, exc):
        return exception_handler(exc, {"view": None})

    def test_not_found(self):
        response = self.handle(TaskNotFound(7))

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data, {
            "error": "not_found",
            "message": "Task with ID 7 not found",
            "task_id": 7,
        })

    def test_status_per_kind(self):
        cases = [
            (MissingReason(), 400),
            (AlreadyResolved(3, "APPROVED"), 400),
            (CrossTeamApproval("other team"), 403),
            (UnparsableResponse("garbage"), 502),
            (DegradedServiceError("down"), 503),
        ]
        for exc, expected in cases:
            with self.subTest(exc=exc.__class__.__name__):
                self.assertEqual(self.handle(exc).status_code, expected)

    def test_transient_error_asks_for_retry(self):
        response = self.handle(TransientError("busy"))

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response["Retry-After"], "1")

    def test_drf_errors_use_default_handler(self):
        response = self.handle(ValidationError({"title": ["required"]}))

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data, {"title": ["required"]})

    def test_other_errors_are_not_handled(self):
        self.assertIsNone(self.handle(KeyError("x")))


class AtomicWithTimeoutTest(TestCase):
    """Test the bounded transaction helper"""

    def test_store_errors_become_transient(self):
        with self.assertRaises(TransientError) as ctx:
            with atomic_with_timeout(5):
                raise OperationalError("canceling statement due to statement timeout")

        self.assertEqual(ctx.exception.extra["timeout_seconds"], 5)

    def test_other_errors_pass_through(self):
        with self.assertRaises(KeyError):
            with atomic_with_timeout():
                raise KeyError("x")
