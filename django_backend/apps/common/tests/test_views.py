from unittest import mock

from django.db import DatabaseError
from django.test import RequestFactory, TestCase

from apps.common.views import healthz


class HealthzTest(TestCase):
    """Test the health check endpoint"""

    def test_ok(self):
        response = self.client.get("/healthz/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok", "database": "up"})

    def test_database_down(self):
        request = RequestFactory().get("/healthz/")
        with mock.patch("apps.common.views.connection") as connection:
            connection.cursor.side_effect = DatabaseError("down")
            response = healthz(request)

        self.assertEqual(response.status_code, 503)
        self.assertJSONEqual(response.content, {"status": "unavailable", "database": "down"})
