"""
Settings for the test suite.

Everything external is replaced by an in-process stand-in: SQLite for
PostgreSQL, the local memory cache for Redis (rate limiter), the memory
event publisher for Kafka and eager Celery for the worker. No OpenAI key is
configured, so model-assisted paths take their fallback unless a test
injects a generator.
"""

from .settings import *  # noqa: F401,F403

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}


class DisableMigrations:
    """Build the test schema straight from the models"""

    def __contains__(self, item):
        return True

    def __getitem__(self, item):
        return None


MIGRATION_MODULES = DisableMigrations()

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "task-assignment-tests",
    }
}

EVENT_PUBLISHER_TYPE = "memory"

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

OPENAI_API_KEY = ""
APPROVAL_REJECTION_CLEARS_ASSIGNEE = False

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {"console": {"class": "logging.StreamHandler"}},
    "root": {"handlers": ["console"], "level": "WARNING"},
}

TESTING = True
