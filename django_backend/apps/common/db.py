import logging
from contextlib import contextmanager

from django.conf import settings
from django.db import OperationalError, connection, transaction

from apps.common.exceptions import TransientError

logger = logging.getLogger(__name__)


def _timeout_seconds(timeout):
    if timeout is not None:
        return timeout
    return getattr(settings, "TRANSACTION_TIMEOUT_SECONDS", 15)


@contextmanager
def atomic_with_timeout(timeout=None):
    """
    transaction.atomic() with an upper bound on how long it may run.

    On PostgreSQL the bound is enforced by the server through
    statement_timeout and lock_timeout scoped to the transaction. Timeouts,
    lock failures and serialization conflicts surface as TransientError so
    callers can retry; the transaction is rolled back either way.
    """
    seconds = _timeout_seconds(timeout)
    try:
        with transaction.atomic():
            if connection.vendor == "postgresql":
                millis = str(int(seconds * 1000))
                with connection.cursor() as cursor:
                    cursor.execute("SELECT set_config('statement_timeout', %s, true)", [millis])
                    cursor.execute("SELECT set_config('lock_timeout', %s, true)", [millis])
            yield
    except OperationalError as e:
        logger.error(f"Transaction aborted after store error: {e}")
        raise TransientError(
            "The operation could not be completed in time, please retry",
            timeout_seconds=seconds,
        ) from e
