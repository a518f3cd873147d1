"""
Assignment engine and task lifecycle services.

Views and Celery tasks call into these modules; nothing here depends on the
HTTP layer.
"""
