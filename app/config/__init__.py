# =============================================================================
# Billing Service Configuration
# =============================================================================
# Settings, URL routing, WSGI/ASGI entry points and the Celery app that runs
# the deferred-cancellation schedule.
#
# The Celery app is imported here so shared_task decorators in billing.tasks
# bind to it when Django starts.
# =============================================================================

from config.celery import app as celery_app

__all__ = ("celery_app",)
