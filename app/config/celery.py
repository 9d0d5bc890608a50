"""
Celery configuration for the Django application.

Celery runs the billing background work:
- Scheduled reconciliation of deferred cancellations (celery-beat)

This configuration uses Redis as both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps, and beat
schedules live in the database (django-celery-beat).

Usage:
    # Define a task in any app's tasks.py:
    from celery import shared_task

    @shared_task
    def finalize_deferred_cancellations():
        ...

    # Call the task asynchronously:
    finalize_deferred_cancellations.delay()

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# Create Celery application instance
app = Celery("config")

# Load configuration from Django settings
# All Celery settings should be prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Auto-discover tasks from all registered Django apps
app.autodiscover_tasks()
