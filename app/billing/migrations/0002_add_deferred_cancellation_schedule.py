"""
Add celery-beat schedule for finalizing deferred cancellations.

This migration creates the periodic task schedule for the
finalize_deferred_cancellations task, which runs every 15 minutes to
end subscriptions cancelled at period end once that period is over.
"""

from django.db import migrations

TASK_NAME = "Finalize Deferred Subscription Cancellations"


def create_periodic_task(apps, schema_editor):
    """Create the periodic task for deferred cancellations."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    # Create interval schedule: every 15 minutes
    schedule, _ = IntervalSchedule.objects.get_or_create(
        every=15,
        period="minutes",
    )

    PeriodicTask.objects.get_or_create(
        name=TASK_NAME,
        defaults={
            "task": "billing.tasks.finalize_deferred_cancellations",
            "interval": schedule,
            "enabled": True,
            "description": (
                "Moves subscriptions cancelled at period end to CANCELLED "
                "once current_period_end has passed."
            ),
        },
    )


def remove_periodic_task(apps, schema_editor):
    """Remove the periodic task on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(name=TASK_NAME).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("billing", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_task, remove_periodic_task),
    ]
