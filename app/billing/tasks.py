"""
Celery tasks for billing.

This module provides periodic tasks for:
- Ending deferred cancellations whose billing period is over

Usage:
    from billing.tasks import finalize_deferred_cancellations

    # Typically run via celery-beat (see migration 0002)
    finalize_deferred_cancellations.delay()
"""

from __future__ import annotations

import logging

from celery import shared_task

from billing.services import SubscriptionService

logger = logging.getLogger(__name__)


@shared_task
def finalize_deferred_cancellations() -> dict:
    """
    Periodic task moving cancel-at-period-end subscriptions to CANCELLED.

    Subscriptions cancelled with at_period_end=True stay ACTIVE until
    current_period_end. This task sets status CANCELLED and ended_at once
    that moment has passed. Safe to run concurrently: each row is locked
    and re-checked.

    This task should be scheduled via celery-beat, e.g., every 15 minutes.

    Returns:
        Dict with count of subscriptions finalized
    """
    count = SubscriptionService.finalize_deferred_cancellations()

    if count:
        logger.info(f"Finalized {count} deferred cancellations")

    return {"finalized": count}
