"""
Model mixins combined with core.models.BaseModel.

Available Mixins:
    UUIDPrimaryKeyMixin: UUID primary key
    MetadataMixin: JSON metadata with small get/set helpers

Usage:
    from core.models import BaseModel
    from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin

    class Subscription(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
        ...

Note:
    Mixins are abstract and must be listed before BaseModel.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from django.db import models

if TYPE_CHECKING:
    from typing import Any


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use a UUID as primary key instead of an auto-increment integer.

    Ids are exposed in API URLs (invoices, payment methods), so they must not
    reveal record counts or be guessable across tenants.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class MetadataMixin(models.Model):
    """
    Free-form JSON metadata storage.

    Fields:
        metadata: JSONField for arbitrary key-value data

    Usage:
        subscription.set_meta("gateway_plan_id", "plan_xxx")
        subscription.get_meta("gateway_plan_id")
    """

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Flexible key-value metadata storage",
    )

    class Meta:
        abstract = True

    def get_meta(self, key: str, default: Any = None) -> Any:
        """Return the metadata value for key, or default."""
        return (self.metadata or {}).get(key, default)

    def set_meta(self, key: str, value: Any, save: bool = True) -> None:
        """
        Set a metadata value.

        Args:
            key: Metadata key
            value: JSON-serializable value
            save: Persist immediately (metadata and updated_at only)
        """
        if self.metadata is None:
            self.metadata = {}
        self.metadata[key] = value
        if save:
            self.save(update_fields=["metadata", "updated_at"])
