"""
Model mixins providing reusable functionality for Django models.

Available Mixins:
    UUIDPrimaryKeyMixin: Use UUID as primary key
    OptimisticLockMixin: Version column incremented atomically on update

Usage:
    from core.models import BaseModel
    from core.model_mixins import OptimisticLockMixin, UUIDPrimaryKeyMixin

    class Settlement(UUIDPrimaryKeyMixin, OptimisticLockMixin, BaseModel):
        total_amount = models.BigIntegerField(default=0)

Note:
    - Always list mixins before BaseModel in inheritance
    - Mixins are abstract and don't create database tables
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from django.db import models
from django.db.models import F

if TYPE_CHECKING:
    from typing import Any


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use UUID as primary key instead of auto-increment integer.

    Order and settlement ids end up in provider metadata, payout references
    and emails, so they must not reveal volumes or be guessable.

    Fields:
        id: UUIDField as primary key (auto-generated)
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class OptimisticLockMixin(models.Model):
    """
    Version counter for optimistic concurrency control.

    Every update writes ``version = version + 1`` in SQL, then reloads the
    new value, so two writers that loaded the same row leave a visible gap.
    Services that need a hard guarantee combine it with select_for_update().

    Fields:
        version: Incremented on every save after the first insert
    """

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    class Meta:
        abstract = True

    def save(self, *args: Any, **kwargs: Any) -> None:
        """Save with version auto-increment on update."""
        is_update = (
            not self._state.adding
            and self.pk
            and not kwargs.get("force_insert", False)
        )
        update_fields = kwargs.get("update_fields")
        if is_update:
            self.version = F("version") + 1
            if update_fields is not None:
                kwargs["update_fields"] = {*update_fields, "version"}
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])
