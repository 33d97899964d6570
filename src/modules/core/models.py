"""Shared models: the abstract base, the outbox and platform settings.

Nothing in the engine is deleted: cancellation is an order status and a
refund is a ledger row with its own status, so there is no soft-delete
layer here.
"""

from __future__ import annotations

from decimal import Decimal

import uuid6
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone

ERROR_MESSAGE_MAX_LENGTH = 2000


class BaseModel(models.Model):
    """UUIDv7 primary key (time ordered) plus created/updated timestamps."""

    id = models.UUIDField(primary_key=True, default=uuid6.uuid7, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True

    def save(self, *args, **kwargs) -> None:
        # auto_now fields are skipped when update_fields omits them.
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "updated_at" not in update_fields:
            kwargs["update_fields"] = [*update_fields, "updated_at"]
        super().save(*args, **kwargs)


class EventStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PUBLISHED = "PUBLISHED", "Published"
    FAILED = "FAILED", "Failed"


class OutboxQuerySet(models.QuerySet):
    def backlog(self) -> OutboxQuerySet:
        """Rows not yet delivered, whatever their retry count."""
        return self.filter(status__in=[EventStatus.PENDING, EventStatus.FAILED])

    def deliverable(self, max_retries: int) -> OutboxQuerySet:
        """Backlog rows the dispatcher should still try, oldest first."""
        return self.backlog().filter(retry_count__lt=max_retries).order_by("created_at")


class OutboxEvent(BaseModel):
    """A domain event written in the same transaction as the state change.

    ``OutboxDispatcher`` publishes ``deliverable`` rows after commit and
    records the outcome with ``mark_as_published`` / ``mark_as_failed``.
    Rows that exhaust their retries stay ``FAILED`` for an operator to
    inspect; the health endpoint reports them as backlog.
    """

    event_type = models.CharField(max_length=100)
    payload = models.JSONField()
    aggregate_id = models.CharField(max_length=255)
    topic = models.CharField(max_length=100)
    status = models.CharField(
        max_length=20, choices=EventStatus.choices, default=EventStatus.PENDING
    )
    processed_at = models.DateTimeField(null=True, blank=True, default=None)
    error_message = models.TextField(null=True, blank=True, default=None)  # noqa: DJ01
    retry_count = models.PositiveIntegerField(default=0)

    objects = OutboxQuerySet.as_manager()

    class Meta:
        db_table = "outbox_events"
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["event_type"], name="outbox_event_type_idx"),
            models.Index(fields=["aggregate_id"], name="outbox_aggregate_id_idx"),
            models.Index(fields=["status", "created_at"], name="outbox_status_created_idx"),
        ]

    def mark_as_published(self) -> None:
        self.status = EventStatus.PUBLISHED
        self.processed_at = timezone.now()
        self.save(update_fields=["status", "processed_at"])

    def mark_as_failed(self, error: str) -> None:
        self.status = EventStatus.FAILED
        self.error_message = error[:ERROR_MESSAGE_MAX_LENGTH]
        self.retry_count += 1
        self.save(update_fields=["status", "error_message", "retry_count"])

    def __str__(self) -> str:
        return f"{self.event_type} [{self.status}] ({self.aggregate_id})"


class PlatformSettings(BaseModel):
    """Marketplace-wide settings edited by administrators.

    Only the most recently updated row is read.  ``commission_rate`` is a
    fraction (``0.05`` = 5%).
    """

    commission_rate = models.DecimalField(
        max_digits=5,
        decimal_places=4,
        default=Decimal("0.0500"),
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("1"))],
    )
    updated_by = models.CharField(max_length=128, blank=True, default="")

    class Meta:
        db_table = "platform_settings"
        ordering = ["-updated_at"]

    def __str__(self) -> str:
        return f"commission={self.commission_rate}"
