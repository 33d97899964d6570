"""Refund ledger.

One ``RefundRecord`` per refund intent.  The ledger row is authoritative;
``Order.refunds`` mirrors it for fast reads and is always written in the
same transaction.
"""

from __future__ import annotations

from django.db import models

from modules.core.models import BaseModel


class RefundStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class RefundMethod(models.TextChoices):
    ORIGINAL_PAYMENT = "original_payment", "Refund to the original payment instrument"
    STORE_CREDIT = "store_credit", "Store credit"
    MANUAL = "manual", "Manual transfer"


class RefundRecord(BaseModel):
    """A refund intent against an order's payment reference.

    Money movement is owned by an external settlement process which reports
    back through ``RefundService.update_refund_status``.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="refund_records",
    )
    payment_reference: models.CharField = models.CharField(max_length=128)
    amount: models.PositiveBigIntegerField = models.PositiveBigIntegerField()
    reason: models.TextField = models.TextField()
    refund_method: models.CharField = models.CharField(
        max_length=20,
        choices=RefundMethod.choices,
        default=RefundMethod.ORIGINAL_PAYMENT,
    )
    status: models.CharField = models.CharField(
        max_length=20,
        choices=RefundStatus.choices,
        default=RefundStatus.PENDING,
    )
    requested_by: models.CharField = models.CharField(max_length=128)
    processed_by: models.CharField = models.CharField(
        max_length=128, blank=True, default=""
    )
    processed_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "refund_records"
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["order", "status"], name="refunds_order_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="refund_records_amount_positive",
            ),
        ]

    def as_summary(self) -> dict:
        """Entry embedded in ``Order.refunds``."""
        return {
            "refund_id": str(self.id),
            "amount": self.amount,
            "reason": self.reason,
            "method": self.refund_method,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __str__(self) -> str:
        return f"Refund {self.amount} for {self.order_id} [{self.status}]"
