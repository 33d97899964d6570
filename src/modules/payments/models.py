"""Idempotency ledger for payment references.

A ``PaymentReservation`` is written in the same transaction as the order
it produced.  The unique ``reference`` column is what guarantees that a
retried callback can never create a second order.
"""

from __future__ import annotations

from django.db import models

from modules.core.models import BaseModel


class PaymentReservation(BaseModel):
    reference: models.CharField = models.CharField(max_length=128, unique=True)
    order: models.OneToOneField = models.OneToOneField(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="payment_reservation",
    )
    customer_id: models.CharField = models.CharField(max_length=128)
    amount: models.PositiveBigIntegerField = models.PositiveBigIntegerField()
    currency: models.CharField = models.CharField(max_length=3)
    gateway: models.CharField = models.CharField(max_length=30, blank=True, default="")

    class Meta:
        db_table = "payment_reservations"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.reference} -> {self.order_id}"
