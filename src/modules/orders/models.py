"""Order, OrderItem and TimelineEntry models.

Business rules implemented:
- ``total`` is the gateway-confirmed amount in minor units; never recomputed.
- ``payment_reference`` is unique: one payment produces at most one order.
- ``version`` is bumped on every save through the repository, which
  compares it before writing (optimistic concurrency on top of the row lock).
- Items are a snapshot of the cart at payment time and never change.
- Timeline entries are append-only: updating or deleting one raises.
- Orders are never deleted; cancellation is a status.
"""

from __future__ import annotations

import secrets
from decimal import Decimal
from typing import Any

import structlog
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone

from modules.core.actors import Actor, ActorRole
from modules.core.models import BaseModel
from modules.core.money import proportion_of
from modules.orders.constants import (
    ORDER_NUMBER_MAX_RETRIES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    WAIT_TIME_MAX_DAYS,
    WAIT_TIME_MIN_DAYS,
    AvailabilityStatus,
    BuyerWaitResponse,
    OrderStatus,
    SenderType,
)
from shared.domain.events import DomainEventMixin

logger = structlog.get_logger(__name__)


class Order(DomainEventMixin, BaseModel):
    """Order aggregate root.

    ``order_number`` is a human-readable identifier auto-generated on first
    save (format: ``ORD-YYYYMMDD-XXXXXX``).  The UUIDv7 ``id`` is used for
    all internal references and API lookups.

    ``customer_id`` and ``seller_id`` are identity-provider uids, not
    foreign keys: users live outside this service.
    """

    order_number: models.CharField = models.CharField(
        max_length=20, unique=True, editable=False
    )
    customer_id: models.CharField = models.CharField(max_length=128, db_index=True)
    seller_id: models.CharField = models.CharField(max_length=128, db_index=True)
    status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PROCESSING,
    )
    total: models.PositiveBigIntegerField = models.PositiveBigIntegerField()
    currency: models.CharField = models.CharField(max_length=3, default="NGN")
    payment_reference: models.CharField = models.CharField(
        max_length=128, unique=True, null=True, blank=True
    )
    commission_rate: models.DecimalField = models.DecimalField(
        max_digits=5,
        decimal_places=4,
        default=Decimal("0"),
    )
    delivery_info: models.JSONField = models.JSONField(default=dict, blank=True)
    fulfillment: models.JSONField = models.JSONField(default=dict, blank=True)

    # Availability sub-flow
    availability_status: models.CharField = models.CharField(
        max_length=30, choices=AvailabilityStatus.choices, blank=True, default=""
    )
    availability_reason: models.TextField = models.TextField(blank=True, default="")
    wait_time_days: models.PositiveSmallIntegerField = (
        models.PositiveSmallIntegerField(
            null=True,
            blank=True,
            validators=[
                MinValueValidator(WAIT_TIME_MIN_DAYS),
                MaxValueValidator(WAIT_TIME_MAX_DAYS),
            ],
        )
    )
    wait_time_expires_at: models.DateTimeField = models.DateTimeField(
        null=True, blank=True
    )
    buyer_wait_response: models.CharField = models.CharField(
        max_length=20, choices=BuyerWaitResponse.choices, blank=True, default=""
    )

    # Denormalized read models, always written with their ledger rows
    refunds: models.JSONField = models.JSONField(default=list, blank=True)
    dispute: models.JSONField = models.JSONField(default=dict, blank=True)

    version: models.PositiveIntegerField = models.PositiveIntegerField(default=1)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
        ]

    # ------------------------------------------------------------------
    # State Machine helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        """Return ``True`` if the order is in a terminal state."""
        return self.status in TERMINAL_STATES

    def can_transition_to(self, new_status: str) -> bool:
        """Check whether transitioning to *new_status* is valid."""
        allowed = VALID_TRANSITIONS.get(self.status, set())
        return new_status in allowed

    def roles_of(self, actor: Actor) -> set[str]:
        """Roles ``actor`` holds relative to this order."""
        roles: set[str] = set()
        if actor.is_system:
            roles.add(ActorRole.SYSTEM)
        if actor.is_admin:
            roles.add(ActorRole.ADMIN)
        if actor.uid and actor.uid == self.customer_id:
            roles.add(ActorRole.BUYER)
        if actor.uid and actor.uid == self.seller_id:
            roles.add(ActorRole.SELLER)
        return roles

    # ------------------------------------------------------------------
    # Money
    # ------------------------------------------------------------------

    @property
    def refunded_amount(self) -> int:
        """Sum of refunds that still count against the total."""
        return sum(
            entry["amount"] for entry in self.refunds if entry.get("status") != "failed"
        )

    @property
    def refundable_amount(self) -> int:
        return max(self.total - self.refunded_amount, 0)

    @property
    def commission_amount(self) -> int:
        return proportion_of(self.total, self.commission_rate)

    # ------------------------------------------------------------------
    # Order number generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_order_number() -> str:
        """Generate a human-readable order number: ``ORD-YYYYMMDD-XXXXXX``."""
        now = timezone.now()
        suffix = secrets.token_hex(3).upper()
        return f"ORD-{now:%Y%m%d}-{suffix}"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self.order_number:
            for attempt in range(ORDER_NUMBER_MAX_RETRIES):
                candidate = self.generate_order_number()
                if not Order.objects.filter(order_number=candidate).exists():
                    self.order_number = candidate
                    break
            else:
                raise RuntimeError(
                    f"Failed to generate unique order_number after "
                    f"{ORDER_NUMBER_MAX_RETRIES} attempts"
                )
        super().save(*args, **kwargs)

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status})"


class OrderItem(BaseModel):
    """Cart line captured at payment time.

    ``unit_price`` is in minor units and is a snapshot: later catalog price
    changes never touch it.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="items",
    )
    product_id: models.CharField = models.CharField(max_length=128)
    name: models.CharField = models.CharField(max_length=255)
    unit_price: models.PositiveBigIntegerField = models.PositiveBigIntegerField()
    quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
    )

    class Meta:
        db_table = "order_items"
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
        ]

    @property
    def subtotal(self) -> int:
        return self.unit_price * self.quantity

    def __str__(self) -> str:
        return f"{self.name} x{self.quantity}"


class AppendOnlyError(Exception):
    """Timeline entries cannot be modified or deleted."""


class TimelineEntry(BaseModel):
    """Append-only narrative of an order, read by buyer and seller.

    Entries are written by the engine only.  ``old_status``/``new_status``
    are set for state transitions and left blank for availability, refund
    and dispute notices that do not move the order.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="timeline",
    )
    sender_id: models.CharField = models.CharField(max_length=128)
    sender_type: models.CharField = models.CharField(
        max_length=10,
        choices=SenderType.choices,
        default=SenderType.SYSTEM,
    )
    message: models.TextField = models.TextField()
    old_status: models.CharField = models.CharField(
        max_length=20, choices=OrderStatus.choices, blank=True, default=""
    )
    new_status: models.CharField = models.CharField(
        max_length=20, choices=OrderStatus.choices, blank=True, default=""
    )

    class Meta:
        db_table = "order_timeline"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(
                fields=["order", "created_at"],
                name="timeline_order_created_idx",
            ),
        ]

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            raise AppendOnlyError(f"Timeline entry {self.pk} is immutable.")
        super().save(*args, **kwargs)

    def delete(self, *args: Any, **kwargs: Any) -> Any:
        raise AppendOnlyError(f"Timeline entry {self.pk} cannot be deleted.")

    def __str__(self) -> str:
        return f"{self.order_id} [{self.sender_type}] {self.message[:40]}"
