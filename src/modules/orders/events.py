"""Domain events for the Orders bounded context.

Every field has a default so ``DomainEvent.from_payload`` can rebuild an
event from whatever the outbox row stored.
"""

from __future__ import annotations

from dataclasses import dataclass

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderCreated(DomainEvent):
    """Raised when a verified payment produced an order."""

    order_number: str = ""
    customer_id: str = ""
    seller_id: str = ""
    total: int = 0
    currency: str = ""


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    """Raised on every state transition."""

    order_number: str = ""
    customer_id: str = ""
    seller_id: str = ""
    old_status: str = ""
    new_status: str = ""
    actor_id: str = ""
    actor_role: str = ""


@dataclass(frozen=True)
class OrderCancelled(DomainEvent):
    """Raised when an order reaches ``Cancelled``."""

    order_number: str = ""
    customer_id: str = ""
    seller_id: str = ""
    previous_status: str = ""
    refund_amount: int = 0


@dataclass(frozen=True)
class AvailabilityReported(DomainEvent):
    """Raised when the seller reports an item as unavailable."""

    customer_id: str = ""
    seller_id: str = ""
    reason: str = ""
    wait_time_days: int = 0


@dataclass(frozen=True)
class AvailabilityResponded(DomainEvent):
    """Raised when the buyer answers an availability notice."""

    customer_id: str = ""
    seller_id: str = ""
    response: str = ""


@dataclass(frozen=True)
class DisputeOpened(DomainEvent):
    customer_id: str = ""
    seller_id: str = ""
    dispute_type: str = ""


@dataclass(frozen=True)
class DisputeResolved(DomainEvent):
    customer_id: str = ""
    seller_id: str = ""
    resolution: str = ""
    refund_amount: int = 0


@dataclass(frozen=True)
class RefundRequested(DomainEvent):
    """Raised when a refund intent is recorded (``aggregate_id`` is the order)."""

    refund_id: str = ""
    customer_id: str = ""
    amount: int = 0
    payment_reference: str = ""


@dataclass(frozen=True)
class RefundStatusChanged(DomainEvent):
    refund_id: str = ""
    customer_id: str = ""
    old_status: str = ""
    new_status: str = ""
    amount: int = 0
