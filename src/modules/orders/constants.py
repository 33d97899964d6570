"""Order domain constants.

Defines status choices, the transition table of the order state machine
and the roles allowed to request each transition.
"""

from django.db import models

from modules.core.actors import ActorRole


class OrderStatus(models.TextChoices):
    PROCESSING = "Processing", "Processing"
    AVAILABILITY_CHECK = "AvailabilityCheck", "Availability check"
    SENT = "Sent", "Sent"
    RECEIVED = "Received", "Received"
    COMPLETED = "Completed", "Completed"
    CANCELLED = "Cancelled", "Cancelled"
    DISPUTED = "Disputed", "Disputed"


VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.PROCESSING: {
        OrderStatus.SENT,
        OrderStatus.AVAILABILITY_CHECK,
        OrderStatus.CANCELLED,
    },
    OrderStatus.AVAILABILITY_CHECK: {OrderStatus.SENT, OrderStatus.CANCELLED},
    OrderStatus.SENT: {
        OrderStatus.RECEIVED,
        OrderStatus.CANCELLED,
        OrderStatus.DISPUTED,
    },
    OrderStatus.RECEIVED: {OrderStatus.COMPLETED},
    OrderStatus.DISPUTED: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
}

TERMINAL_STATES: set[str] = {OrderStatus.COMPLETED, OrderStatus.CANCELLED}

_BUYER = ActorRole.BUYER
_SELLER = ActorRole.SELLER
_ADMIN = ActorRole.ADMIN
_SYSTEM = ActorRole.SYSTEM

# (current, requested) -> roles the actor must hold relative to the order
TRANSITION_ROLES: dict[tuple[str, str], frozenset[str]] = {
    (OrderStatus.PROCESSING, OrderStatus.SENT): frozenset({_SELLER, _ADMIN}),
    (OrderStatus.AVAILABILITY_CHECK, OrderStatus.SENT): frozenset({_SELLER, _ADMIN}),
    (OrderStatus.PROCESSING, OrderStatus.AVAILABILITY_CHECK): frozenset(
        {_SELLER, _ADMIN}
    ),
    (OrderStatus.PROCESSING, OrderStatus.CANCELLED): frozenset(
        {_BUYER, _SELLER, _ADMIN}
    ),
    (OrderStatus.AVAILABILITY_CHECK, OrderStatus.CANCELLED): frozenset(
        {_ADMIN, _SYSTEM}
    ),
    (OrderStatus.SENT, OrderStatus.CANCELLED): frozenset({_ADMIN, _SYSTEM}),
    (OrderStatus.DISPUTED, OrderStatus.CANCELLED): frozenset({_ADMIN, _SYSTEM}),
    (OrderStatus.SENT, OrderStatus.RECEIVED): frozenset({_BUYER, _ADMIN}),
    (OrderStatus.SENT, OrderStatus.DISPUTED): frozenset({_BUYER, _ADMIN}),
    (OrderStatus.RECEIVED, OrderStatus.COMPLETED): frozenset({_SYSTEM, _ADMIN}),
    (OrderStatus.DISPUTED, OrderStatus.COMPLETED): frozenset({_ADMIN}),
}


class AvailabilityStatus(models.TextChoices):
    WAITING_BUYER_RESPONSE = "waiting_buyer_response", "Waiting for buyer response"
    NOT_AVAILABLE = "not_available", "Not available"
    WAITING_RESTOCK = "waiting_restock", "Waiting for restock"
    CANCELLED = "cancelled", "Cancelled"


class BuyerWaitResponse(models.TextChoices):
    ACCEPTED = "accepted", "Accepted"
    CANCELLED = "cancelled", "Cancelled"


class DisputeType(models.TextChoices):
    ITEM_NOT_RECEIVED = "item_not_received", "Item not received"
    WRONG_ITEM = "wrong_item", "Wrong item"
    DAMAGED_ITEM = "damaged_item", "Damaged item"


class DisputeResolution(models.TextChoices):
    FAVOR_CUSTOMER = "favor_customer", "Resolved in favor of the customer"
    FAVOR_SELLER = "favor_seller", "Resolved in favor of the seller"
    PARTIAL_REFUND = "partial_refund", "Partial refund"


class SenderType(models.TextChoices):
    SYSTEM = "system", "System"
    BUYER = "buyer", "Buyer"
    SELLER = "seller", "Seller"


# Fulfillment metadata accepted with the ``Sent`` transition
SENT_METADATA_FIELDS: frozenset[str] = frozenset(
    {"waybill_park_id", "waybill_park_name", "tracking_note", "photo_url"}
)
AVAILABILITY_EXTRA_FIELDS: frozenset[str] = frozenset({"reason", "wait_time_days"})

WAIT_TIME_MIN_DAYS = 1
WAIT_TIME_MAX_DAYS = 30

DISPUTE_DESCRIPTION_MIN_LENGTH = 10

ORDER_NUMBER_MAX_RETRIES = 5
