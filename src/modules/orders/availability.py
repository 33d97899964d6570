"""Availability / wait-time sub-flow.

A seller who cannot fulfil a paid order reports it (``mark_not_available``)
and may offer a wait of 1-30 days.  The buyer then either accepts the wait
or cancels; cancelling records a pending refund of the outstanding amount
against the original payment reference in the same transaction as the
status change and a single timeline entry.  Money movement is left to the
settlement process that later calls ``RefundService.update_refund_status``.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING, Any, Optional
from uuid import UUID

import structlog
from django.db import transaction
from django.utils import timezone

from modules.core.actors import Actor, ActorRole
from modules.core.money import format_minor
from modules.orders.constants import (
    WAIT_TIME_MAX_DAYS,
    WAIT_TIME_MIN_DAYS,
    AvailabilityStatus,
    BuyerWaitResponse,
    OrderStatus,
)
from modules.orders.events import AvailabilityReported, AvailabilityResponded
from modules.orders.exceptions import OrderNotFound
from modules.orders.permissions import ensure_role, sender_type_for
from modules.orders.services import apply_status_change
from modules.refunds.models import RefundMethod
from modules.refunds.services import ensure_payment_reference, record_refund_intent
from shared.domain.exceptions import InvalidState, TerminalState, ValidationError

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.refunds.repositories.interfaces import IRefundRepository

logger = structlog.get_logger(__name__)

_REPORT_ROLES = frozenset({ActorRole.SELLER, ActorRole.ADMIN})
_RESPOND_ROLES = frozenset({ActorRole.BUYER, ActorRole.ADMIN})


def validate_unavailability(reason: Any, wait_time_days: Any) -> None:
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError("A reason is required.", attr="reason")
    if wait_time_days is None:
        return
    if (
        isinstance(wait_time_days, bool)
        or not isinstance(wait_time_days, int)
        or not WAIT_TIME_MIN_DAYS <= wait_time_days <= WAIT_TIME_MAX_DAYS
    ):
        raise ValidationError(
            f"Wait time must be between {WAIT_TIME_MIN_DAYS} and "
            f"{WAIT_TIME_MAX_DAYS} days.",
            attr="wait_time_days",
            min=WAIT_TIME_MIN_DAYS,
            max=WAIT_TIME_MAX_DAYS,
        )


class AvailabilityService:
    def __init__(
        self,
        order_repository: IOrderRepository,
        refund_repository: IRefundRepository,
    ) -> None:
        self._order_repo = order_repository
        self._refund_repo = refund_repository

    # ------------------------------------------------------------------
    # Seller side
    # ------------------------------------------------------------------

    @transaction.atomic
    def mark_not_available(
        self,
        order_id: UUID,
        actor: Actor,
        reason: str,
        wait_time_days: Optional[int] = None,
    ) -> Order:
        """Report that the order cannot be fulfilled right now.

        Raises:
            ValidationError: blank reason or wait time outside 1-30 days.
            OrderNotFound: order does not exist.
            TerminalState: order is completed or cancelled.
            InvalidState: order is not ``Processing``.
            Forbidden: actor is neither the order's seller nor an admin.
        """
        validate_unavailability(reason, wait_time_days)

        order = self._order_repo.get_for_update(str(order_id))
        if order is None:
            raise OrderNotFound(order_id=str(order_id))
        if order.is_terminal:
            raise TerminalState(
                f"Order is {order.status} and can no longer change.",
                current_status=order.status,
                requested_status=OrderStatus.AVAILABILITY_CHECK,
            )
        if order.status != OrderStatus.PROCESSING:
            raise InvalidState(
                "Unavailability can only be reported while the order is processing.",
                current_status=order.status,
                required_status=OrderStatus.PROCESSING,
            )
        ensure_role(order, actor, _REPORT_ROLES, "report the order as unavailable")

        return self.report_unavailable(order, actor, reason, wait_time_days)

    def report_unavailable(
        self,
        order: Order,
        actor: Actor,
        reason: str,
        wait_time_days: Optional[int] = None,
    ) -> Order:
        """Apply the report to an order already locked and authorized."""
        order.availability_reason = reason.strip()
        order.buyer_wait_response = ""
        if wait_time_days:
            order.availability_status = AvailabilityStatus.WAITING_BUYER_RESPONSE
            order.wait_time_days = wait_time_days
            order.wait_time_expires_at = timezone.now() + timedelta(
                days=wait_time_days
            )
            message = (
                f"Sorry, an item in your order is currently unavailable "
                f"({order.availability_reason}). The seller expects it back within "
                f"{wait_time_days} day{'s' if wait_time_days != 1 else ''}. "
                f"You can wait or cancel for a full refund."
            )
        else:
            order.availability_status = AvailabilityStatus.NOT_AVAILABLE
            order.wait_time_days = None
            order.wait_time_expires_at = None
            message = (
                f"Sorry, an item in your order is unavailable "
                f"({order.availability_reason}). You can cancel for a full refund."
            )

        old_status = apply_status_change(order, OrderStatus.AVAILABILITY_CHECK, actor)
        order.add_domain_event(
            AvailabilityReported(
                aggregate_id=order.id,
                customer_id=order.customer_id,
                seller_id=order.seller_id,
                reason=order.availability_reason,
                wait_time_days=wait_time_days or 0,
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_timeline_entry(
            order_id=order.id,
            message=message,
            sender_id=actor.uid,
            sender_type=sender_type_for(order, actor),
            old_status=old_status,
            new_status=OrderStatus.AVAILABILITY_CHECK,
        )
        logger.info(
            "order.marked_not_available",
            order_id=str(order.id),
            wait_time_days=wait_time_days,
            availability_status=order.availability_status,
        )
        return order

    # ------------------------------------------------------------------
    # Buyer side
    # ------------------------------------------------------------------

    @transaction.atomic
    def respond_to_availability(
        self, order_id: UUID, actor: Actor, response: str
    ) -> Order:
        """Record the buyer's answer to an availability notice.

        Raises:
            ValidationError: response is neither ``accepted`` nor ``cancelled``.
            OrderNotFound: order does not exist.
            InvalidState: order is not in ``AvailabilityCheck`` or the wait
                was already accepted.
            Forbidden: actor is neither the order's buyer nor an admin.
            MissingPaymentReference: cancelling an order without a reference.
        """
        if response not in BuyerWaitResponse.values:
            raise ValidationError(
                f"Unknown response '{response}'.",
                attr="response",
                allowed=list(BuyerWaitResponse.values),
            )

        order = self._order_repo.get_for_update(str(order_id))
        if order is None:
            raise OrderNotFound(order_id=str(order_id))
        if order.status != OrderStatus.AVAILABILITY_CHECK:
            raise InvalidState(
                "The order is not waiting for an availability response.",
                current_status=order.status,
                required_status=OrderStatus.AVAILABILITY_CHECK,
            )
        ensure_role(order, actor, _RESPOND_ROLES, "respond to the availability notice")

        log = logger.bind(order_id=str(order.id), response=response)

        if response == BuyerWaitResponse.ACCEPTED:
            if order.buyer_wait_response == BuyerWaitResponse.ACCEPTED:
                raise InvalidState(
                    "The wait has already been accepted.",
                    current_status=order.status,
                    buyer_wait_response=order.buyer_wait_response,
                )
            order.buyer_wait_response = BuyerWaitResponse.ACCEPTED
            order.availability_status = AvailabilityStatus.WAITING_RESTOCK
            message = "The buyer agreed to wait for the item to be restocked."
            new_status = ""
            old_status = ""
        else:
            ensure_payment_reference(order)
            refund_amount = order.refundable_amount
            if refund_amount:
                record_refund_intent(
                    self._refund_repo,
                    order,
                    amount=refund_amount,
                    reason="Item unavailable; buyer cancelled the order",
                    method=RefundMethod.ORIGINAL_PAYMENT,
                    requested_by=actor.uid,
                )
            order.buyer_wait_response = BuyerWaitResponse.CANCELLED
            order.availability_status = AvailabilityStatus.CANCELLED
            old_status = apply_status_change(
                order, OrderStatus.CANCELLED, actor, refund_amount=refund_amount
            )
            new_status = OrderStatus.CANCELLED
            message = "The order has been cancelled."
            if refund_amount:
                message += (
                    f" A refund of {format_minor(refund_amount, order.currency)} "
                    f"to your original payment method is pending."
                )

        order.add_domain_event(
            AvailabilityResponded(
                aggregate_id=order.id,
                customer_id=order.customer_id,
                seller_id=order.seller_id,
                response=response,
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_timeline_entry(
            order_id=order.id,
            message=message,
            sender_id=actor.uid,
            sender_type=sender_type_for(order, actor),
            old_status=old_status,
            new_status=new_status,
        )
        log.info("order.availability_responded", status=order.status)
        return order
