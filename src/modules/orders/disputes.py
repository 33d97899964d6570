"""Dispute handling.

The buyer (or an admin) opens a dispute on a sent order; only an admin
resolves it.  Resolutions map onto the state machine:

- ``favor_customer``: ``Cancelled`` with a pending refund of the balance.
- ``favor_seller``: ``Completed``.
- ``partial_refund``: ``Completed`` with a pending refund of the given
  amount.  Without one, half the total is refunded, capped at what is
  still refundable.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional
from uuid import UUID

import structlog
from django.db import transaction
from django.utils import timezone

from modules.core.actors import Actor, ActorRole
from modules.core.money import format_minor
from modules.orders.constants import (
    DISPUTE_DESCRIPTION_MIN_LENGTH,
    TRANSITION_ROLES,
    DisputeResolution,
    DisputeType,
    OrderStatus,
)
from modules.orders.events import DisputeOpened, DisputeResolved
from modules.orders.exceptions import OrderNotFound
from modules.orders.permissions import ensure_role, sender_type_for
from modules.orders.services import apply_status_change, ensure_transition_allowed
from modules.refunds.models import RefundMethod
from modules.refunds.services import ensure_payment_reference, record_refund_intent
from shared.domain.exceptions import InvalidState, TerminalState, ValidationError

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.refunds.repositories.interfaces import IRefundRepository

logger = structlog.get_logger(__name__)

_RESOLVE_ROLES = frozenset({ActorRole.ADMIN})


class DisputeService:
    def __init__(
        self,
        order_repository: IOrderRepository,
        refund_repository: IRefundRepository,
    ) -> None:
        self._order_repo = order_repository
        self._refund_repo = refund_repository

    @transaction.atomic
    def open_dispute(
        self, order_id: UUID, actor: Actor, dispute_type: str, description: str
    ) -> Order:
        if dispute_type not in DisputeType.values:
            raise ValidationError(
                f"Unknown dispute type '{dispute_type}'.",
                attr="type",
                allowed=list(DisputeType.values),
            )
        description = (description or "").strip()
        if len(description) < DISPUTE_DESCRIPTION_MIN_LENGTH:
            raise ValidationError(
                f"Description must be at least {DISPUTE_DESCRIPTION_MIN_LENGTH} "
                f"characters.",
                attr="description",
            )

        order = self._order_repo.get_for_update(str(order_id))
        if order is None:
            raise OrderNotFound(order_id=str(order_id))
        ensure_transition_allowed(order, OrderStatus.DISPUTED)
        ensure_role(
            order,
            actor,
            TRANSITION_ROLES[(order.status, OrderStatus.DISPUTED)],
            "open a dispute",
        )

        order.dispute = {
            "type": dispute_type,
            "description": description,
            "status": "open",
            "opened_by": actor.uid,
            "opened_at": timezone.now().isoformat(),
        }
        old_status = apply_status_change(order, OrderStatus.DISPUTED, actor)
        order.add_domain_event(
            DisputeOpened(
                aggregate_id=order.id,
                customer_id=order.customer_id,
                seller_id=order.seller_id,
                dispute_type=dispute_type,
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_timeline_entry(
            order_id=order.id,
            message=f"Dispute opened ({DisputeType(dispute_type).label}): {description}",
            sender_id=actor.uid,
            sender_type=sender_type_for(order, actor),
            old_status=old_status,
            new_status=OrderStatus.DISPUTED,
        )
        logger.info(
            "order.dispute_opened", order_id=str(order.id), dispute_type=dispute_type
        )
        return order

    @transaction.atomic
    def resolve_dispute(
        self,
        order_id: UUID,
        actor: Actor,
        resolution: str,
        refund_amount: Optional[int] = None,
        notes: str = "",
    ) -> Order:
        """Close a dispute on behalf of an administrator.

        Raises:
            ValidationError: unknown resolution, non-positive amount, or a
                partial refund with nothing left to refund.
            OrderNotFound: order does not exist.
            TerminalState / InvalidState: order is not ``Disputed``.
            Forbidden: actor is not an admin.
            RefundLimitExceeded: refund would exceed the order total.
        """
        if resolution not in DisputeResolution.values:
            raise ValidationError(
                f"Unknown resolution '{resolution}'.",
                attr="resolution",
                allowed=list(DisputeResolution.values),
            )
        if refund_amount is not None and (
            isinstance(refund_amount, bool)
            or not isinstance(refund_amount, int)
            or refund_amount <= 0
        ):
            raise ValidationError(
                "Refund amount must be a positive integer in minor units.",
                attr="refund_amount",
            )

        order = self._order_repo.get_for_update(str(order_id))
        if order is None:
            raise OrderNotFound(order_id=str(order_id))
        if order.is_terminal:
            raise TerminalState(
                f"Order is {order.status} and can no longer change.",
                current_status=order.status,
            )
        if order.status != OrderStatus.DISPUTED:
            raise InvalidState(
                "The order has no open dispute.",
                current_status=order.status,
                required_status=OrderStatus.DISPUTED,
            )
        ensure_role(order, actor, _RESOLVE_ROLES, "resolve a dispute")

        if resolution == DisputeResolution.FAVOR_CUSTOMER:
            new_status = OrderStatus.CANCELLED
            ensure_payment_reference(order)
            amount = order.refundable_amount
        elif resolution == DisputeResolution.PARTIAL_REFUND:
            new_status = OrderStatus.COMPLETED
            amount = refund_amount or min(
                max(order.total // 2, 1), order.refundable_amount
            )
            if not amount:
                raise ValidationError(
                    "The order has no refundable balance left.",
                    attr="refund_amount",
                    refunded_amount=order.refunded_amount,
                )
        else:
            new_status = OrderStatus.COMPLETED
            amount = 0

        if amount:
            record_refund_intent(
                self._refund_repo,
                order,
                amount=amount,
                reason=f"Dispute resolved: {DisputeResolution(resolution).label}",
                method=RefundMethod.ORIGINAL_PAYMENT,
                requested_by=actor.uid,
            )

        order.dispute = {
            **order.dispute,
            "status": "resolved",
            "resolution": resolution,
            "refund_amount": amount,
            "notes": notes,
            "resolved_by": actor.uid,
            "resolved_at": timezone.now().isoformat(),
        }
        old_status = apply_status_change(
            order,
            new_status,
            actor,
            refund_amount=amount if new_status == OrderStatus.CANCELLED else 0,
        )
        order.add_domain_event(
            DisputeResolved(
                aggregate_id=order.id,
                customer_id=order.customer_id,
                seller_id=order.seller_id,
                resolution=resolution,
                refund_amount=amount,
            )
        )
        self._order_repo.save(order)

        message = f"Dispute resolved: {DisputeResolution(resolution).label}."
        if amount:
            message += (
                f" A refund of {format_minor(amount, order.currency)} is pending."
            )
        self._order_repo.add_timeline_entry(
            order_id=order.id,
            message=message,
            sender_id=actor.uid,
            sender_type=sender_type_for(order, actor),
            old_status=old_status,
            new_status=new_status,
        )
        logger.info(
            "order.dispute_resolved",
            order_id=str(order.id),
            resolution=resolution,
            refund_amount=amount,
        )
        return order
