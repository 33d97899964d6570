"""Refund ledger service layer.

Every write goes to the ledger row **and** to the order's embedded
``refunds`` mirror inside one transaction, with the order row locked so
concurrent refunds on the same order are serialized and the cap
(``pending + completed <= total``) holds.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List
from uuid import UUID

import structlog
from django.db import transaction
from django.utils import timezone

from modules.core.actors import Actor, ActorRole
from modules.core.money import format_minor
from modules.orders.constants import OrderStatus
from modules.orders.events import RefundRequested, RefundStatusChanged
from modules.orders.exceptions import MissingPaymentReference, OrderNotFound
from modules.orders.permissions import ensure_role, sender_type_for
from modules.refunds.exceptions import RefundLimitExceeded, RefundNotFound
from modules.refunds.models import RefundMethod, RefundRecord, RefundStatus
from shared.domain.exceptions import InvalidState, InvalidTransition, ValidationError

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.refunds.repositories.interfaces import IRefundRepository

logger = structlog.get_logger(__name__)

_ISSUE_ROLES = frozenset({ActorRole.SELLER, ActorRole.ADMIN})
_SETTLEMENT_ROLES = frozenset({ActorRole.ADMIN, ActorRole.SYSTEM})
_VIEW_ROLES = frozenset(
    {ActorRole.BUYER, ActorRole.SELLER, ActorRole.ADMIN, ActorRole.SYSTEM}
)


def ensure_payment_reference(order: Order) -> None:
    if not order.payment_reference:
        logger.error("refund.missing_payment_reference", order_id=str(order.id))
        raise MissingPaymentReference(order_id=str(order.id))


def record_refund_intent(
    refund_repository: IRefundRepository,
    order: Order,
    amount: int,
    reason: str,
    method: str,
    requested_by: str,
) -> RefundRecord:
    """Write a pending refund to the ledger and to the order's mirror.

    ``order`` must be locked by the caller, who also saves it (which
    persists the ``RefundRequested`` event) and writes the timeline entry.
    """
    ensure_payment_reference(order)

    committed = refund_repository.committed_amount(order.id)
    if amount + committed > order.total:
        raise RefundLimitExceeded(
            f"Refund of {amount} exceeds the refundable balance of "
            f"{order.total - committed}.",
            attr="amount",
            requested_amount=amount,
            refunded_amount=committed,
            order_total=order.total,
        )

    refund = refund_repository.create(
        {
            "order_id": order.id,
            "payment_reference": order.payment_reference,
            "amount": amount,
            "reason": reason,
            "refund_method": method,
            "requested_by": requested_by,
        }
    )
    order.refunds = [*order.refunds, refund.as_summary()]
    order.add_domain_event(
        RefundRequested(
            aggregate_id=order.id,
            refund_id=str(refund.id),
            customer_id=order.customer_id,
            amount=amount,
            payment_reference=order.payment_reference,
        )
    )
    return refund


class RefundService:
    """Application service for the refund ledger.

    Receives repositories via constructor injection (DIP).
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        refund_repository: IRefundRepository,
    ) -> None:
        self._order_repo = order_repository
        self._refund_repo = refund_repository

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def issue_refund(
        self,
        order_id: UUID,
        actor: Actor,
        amount: int,
        reason: str,
        method: str = RefundMethod.ORIGINAL_PAYMENT,
    ) -> RefundRecord:
        """Record a refund intent on behalf of the seller or an admin.

        Raises:
            ValidationError: non-positive amount, blank reason, unknown method.
            OrderNotFound: order does not exist.
            InvalidState: order is already cancelled.
            Forbidden: actor is neither the order's seller nor an admin.
            RefundLimitExceeded: cap would be exceeded.
            MissingPaymentReference: order has no payment reference.
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError(
                "Refund amount must be a positive integer in minor units.",
                attr="amount",
            )
        if not reason or not reason.strip():
            raise ValidationError("A refund reason is required.", attr="reason")
        if method not in RefundMethod.values:
            raise ValidationError(
                f"Unknown refund method '{method}'.",
                attr="method",
                allowed=sorted(RefundMethod.values),
            )

        order = self._order_repo.get_for_update(str(order_id))
        if order is None:
            raise OrderNotFound(order_id=str(order_id))

        log = logger.bind(order_id=str(order.id), actor_id=actor.uid, amount=amount)

        if order.status == OrderStatus.CANCELLED:
            raise InvalidState(
                "Cancelled orders are refunded by the cancellation itself.",
                current_status=order.status,
            )
        ensure_role(order, actor, _ISSUE_ROLES, "issue a refund")

        refund = record_refund_intent(
            self._refund_repo,
            order,
            amount=amount,
            reason=reason.strip(),
            method=method,
            requested_by=actor.uid,
        )
        self._order_repo.save(order)
        self._order_repo.add_timeline_entry(
            order_id=order.id,
            message=(
                f"A refund of {format_minor(amount, order.currency)} has been "
                f"requested: {refund.reason}"
            ),
            sender_id=actor.uid,
            sender_type=sender_type_for(order, actor),
        )
        log.info("refund.issued", refund_id=str(refund.id))
        return refund

    @transaction.atomic
    def update_refund_status(
        self, refund_id: UUID, actor: Actor, new_status: str
    ) -> RefundRecord:
        """Settle a pending refund as ``completed`` or ``failed``.

        Called by the external settlement process (system actor) or an
        administrator.

        Raises:
            ValidationError: unknown status value.
            RefundNotFound: refund does not exist.
            Forbidden: actor is neither admin nor system.
            InvalidTransition: refund is not pending, or target is pending.
        """
        if new_status not in RefundStatus.values:
            raise ValidationError(
                f"Unknown refund status '{new_status}'.",
                attr="status",
                allowed=sorted(RefundStatus.values),
            )

        existing = self._refund_repo.get_by_id(str(refund_id))
        if existing is None:
            raise RefundNotFound(refund_id=str(refund_id))

        # Lock order before refund, the same order issue_refund uses.
        order = self._order_repo.get_for_update(str(existing.order_id))
        refund = self._refund_repo.get_for_update(str(refund_id))

        ensure_role(order, actor, _SETTLEMENT_ROLES, "settle a refund")

        old_status = refund.status
        if old_status != RefundStatus.PENDING or new_status == RefundStatus.PENDING:
            raise InvalidTransition(
                f"Refund cannot move from {old_status} to {new_status}.",
                current_status=old_status,
                requested_status=new_status,
            )

        refund.status = new_status
        refund.processed_by = actor.uid
        refund.processed_at = timezone.now()
        self._refund_repo.save(refund)

        order.refunds = [
            {**entry, "status": new_status}
            if entry.get("refund_id") == str(refund.id)
            else entry
            for entry in order.refunds
        ]
        order.add_domain_event(
            RefundStatusChanged(
                aggregate_id=order.id,
                refund_id=str(refund.id),
                customer_id=order.customer_id,
                old_status=old_status,
                new_status=new_status,
                amount=refund.amount,
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_timeline_entry(
            order_id=order.id,
            message=(
                f"Refund of {format_minor(refund.amount, order.currency)} "
                f"{'has been completed' if new_status == RefundStatus.COMPLETED else 'failed'}."
            ),
            sender_id=actor.uid,
            sender_type=sender_type_for(order, actor),
        )
        logger.info(
            "refund.status_updated",
            refund_id=str(refund.id),
            order_id=str(order.id),
            old_status=old_status,
            new_status=new_status,
        )
        return refund

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_refunds(self, order_id: UUID, actor: Actor) -> List[RefundRecord]:
        """Refunds of one order, visible to its buyer, its seller and admins."""
        order = self._order_repo.get_by_id(str(order_id))
        if order is None:
            raise OrderNotFound(order_id=str(order_id))
        ensure_role(order, actor, _VIEW_ROLES, "view refunds of this order")
        return list(self._refund_repo.list({"order_id": order.id}))
