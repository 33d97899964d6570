"""Order service layer (Use Cases).

Owns the order state machine.  All write operations are atomic: the
service defines the unit-of-work boundary, locks the order row and saves
through the repository, whose compare-and-swap on ``version`` rejects
writes computed from a stale read.

Checks run in a fixed order and before any write:

1. ``requested_status`` is a known status (``ValidationError``).
2. The order exists (``OrderNotFound``).
3. The order is not terminal (``TerminalState``).
4. The pair is in the transition table (``InvalidTransition``).
5. The actor holds a role allowed for the pair (``Forbidden``).

Notifications and the payout signal are not issued here: the events
recorded with the order are delivered by the outbox dispatcher after
commit.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional
from uuid import UUID

import structlog
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from modules.core.actors import Actor, ActorRole
from modules.core.money import format_minor
from modules.orders.constants import (
    AVAILABILITY_EXTRA_FIELDS,
    SENT_METADATA_FIELDS,
    TRANSITION_ROLES,
    VALID_TRANSITIONS,
    OrderStatus,
)
from modules.orders.events import OrderCancelled, OrderStatusChanged
from modules.orders.exceptions import OrderNotFound
from modules.orders.permissions import ensure_role, sender_type_for
from modules.refunds.models import RefundMethod
from modules.refunds.services import ensure_payment_reference, record_refund_intent
from shared.domain.exceptions import (
    DomainError,
    InvalidTransition,
    TerminalState,
    ValidationError,
)

if TYPE_CHECKING:
    from modules.orders.models import Order, TimelineEntry
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.refunds.repositories.interfaces import IRefundRepository

logger = structlog.get_logger(__name__)

_VIEW_ROLES = frozenset(
    {ActorRole.BUYER, ActorRole.SELLER, ActorRole.ADMIN, ActorRole.SYSTEM}
)

_TRANSITION_MESSAGES = {
    OrderStatus.SENT: "Your order has been sent.",
    OrderStatus.RECEIVED: "The buyer confirmed the order was received.",
    OrderStatus.COMPLETED: "The order is complete.",
    OrderStatus.DISPUTED: "A dispute has been opened on this order.",
    OrderStatus.CANCELLED: "The order has been cancelled.",
}


def apply_status_change(
    order: Order, new_status: str, actor: Actor, refund_amount: int = 0
) -> str:
    """Move ``order`` to ``new_status`` and record the matching events.

    The caller has already validated the transition and saves the order.
    Returns the previous status.
    """
    old_status = order.status
    order.status = new_status
    order.add_domain_event(
        OrderStatusChanged(
            aggregate_id=order.id,
            order_number=order.order_number,
            customer_id=order.customer_id,
            seller_id=order.seller_id,
            old_status=old_status,
            new_status=new_status,
            actor_id=actor.uid,
            actor_role=actor.role,
        )
    )
    if new_status == OrderStatus.CANCELLED:
        order.add_domain_event(
            OrderCancelled(
                aggregate_id=order.id,
                order_number=order.order_number,
                customer_id=order.customer_id,
                seller_id=order.seller_id,
                previous_status=old_status,
                refund_amount=refund_amount,
            )
        )
    return old_status


def ensure_transition_allowed(order: Order, requested_status: str) -> None:
    if order.is_terminal:
        raise TerminalState(
            f"Order is {order.status} and can no longer change.",
            current_status=order.status,
            requested_status=requested_status,
        )
    if not order.can_transition_to(requested_status):
        raise InvalidTransition(
            f"Cannot transition from {order.status} to {requested_status}.",
            current_status=order.status,
            requested_status=requested_status,
            allowed_statuses=sorted(VALID_TRANSITIONS.get(order.status, set())),
        )


class OrderService:
    """Application service for Order use-cases.

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
    def transition(
        self,
        order_id: UUID,
        requested_status: str,
        actor: Actor,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> Order:
        """Move an order to ``requested_status`` on behalf of ``actor``.

        ``extra`` carries fulfillment metadata for ``Sent`` and the
        ``reason``/``wait_time_days`` pair for ``AvailabilityCheck``; it is
        rejected for every other status.

        Cancelling records a pending refund of the outstanding balance in
        the same transaction.

        Raises:
            ValidationError: unknown status or unexpected ``extra``.
            OrderNotFound: order does not exist.
            TerminalState: order is ``Completed`` or ``Cancelled``.
            InvalidTransition: pair not in the transition table.
            Forbidden: actor lacks the required role.
            ConcurrentUpdate: another request saved the order first.
        """
        if requested_status not in OrderStatus.values:
            raise ValidationError(
                f"Unknown order status '{requested_status}'.",
                attr="status",
                allowed=list(OrderStatus.values),
            )
        extra = dict(extra or {})
        self._validate_extra(requested_status, extra)

        order = self._order_repo.get_for_update(str(order_id))
        if order is None:
            raise OrderNotFound(order_id=str(order_id))

        log = logger.bind(
            order_id=str(order.id),
            current_status=order.status,
            requested_status=requested_status,
            actor_id=actor.uid,
            actor_role=actor.role,
        )

        try:
            ensure_transition_allowed(order, requested_status)
            ensure_role(
                order,
                actor,
                TRANSITION_ROLES[(order.status, requested_status)],
                f"move this order from {order.status} to {requested_status}",
            )
        except DomainError as exc:
            log.warning("order.transition_rejected", code=exc.code)
            raise

        if requested_status == OrderStatus.AVAILABILITY_CHECK:
            from modules.orders.availability import AvailabilityService

            return AvailabilityService(
                self._order_repo, self._refund_repo
            ).report_unavailable(
                order,
                actor,
                reason=extra["reason"],
                wait_time_days=extra.get("wait_time_days"),
            )

        message = _TRANSITION_MESSAGES[requested_status]
        refund_amount = 0
        if requested_status == OrderStatus.SENT:
            order.fulfillment = {
                **extra,
                "sent_at": timezone.now().isoformat(),
                "sent_by": actor.uid,
            }
            if extra.get("waybill_park_name"):
                message = (
                    f"Your order has been sent to {extra['waybill_park_name']}."
                )
        elif requested_status == OrderStatus.CANCELLED:
            ensure_payment_reference(order)
            refund_amount = order.refundable_amount
            if refund_amount:
                record_refund_intent(
                    self._refund_repo,
                    order,
                    amount=refund_amount,
                    reason=f"Order cancelled from {order.status}",
                    method=RefundMethod.ORIGINAL_PAYMENT,
                    requested_by=actor.uid,
                )
                message = (
                    f"{message} A refund of "
                    f"{format_minor(refund_amount, order.currency)} is pending."
                )
        elif requested_status == OrderStatus.DISPUTED:
            order.dispute = {
                "opened_by": actor.uid,
                "opened_at": timezone.now().isoformat(),
            }

        old_status = apply_status_change(
            order, requested_status, actor, refund_amount=refund_amount
        )
        self._order_repo.save(order)
        self._order_repo.add_timeline_entry(
            order_id=order.id,
            message=message,
            sender_id=actor.uid,
            sender_type=sender_type_for(order, actor),
            old_status=old_status,
            new_status=requested_status,
        )

        log.info("order.transition_applied", version=order.version)
        return order

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str, actor: Optional[Actor] = None) -> Order:
        """Retrieve a single order by ID.

        When ``actor`` is given, only the order's buyer, its seller and
        admins may read it.

        Raises:
            OrderNotFound: if the order does not exist.
            Forbidden: actor is unrelated to the order.
        """
        order = self._order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound(order_id=str(order_id))
        if actor is not None:
            ensure_role(order, actor, _VIEW_ROLES, "view this order")
        return order

    def list_orders(
        self, actor: Actor, filters: Optional[Dict[str, Any]] = None
    ) -> Any:
        """Orders visible to ``actor``: all for admins, own orders otherwise."""
        queryset = self._order_repo.list(filters)
        if actor.is_admin or actor.is_system:
            return queryset
        return queryset.filter(Q(customer_id=actor.uid) | Q(seller_id=actor.uid))

    def get_timeline(self, order_id: str, actor: Actor) -> List[TimelineEntry]:
        order = self.get_order(order_id, actor)
        return self._order_repo.list_timeline(order.id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_extra(requested_status: str, extra: Dict[str, Any]) -> None:
        if not extra:
            if requested_status == OrderStatus.AVAILABILITY_CHECK:
                raise ValidationError(
                    "A reason is required when reporting unavailability.",
                    attr="extra.reason",
                )
            return

        if requested_status == OrderStatus.SENT:
            allowed = SENT_METADATA_FIELDS
        elif requested_status == OrderStatus.AVAILABILITY_CHECK:
            allowed = AVAILABILITY_EXTRA_FIELDS
        else:
            raise ValidationError(
                f"No extra data is accepted when moving to {requested_status}.",
                attr="extra",
            )

        unknown = sorted(set(extra) - allowed)
        if unknown:
            raise ValidationError(
                f"Unexpected fields: {', '.join(unknown)}.",
                attr="extra",
                allowed=sorted(allowed),
            )
        for key, value in extra.items():
            if key != "wait_time_days" and value is not None and not isinstance(
                value, str
            ):
                raise ValidationError(f"'{key}' must be a string.", attr=f"extra.{key}")

        if requested_status == OrderStatus.AVAILABILITY_CHECK:
            from modules.orders.availability import validate_unavailability

            validate_unavailability(extra.get("reason"), extra.get("wait_time_days"))
