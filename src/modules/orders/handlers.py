"""Event handlers for Orders domain events.

They run after commit, from the outbox dispatcher.  Notifications are best
effort: failures are logged and dropped.  The payout signal and the
auto-complete step propagate failures, so the dispatcher marks the outbox
row ``FAILED`` and retries it; every handler must therefore tolerate
seeing the same event more than once.
"""

from __future__ import annotations

from typing import Callable, Iterable, Tuple

import structlog
from django.conf import settings

from modules.core.actors import Actor
from modules.orders.constants import OrderStatus
from modules.orders.events import (
    AvailabilityReported,
    AvailabilityResponded,
    DisputeOpened,
    DisputeResolved,
    OrderCreated,
    OrderStatusChanged,
    RefundRequested,
    RefundStatusChanged,
)
from shared.domain.bus import IEventHandler
from shared.domain.events import DomainEvent
from shared.domain.exceptions import InvalidTransition
from shared.infrastructure.collaborators import (
    get_notification_service,
    get_payout_ledger,
)

logger = structlog.get_logger(__name__)

Recipients = Callable[[DomainEvent], Iterable[Tuple[str, str]]]


class NotificationHandler(IEventHandler[DomainEvent]):
    """Sends one notification per ``(user_id, kind)`` the event maps to."""

    def __init__(self, recipients: Recipients, payload_fields: Tuple[str, ...] = ()):
        self._recipients = recipients
        self._payload_fields = payload_fields

    def handle(self, event: DomainEvent) -> None:
        service = get_notification_service()
        payload = {"order_id": str(event.aggregate_id), "event_id": str(event.event_id)}
        for name in self._payload_fields:
            payload[name] = getattr(event, name)
        for user_id, kind in self._recipients(event):
            if not user_id:
                continue
            try:
                service.notify(user_id, kind, payload)
            except Exception as exc:
                # Best effort: a lost notification is not redelivered.
                logger.warning(
                    "notification.failed",
                    user_id=user_id,
                    kind=kind,
                    order_id=payload["order_id"],
                    error=str(exc),
                )


def _status_change_recipients(event: OrderStatusChanged) -> Iterable[Tuple[str, str]]:
    kind = f"order_{event.new_status.lower()}"
    # The counterparty of whoever made the change; both when it was neither.
    if event.actor_id == event.customer_id:
        return [(event.seller_id, kind)]
    if event.actor_id == event.seller_id:
        return [(event.customer_id, kind)]
    return [(event.customer_id, kind), (event.seller_id, kind)]


_PAYOUT_FROM = frozenset({OrderStatus.RECEIVED, OrderStatus.DISPUTED})


class PayoutSignalHandler(IEventHandler[OrderStatusChanged]):
    """Tells the earnings ledger the seller can be paid.

    Fires when an order completes after receipt, or when a dispute is
    resolved as ``favor_seller`` or ``partial_refund``.
    """

    def handle(self, event: OrderStatusChanged) -> None:
        if (
            event.old_status not in _PAYOUT_FROM
            or event.new_status != OrderStatus.COMPLETED
        ):
            return
        get_payout_ledger().on_order_delivered(event.aggregate_id)
        logger.info("payout.signalled", order_id=str(event.aggregate_id))


class AutoCompleteOnReceiptHandler(IEventHandler[OrderStatusChanged]):
    """Completes received orders on behalf of the system actor."""

    def handle(self, event: OrderStatusChanged) -> None:
        if event.new_status != OrderStatus.RECEIVED:
            return
        if not settings.ORDER_AUTO_COMPLETE_ON_RECEIPT:
            return

        from modules.orders.repositories.django_repository import (
            OrderDjangoRepository,
        )
        from modules.orders.services import OrderService
        from modules.refunds.repositories.django_repository import (
            RefundDjangoRepository,
        )

        service = OrderService(OrderDjangoRepository(), RefundDjangoRepository())
        try:
            service.transition(event.aggregate_id, OrderStatus.COMPLETED, Actor.system())
        except InvalidTransition as exc:
            # Replayed event or an admin got there first.
            logger.info(
                "order.auto_complete_skipped",
                order_id=str(event.aggregate_id),
                code=exc.code,
            )


order_created_handler = NotificationHandler(
    lambda e: [(e.customer_id, "order_confirmed"), (e.seller_id, "new_order")],
    payload_fields=("order_number", "total", "currency"),
)
order_status_changed_handler = NotificationHandler(
    _status_change_recipients, payload_fields=("old_status", "new_status")
)
availability_reported_handler = NotificationHandler(
    lambda e: [(e.customer_id, "item_unavailable")],
    payload_fields=("reason", "wait_time_days"),
)
availability_responded_handler = NotificationHandler(
    lambda e: [(e.seller_id, f"availability_{e.response}")],
    payload_fields=("response",),
)
dispute_opened_handler = NotificationHandler(
    lambda e: [(e.seller_id, "dispute_opened")], payload_fields=("dispute_type",)
)
dispute_resolved_handler = NotificationHandler(
    lambda e: [(e.customer_id, "dispute_resolved"), (e.seller_id, "dispute_resolved")],
    payload_fields=("resolution", "refund_amount"),
)
refund_requested_handler = NotificationHandler(
    lambda e: [(e.customer_id, "refund_pending")], payload_fields=("refund_id", "amount")
)
refund_status_changed_handler = NotificationHandler(
    lambda e: [(e.customer_id, f"refund_{e.new_status}")],
    payload_fields=("refund_id", "amount", "new_status"),
)
payout_signal_handler = PayoutSignalHandler()
auto_complete_handler = AutoCompleteOnReceiptHandler()

SUBSCRIPTIONS = (
    (OrderCreated, order_created_handler),
    (OrderStatusChanged, order_status_changed_handler),
    (OrderStatusChanged, payout_signal_handler),
    (OrderStatusChanged, auto_complete_handler),
    (AvailabilityReported, availability_reported_handler),
    (AvailabilityResponded, availability_responded_handler),
    (DisputeOpened, dispute_opened_handler),
    (DisputeResolved, dispute_resolved_handler),
    (RefundRequested, refund_requested_handler),
    (RefundStatusChanged, refund_status_changed_handler),
)
