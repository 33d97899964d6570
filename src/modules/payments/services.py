"""Payment verification and reconciliation.

``PaymentVerificationService.verify_and_create_order`` turns a gateway
transaction into exactly one order:

1. Replay fast path: a reference that already produced an order returns
   that order without calling the gateway.
2. The cart must belong to a single seller.
3. Gateway verification (bounded timeout, never retried here).
4. Amount and currency must match exactly (integer minor units).
5. Order, items, reservation, first timeline entry and ``OrderCreated``
   outbox event are written in one transaction.  Losing a race on the
   unique reference rolls the savepoint back and returns the winner's order.

No database transaction is open while the gateway is called.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

import structlog
from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from modules.core.actors import Actor
from modules.core.commission import CommissionRateCache, commission_rate_cache
from modules.core.money import format_minor
from modules.orders.constants import OrderStatus, SenderType
from modules.orders.events import OrderCreated
from modules.payments.dtos import CartItemDTO
from modules.payments.exceptions import (
    AmountMismatch,
    GatewayError,
    MultiSellerCartError,
    PaymentNotSuccessful,
)
from shared.domain.exceptions import Forbidden, ValidationError

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.payments.gateway.base import IPaymentGateway
    from modules.payments.repositories.interfaces import (
        IPaymentReservationRepository,
    )

logger = structlog.get_logger(__name__)


class PaymentVerificationService:
    """Receives collaborators via constructor injection (DIP)."""

    def __init__(
        self,
        gateway: IPaymentGateway,
        order_repository: IOrderRepository,
        reservation_repository: IPaymentReservationRepository,
        commission_rates: CommissionRateCache = commission_rate_cache,
    ) -> None:
        self._gateway = gateway
        self._order_repo = order_repository
        self._reservation_repo = reservation_repository
        self._commission_rates = commission_rates

    def verify_and_create_order(
        self,
        reference: str,
        claimed_total: int,
        cart_items: Sequence[CartItemDTO],
        buyer: Actor,
        delivery_info: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Order, bool]:
        """Return ``(order, created)``; ``created`` is ``False`` on replay.

        Raises:
            ValidationError: empty cart, non-positive total, buyer is the seller.
            Forbidden: the reference already belongs to another buyer.
            MultiSellerCartError: items from more than one seller.
            GatewayError: gateway unreachable, timed out or answered non-2xx.
            PaymentNotSuccessful: gateway status is not ``success``.
            AmountMismatch: amount or currency differs from the claim.
        """
        reference = (reference or "").strip()
        log = logger.bind(reference=reference, buyer_id=buyer.uid)

        if not reference:
            raise ValidationError("A payment reference is required.", attr="reference")
        if isinstance(claimed_total, bool) or not isinstance(claimed_total, int) or (
            claimed_total <= 0
        ):
            raise ValidationError(
                "Claimed total must be a positive integer in minor units.",
                attr="claimed_total",
            )
        if not cart_items:
            raise ValidationError("Order must have at least one item.", attr="items")

        existing = self._find_replay(reference, buyer)
        if existing is not None:
            log.info("payment.replayed", order_id=str(existing.id))
            return existing, False

        seller_id = self._single_seller(cart_items)
        if seller_id == buyer.uid:
            raise ValidationError("Sellers cannot buy their own items.", attr="items")

        log.info("payment.verification_started", gateway=self._gateway.name)
        txn = self._gateway.verify_transaction(reference)

        if not txn.success:
            log.warning("payment.not_successful", gateway_status=txn.status)
            raise PaymentNotSuccessful(
                f"Payment {reference} is '{txn.status}', not successful.",
                reference=reference,
                gateway_status=txn.status,
            )
        if txn.amount != claimed_total:
            log.warning(
                "payment.amount_mismatch",
                expected_amount=claimed_total,
                actual_amount=txn.amount,
            )
            raise AmountMismatch(
                f"Charged amount {txn.amount} does not match the order total "
                f"{claimed_total}.",
                reference=reference,
                expected_amount=claimed_total,
                actual_amount=txn.amount,
            )
        if txn.currency != settings.ORDER_CURRENCY:
            log.warning(
                "payment.currency_mismatch",
                expected_currency=settings.ORDER_CURRENCY,
                actual_currency=txn.currency,
            )
            raise AmountMismatch(
                f"Charged currency {txn.currency} does not match "
                f"{settings.ORDER_CURRENCY}.",
                reference=reference,
                expected_currency=settings.ORDER_CURRENCY,
                actual_currency=txn.currency,
            )

        try:
            with transaction.atomic():
                order = self._create_order(
                    reference, claimed_total, cart_items, seller_id, buyer, delivery_info
                )
        except IntegrityError:
            existing = self._find_replay(reference, buyer)
            if existing is None:
                raise
            log.info("payment.lost_creation_race", order_id=str(existing.id))
            return existing, False

        log.info(
            "payment.order_created",
            order_id=str(order.id),
            order_number=order.order_number,
            seller_id=seller_id,
            total=claimed_total,
        )
        return order, True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _create_order(
        self,
        reference: str,
        total: int,
        cart_items: Sequence[CartItemDTO],
        seller_id: str,
        buyer: Actor,
        delivery_info: Optional[Dict[str, Any]],
    ) -> Order:
        order = self._order_repo.create(
            {
                "customer_id": buyer.uid,
                "seller_id": seller_id,
                "total": total,
                "currency": settings.ORDER_CURRENCY,
                "payment_reference": reference,
                "commission_rate": self._commission_rates.get(),
                "delivery_info": delivery_info or {},
                "items": [
                    {
                        "product_id": item.product_id,
                        "name": item.name,
                        "unit_price": item.unit_price,
                        "quantity": item.quantity,
                    }
                    for item in cart_items
                ],
            }
        )
        self._reservation_repo.reserve(
            {
                "reference": reference,
                "order_id": order.id,
                "customer_id": buyer.uid,
                "amount": total,
                "currency": settings.ORDER_CURRENCY,
                "gateway": self._gateway.name,
            }
        )
        order.add_domain_event(
            OrderCreated(
                aggregate_id=order.id,
                order_number=order.order_number,
                customer_id=order.customer_id,
                seller_id=order.seller_id,
                total=order.total,
                currency=order.currency,
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_timeline_entry(
            order_id=order.id,
            message=(
                f"Order {order.order_number} placed. Payment of "
                f"{format_minor(total, order.currency)} confirmed."
            ),
            sender_id="system",
            sender_type=SenderType.SYSTEM,
            new_status=OrderStatus.PROCESSING,
        )
        return order

    def _find_replay(self, reference: str, buyer: Actor) -> Optional[Order]:
        reservation = self._reservation_repo.get_by_reference(reference)
        if reservation is None:
            return None
        if reservation.customer_id != buyer.uid and not buyer.is_admin:
            logger.warning(
                "payment.replay_by_other_buyer",
                reference=reference,
                buyer_id=buyer.uid,
            )
            raise Forbidden(
                "This payment reference belongs to another buyer.",
                reference=reference,
            )
        return self._order_repo.get_by_id(str(reservation.order_id))

    @staticmethod
    def _single_seller(cart_items: Sequence[CartItemDTO]) -> str:
        sellers = sorted({item.seller_id for item in cart_items})
        if len(sellers) != 1:
            raise MultiSellerCartError(seller_ids=sellers)
        return sellers[0]


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


@dataclass
class Discrepancy:
    order_id: str
    reference: str
    kind: str
    detail: str
    expected_amount: Optional[int] = None
    actual_amount: Optional[int] = None


@dataclass
class ReconciliationReport:
    since: str
    checked: int = 0
    discrepancies: List[Discrepancy] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


class PaymentReconciliationService:
    """Re-verifies recent orders against the gateway.

    Reports orders whose payment is no longer successful, whose amount or
    currency differs, or which the gateway could not confirm.  Nothing is
    changed automatically; the report is logged for an operator.
    """

    def __init__(self, gateway: IPaymentGateway, order_repository: IOrderRepository):
        self._gateway = gateway
        self._order_repo = order_repository

    def reconcile(self, since: Optional[datetime] = None) -> ReconciliationReport:
        if since is None:
            since = timezone.now() - timedelta(
                hours=settings.RECONCILIATION_WINDOW_HOURS
            )
        report = ReconciliationReport(since=since.isoformat())
        orders = self._order_repo.list(
            {"created_at__gte": since, "payment_reference__isnull": False}
        ).order_by("created_at")

        for order in orders:
            report.checked += 1
            discrepancy = self._check(order)
            if discrepancy is not None:
                logger.warning("payment.reconciliation_discrepancy", **asdict(discrepancy))
                report.discrepancies.append(discrepancy)

        logger.info(
            "payment.reconciliation_finished",
            checked=report.checked,
            discrepancies=len(report.discrepancies),
        )
        return report

    def _check(self, order: Order) -> Optional[Discrepancy]:
        base = {"order_id": str(order.id), "reference": order.payment_reference}
        try:
            txn = self._gateway.verify_transaction(order.payment_reference)
        except GatewayError as exc:
            return Discrepancy(kind="gateway_error", detail=exc.message, **base)
        if not txn.success:
            return Discrepancy(
                kind="payment_not_successful",
                detail=f"Gateway status is '{txn.status}'.",
                **base,
            )
        if txn.amount != order.total or txn.currency != order.currency:
            return Discrepancy(
                kind="amount_mismatch",
                detail=f"Gateway reports {txn.amount} {txn.currency}.",
                expected_amount=order.total,
                actual_amount=txn.amount,
                **base,
            )
        return None
