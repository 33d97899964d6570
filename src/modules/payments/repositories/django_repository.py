"""Django ORM implementation of the idempotency ledger."""

from __future__ import annotations

from typing import Any, Dict, Optional

import structlog

from modules.payments.models import PaymentReservation
from modules.payments.repositories.interfaces import IPaymentReservationRepository

logger = structlog.get_logger(__name__)


class PaymentReservationDjangoRepository(IPaymentReservationRepository):
    def get_by_reference(self, reference: str) -> Optional[PaymentReservation]:
        return (
            PaymentReservation.objects.select_related("order")
            .filter(reference=reference)
            .first()
        )

    def reserve(self, data: Dict[str, Any]) -> PaymentReservation:
        reservation = PaymentReservation.objects.create(
            reference=data["reference"],
            order_id=data["order_id"],
            customer_id=data["customer_id"],
            amount=data["amount"],
            currency=data["currency"],
            gateway=data.get("gateway", ""),
        )
        logger.info(
            "payment.reference_reserved",
            reference=reservation.reference,
            order_id=str(reservation.order_id),
        )
        return reservation
