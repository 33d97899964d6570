"""Periodic payment reconciliation (Celery beat)."""

from __future__ import annotations

from typing import Any, Dict

import structlog
from celery import shared_task

from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.payments.gateway import get_payment_gateway
from modules.payments.services import PaymentReconciliationService

logger = structlog.get_logger(__name__)


@shared_task(name="payments.reconcile_payments")
def reconcile_payments() -> Dict[str, Any]:
    service = PaymentReconciliationService(
        gateway=get_payment_gateway(),
        order_repository=OrderDjangoRepository(),
    )
    report = service.reconcile()
    logger.info(
        "task.reconcile_payments.done",
        checked=report.checked,
        discrepancies=len(report.discrepancies),
    )
    return report.as_dict()
