"""Django ORM implementation of the refund ledger repository."""

from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db.models import QuerySet, Sum

from modules.refunds.models import RefundRecord, RefundStatus
from modules.refunds.repositories.interfaces import IRefundRepository

logger = structlog.get_logger(__name__)


class RefundDjangoRepository(IRefundRepository):
    def create(self, data: Dict[str, Any]) -> RefundRecord:
        refund = RefundRecord.objects.create(
            order_id=data["order_id"],
            payment_reference=data["payment_reference"],
            amount=data["amount"],
            reason=data["reason"],
            refund_method=data["refund_method"],
            requested_by=data["requested_by"],
        )
        logger.info(
            "refund.recorded",
            refund_id=str(refund.id),
            order_id=str(refund.order_id),
            amount=refund.amount,
        )
        return refund

    def get_by_id(self, id: str) -> Optional[RefundRecord]:
        try:
            return RefundRecord.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: str) -> Optional[RefundRecord]:
        try:
            return RefundRecord.objects.select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        queryset = RefundRecord.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def save(self, entity: RefundRecord) -> RefundRecord:
        entity.save()
        return entity

    def committed_amount(self, order_id: UUID) -> int:
        total = (
            RefundRecord.objects.filter(order_id=order_id)
            .exclude(status=RefundStatus.FAILED)
            .aggregate(total=Sum("amount"))["total"]
        )
        return total or 0
