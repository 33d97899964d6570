"""Refund ledger API views."""

from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import ViewSet

from modules.core.actors import Actor
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.refunds.dtos import IssueRefundDTO, RefundStatusDTO
from modules.refunds.repositories.django_repository import RefundDjangoRepository
from modules.refunds.serializers import (
    IssueRefundSerializer,
    RefundRecordSerializer,
    RefundStatusSerializer,
)
from modules.refunds.services import RefundService
from shared.domain.exceptions import ValidationError


class RefundViewSet(ViewSet):
    """Refunds are created and settled only through ``RefundService``."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = RefundService(
            OrderDjangoRepository(), RefundDjangoRepository()
        )

    def list(self, request: Request) -> Response:
        """GET /api/v1/refunds/?order=<uuid>"""
        order_id = request.query_params.get("order")
        if not order_id:
            raise ValidationError("The 'order' query parameter is required.", attr="order")
        refunds = self._service.list_refunds(order_id, Actor.from_user(request.user))
        return Response(RefundRecordSerializer(refunds, many=True).data)

    def create(self, request: Request) -> Response:
        """POST /api/v1/refunds/"""
        serializer = IssueRefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dto = IssueRefundDTO(**serializer.validated_data)

        refund = self._service.issue_refund(
            dto.order_id,
            Actor.from_user(request.user),
            amount=dto.amount,
            reason=dto.reason,
            method=dto.method.value,
        )
        return Response(
            RefundRecordSerializer(refund).data, status=status.HTTP_201_CREATED
        )

    @action(detail=True, methods=["post"], url_path="status")
    def settle(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/refunds/{pk}/status/ (settlement callback, admin only)."""
        serializer = RefundStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dto = RefundStatusDTO(**serializer.validated_data)

        refund = self._service.update_refund_status(
            pk, Actor.from_user(request.user), dto.status.value
        )
        return Response(RefundRecordSerializer(refund).data)
