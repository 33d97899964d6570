"""Order API views.

Exposes the order services via HTTP using a DRF ViewSet.  Domain errors
propagate to ``modules.core.exceptions.api_exception_handler``, which maps
them to their HTTP status; the view never swallows exceptions.
"""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.core.actors import Actor
from modules.core.pagination import StandardResultsSetPagination
from modules.orders.availability import AvailabilityService
from modules.orders.disputes import DisputeService
from modules.orders.dtos import (
    AvailabilityResponseDTO,
    MarkNotAvailableDTO,
    OpenDisputeDTO,
    ResolveDisputeDTO,
    TransitionDTO,
)
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import (
    AvailabilityResponseSerializer,
    MarkNotAvailableSerializer,
    OpenDisputeSerializer,
    OrderListSerializer,
    OrderSerializer,
    ResolveDisputeSerializer,
    TimelineEntrySerializer,
    TransitionSerializer,
)
from modules.orders.services import OrderService
from modules.refunds.repositories.django_repository import RefundDjangoRepository


class OrderViewSet(GenericViewSet):
    """ViewSet for Order operations.

    Does **not** extend ``ModelViewSet``: orders are created only by
    payment verification and every write goes through the service layer.
    """

    queryset = Order.objects.none()
    filterset_class = OrderFilter
    search_fields = ["order_number", "payment_reference"]
    ordering_fields = ["created_at", "total", "status"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        order_repository = OrderDjangoRepository()
        refund_repository = RefundDjangoRepository()
        self._service = OrderService(order_repository, refund_repository)
        self._availability = AvailabilityService(order_repository, refund_repository)
        self._disputes = DisputeService(order_repository, refund_repository)

    def get_throttles(self) -> list[BaseThrottle]:
        self.throttle_scope = (
            "order_listing" if self.action in {"list", "retrieve"} else None
        )
        return super().get_throttles()

    @property
    def actor(self) -> Actor:
        return Actor.from_user(self.request.user)

    def get_queryset(self):
        return self._service.list_orders(self.actor)

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/

        Admins see every order; buyers and sellers see their own.
        """
        queryset = self.filter_queryset(self.get_queryset())

        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(queryset, request)
        serializer = OrderListSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        order = self._service.get_order(pk, self.actor)
        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def transition(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/transition/"""
        serializer = TransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dto = TransitionDTO(**serializer.validated_data)

        order = self._service.transition(
            pk, dto.status.value, self.actor, extra=dto.extra
        )
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["post"])
    def availability(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/availability/ (seller reports unavailability)."""
        serializer = MarkNotAvailableSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dto = MarkNotAvailableDTO(**serializer.validated_data)

        order = self._availability.mark_not_available(
            pk, self.actor, reason=dto.reason, wait_time_days=dto.wait_time_days
        )
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["post"], url_path="availability-response")
    def availability_response(
        self, request: Request, pk: str | None = None
    ) -> Response:
        """POST /api/v1/orders/{pk}/availability-response/ (buyer accepts or cancels)."""
        serializer = AvailabilityResponseSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dto = AvailabilityResponseDTO(**serializer.validated_data)

        order = self._availability.respond_to_availability(
            pk, self.actor, dto.response.value
        )
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["post"])
    def dispute(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/dispute/"""
        serializer = OpenDisputeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dto = OpenDisputeDTO(**serializer.validated_data)

        order = self._disputes.open_dispute(
            pk, self.actor, dto.type.value, dto.description
        )
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["post"], url_path="dispute-resolution")
    def dispute_resolution(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/dispute-resolution/ (admin only)."""
        serializer = ResolveDisputeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dto = ResolveDisputeDTO(**serializer.validated_data)

        order = self._disputes.resolve_dispute(
            pk,
            self.actor,
            dto.resolution.value,
            refund_amount=dto.refund_amount,
            notes=dto.notes,
        )
        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Timeline
    # ------------------------------------------------------------------

    @action(detail=True, methods=["get"])
    def timeline(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/timeline/"""
        entries = self._service.get_timeline(pk, self.actor)
        return Response(TimelineEntrySerializer(entries, many=True).data)
