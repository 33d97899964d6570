"""Payment verification endpoint.

A verified payment is the only way an order comes into existence.
"""

from __future__ import annotations

from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.core.actors import Actor
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import OrderSerializer
from modules.payments.dtos import VerifyPaymentDTO
from modules.payments.gateway import get_payment_gateway
from modules.payments.repositories.django_repository import (
    PaymentReservationDjangoRepository,
)
from modules.payments.serializers import VerifyPaymentSerializer
from modules.payments.services import PaymentVerificationService


class VerifyPaymentView(APIView):
    """POST /api/v1/payments/verify/

    Returns 201 with the new order, or 200 with the existing order when the
    reference was already verified for this buyer.
    """

    throttle_scope = "payment_verification"

    def post(self, request: Request) -> Response:
        serializer = VerifyPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dto = VerifyPaymentDTO(**serializer.validated_data)

        service = PaymentVerificationService(
            gateway=get_payment_gateway(),
            order_repository=OrderDjangoRepository(),
            reservation_repository=PaymentReservationDjangoRepository(),
        )
        order, created = service.verify_and_create_order(
            reference=dto.reference,
            claimed_total=dto.claimed_total,
            cart_items=dto.items,
            buyer=Actor.from_user(request.user),
            delivery_info=dto.delivery_info,
        )
        return Response(
            OrderSerializer(order).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )
