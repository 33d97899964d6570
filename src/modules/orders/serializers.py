"""Order DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.constants import (
    DISPUTE_DESCRIPTION_MIN_LENGTH,
    WAIT_TIME_MAX_DAYS,
    WAIT_TIME_MIN_DAYS,
    BuyerWaitResponse,
    DisputeResolution,
    DisputeType,
    OrderStatus,
)
from modules.orders.models import Order, OrderItem, TimelineEntry

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class TransitionSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    extra = serializers.DictField(required=False, allow_null=True)


class MarkNotAvailableSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=1000)
    wait_time_days = serializers.IntegerField(
        min_value=WAIT_TIME_MIN_DAYS,
        max_value=WAIT_TIME_MAX_DAYS,
        required=False,
        allow_null=True,
    )


class AvailabilityResponseSerializer(serializers.Serializer):
    response = serializers.ChoiceField(choices=BuyerWaitResponse.choices)


class OpenDisputeSerializer(serializers.Serializer):
    type = serializers.ChoiceField(choices=DisputeType.choices)
    description = serializers.CharField(min_length=DISPUTE_DESCRIPTION_MIN_LENGTH)


class ResolveDisputeSerializer(serializers.Serializer):
    resolution = serializers.ChoiceField(choices=DisputeResolution.choices)
    refund_amount = serializers.IntegerField(
        min_value=1, required=False, allow_null=True
    )
    notes = serializers.CharField(required=False, default="", allow_blank=True)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderItemSerializer(serializers.ModelSerializer):
    subtotal = serializers.IntegerField(read_only=True)

    class Meta:
        model = OrderItem
        fields = ["product_id", "name", "unit_price", "quantity", "subtotal"]
        read_only_fields = fields


class TimelineEntrySerializer(serializers.ModelSerializer):
    class Meta:
        model = TimelineEntry
        fields = [
            "id",
            "sender_id",
            "sender_type",
            "message",
            "old_status",
            "new_status",
            "created_at",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Read serializer for orders with items and denormalized summaries."""

    items = OrderItemSerializer(many=True, read_only=True)
    refunded_amount = serializers.IntegerField(read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "customer_id",
            "seller_id",
            "status",
            "total",
            "currency",
            "payment_reference",
            "commission_rate",
            "delivery_info",
            "fulfillment",
            "availability_status",
            "availability_reason",
            "wait_time_days",
            "wait_time_expires_at",
            "buyer_wait_response",
            "refunds",
            "refunded_amount",
            "dispute",
            "version",
            "created_at",
            "updated_at",
            "items",
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for order list (no nested relations)."""

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "customer_id",
            "seller_id",
            "status",
            "total",
            "currency",
            "created_at",
        ]
        read_only_fields = fields
