"""Payment verification serializers (Interface layer)."""

from __future__ import annotations

from rest_framework import serializers


class CartItemSerializer(serializers.Serializer):
    product_id = serializers.CharField(max_length=64)
    seller_id = serializers.CharField(max_length=128)
    name = serializers.CharField(max_length=255)
    unit_price = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1)


class VerifyPaymentSerializer(serializers.Serializer):
    reference = serializers.CharField(max_length=128)
    claimed_total = serializers.IntegerField(min_value=1)
    items = CartItemSerializer(many=True, allow_empty=False)
    delivery_info = serializers.DictField(required=False, default=dict)
