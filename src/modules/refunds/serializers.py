"""Refund DRF serializers."""

from __future__ import annotations

from rest_framework import serializers

from modules.refunds.models import RefundMethod, RefundRecord, RefundStatus


class IssueRefundSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    amount = serializers.IntegerField(min_value=1)
    reason = serializers.CharField(max_length=2000)
    method = serializers.ChoiceField(
        choices=RefundMethod.choices, default=RefundMethod.ORIGINAL_PAYMENT
    )


class RefundStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(
        choices=[RefundStatus.COMPLETED, RefundStatus.FAILED]
    )


class RefundRecordSerializer(serializers.ModelSerializer):
    order_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = RefundRecord
        fields = [
            "id",
            "order_id",
            "payment_reference",
            "amount",
            "reason",
            "refund_method",
            "status",
            "requested_by",
            "processed_by",
            "processed_at",
            "created_at",
        ]
        read_only_fields = fields
