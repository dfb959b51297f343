"""Payment DRF serializers for API input/output.

Input serializers validate the HTTP shape; the service layer receives
Pydantic DTOs built from ``validated_data``.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.payments.models import Payment


class InitiatePaymentSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()


class VerifyPaymentSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    gateway_payment_id = serializers.CharField(max_length=255)
    gateway_order_id = serializers.CharField(
        max_length=255, required=False, default="", allow_blank=True
    )
    signature = serializers.CharField(
        max_length=512, required=False, default="", allow_blank=True
    )


class RefundSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, required=False, allow_null=True, default=None
    )
    reason = serializers.CharField(required=False, default="", allow_blank=True)


class PaymentSerializer(serializers.ModelSerializer):
    """Read serializer; never exposes the stored gateway signature."""

    class Meta:
        model = Payment
        fields = [
            "id",
            "amount",
            "currency",
            "method",
            "status",
            "gateway_order_id",
            "gateway_payment_id",
            "failure_reason",
            "paid_at",
            "refund_id",
            "refund_amount",
            "refunded_at",
            "requires_refund",
        ]
        read_only_fields = fields
