from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from .models import Payment, PaymentScheduleEntry


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = [
            "id",
            "booking",
            "schedule_entry",
            "amount",
            "currency",
            "status",
            "payment_type",
            "scheduled_due_date",
            "stripe_payment_intent_id",
            "stripe_refund_id",
            "failure_reason",
            "created_at",
        ]
        read_only_fields = fields


class PaymentScheduleEntrySerializer(serializers.ModelSerializer):
    class Meta:
        model = PaymentScheduleEntry
        fields = [
            "id",
            "number",
            "amount",
            "due_date",
            "description",
            "status",
            "attempts",
            "max_attempts",
            "paid_at",
            "failed_at",
            "payment_deadline",
            "failure_reason",
        ]
        read_only_fields = fields


class CancelScheduleEntrySerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class RefundSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0.01"))
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    issue_stripe_refund = serializers.BooleanField(required=False, default=True)
    send_email = serializers.BooleanField(required=False, default=True)
