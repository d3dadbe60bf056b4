from __future__ import annotations

from rest_framework import serializers

from core.fields import LanguageField
from payments.serializers import PaymentScheduleEntrySerializer, PaymentSerializer
from retreats.models import Retreat, Room

from .models import Booking, BookingStatusChange


class BookingStatusChangeSerializer(serializers.ModelSerializer):
    changed_by = serializers.StringRelatedField()

    class Meta:
        model = BookingStatusChange
        fields = [
            "id",
            "action",
            "old_status",
            "new_status",
            "old_payment_status",
            "new_payment_status",
            "reason",
            "changed_by",
            "metadata",
            "created_at",
        ]
        read_only_fields = fields


class BookingSerializer(serializers.ModelSerializer):
    """
    Admin view of a booking. Status, money and room are read-only here; they
    change only through the lifecycle actions.
    """

    retreat_title = serializers.CharField(source="retreat.title", read_only=True)
    room_name = serializers.CharField(source="room.name", read_only=True, default=None)
    promo_code = serializers.CharField(source="promo_code.code", read_only=True, default=None)
    schedule = PaymentScheduleEntrySerializer(many=True, read_only=True)

    class Meta:
        model = Booking
        fields = [
            "id",
            "booking_number",
            "first_name",
            "last_name",
            "email",
            "phone",
            "language",
            "retreat",
            "retreat_title",
            "room",
            "room_name",
            "guests_count",
            "status",
            "payment_status",
            "payment_plan",
            "total_amount",
            "deposit_amount",
            "balance_due",
            "is_early_bird",
            "early_bird_discount",
            "discount_source",
            "promo_code",
            "promo_discount",
            "check_in_date",
            "check_out_date",
            "internal_notes",
            "cancellation_reason",
            "confirmed_at",
            "completed_at",
            "cancelled_at",
            "restored_at",
            "schedule",
            "created_at",
            "updated_at",
        ]
        read_only_fields = [
            "booking_number",
            "retreat",
            "room",
            "guests_count",
            "status",
            "payment_status",
            "payment_plan",
            "total_amount",
            "deposit_amount",
            "balance_due",
            "is_early_bird",
            "early_bird_discount",
            "discount_source",
            "promo_discount",
            "cancellation_reason",
            "confirmed_at",
            "completed_at",
            "cancelled_at",
            "restored_at",
            "created_at",
            "updated_at",
        ]


class GuestBookingSerializer(serializers.ModelSerializer):
    """What the guest sees on the my-booking page."""

    retreat_title = serializers.CharField(source="retreat.title", read_only=True)
    destination = serializers.CharField(source="retreat.destination", read_only=True)
    room_name = serializers.CharField(source="room.name", read_only=True, default=None)
    schedule = PaymentScheduleEntrySerializer(many=True, read_only=True)
    payments = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = [
            "booking_number",
            "first_name",
            "last_name",
            "email",
            "retreat_title",
            "destination",
            "room_name",
            "guests_count",
            "status",
            "payment_status",
            "total_amount",
            "balance_due",
            "early_bird_discount",
            "promo_discount",
            "check_in_date",
            "check_out_date",
            "schedule",
            "payments",
        ]
        read_only_fields = fields

    def get_payments(self, obj: Booking):
        qs = obj.payments.exclude(status="pending").order_by("created_at")
        return [
            {k: v for k, v in row.items() if k in ("amount", "currency", "status", "payment_type", "created_at")}
            for row in PaymentSerializer(qs, many=True).data
        ]


class CheckoutSerializer(serializers.Serializer):
    retreat = serializers.PrimaryKeyRelatedField(queryset=Retreat.objects.filter(is_published=True))
    room = serializers.PrimaryKeyRelatedField(queryset=Room.objects.all())
    first_name = serializers.CharField(max_length=100)
    last_name = serializers.CharField(max_length=100)
    email = serializers.EmailField()
    phone = serializers.CharField(max_length=40, required=False, allow_blank=True, default="")
    guests_count = serializers.IntegerField(min_value=1, max_value=20, default=1)
    payment_plan = serializers.ChoiceField(choices=Booking.PLAN_CHOICES, default=Booking.PLAN_DEPOSIT)
    language = LanguageField()
    promo_code = serializers.CharField(max_length=50, required=False, allow_blank=True, default="")

    def validate(self, attrs):
        if attrs["room"].retreat_id != attrs["retreat"].pk:
            raise serializers.ValidationError({"room": "Room belongs to a different retreat."})
        return attrs


class CancelBookingSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    send_email = serializers.BooleanField(required=False, default=True)


class RestoreBookingSerializer(serializers.Serializer):
    new_due_date = serializers.DateField(required=False, allow_null=True, default=None)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    send_email = serializers.BooleanField(required=False, default=True)


class AssignRoomSerializer(serializers.Serializer):
    room = serializers.PrimaryKeyRelatedField(queryset=Room.objects.all())
