from __future__ import annotations

from rest_framework import serializers
from rest_framework.exceptions import NotFound

from bookings.models import Booking
from bookings.services import get_booking_for_guest

from .models import RetreatFeedback


class RetreatFeedbackSerializer(serializers.ModelSerializer):
    guest_name = serializers.CharField(source="booking.full_name", read_only=True)
    retreat_destination = serializers.CharField(source="retreat.destination", read_only=True)

    class Meta:
        model = RetreatFeedback
        fields = [
            "id",
            "booking",
            "guest_name",
            "retreat",
            "retreat_destination",
            "email",
            "overall_rating",
            "surfing_rating",
            "accommodation_rating",
            "food_rating",
            "staff_rating",
            "recommend_score",
            "highlights",
            "improvements",
            "testimonial",
            "allow_testimonial_use",
            "created_at",
        ]
        read_only_fields = fields


class SubmitFeedbackSerializer(serializers.ModelSerializer):
    token = serializers.UUIDField(write_only=True, help_text="The booking's my-booking access token")

    class Meta:
        model = RetreatFeedback
        fields = [
            "token",
            "overall_rating",
            "surfing_rating",
            "accommodation_rating",
            "food_rating",
            "staff_rating",
            "recommend_score",
            "highlights",
            "improvements",
            "testimonial",
            "allow_testimonial_use",
        ]

    def validate_token(self, value):
        booking = get_booking_for_guest(value)
        if booking is None:
            raise NotFound("Booking not found")
        if booking.status == Booking.STATUS_CANCELLED:
            raise serializers.ValidationError("Feedback is not accepted for cancelled bookings.")
        if RetreatFeedback.objects.filter(booking=booking).exists():
            raise serializers.ValidationError("Feedback already submitted")
        self.context["booking"] = booking
        return value

    def create(self, validated_data):
        validated_data.pop("token")
        booking = self.context["booking"]
        return RetreatFeedback.objects.create(
            booking=booking,
            retreat_id=booking.retreat_id,
            email=booking.email,
            **validated_data,
        )
