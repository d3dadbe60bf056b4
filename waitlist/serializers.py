from __future__ import annotations

from rest_framework import serializers

from core.fields import LanguageField
from retreats.models import Retreat, Room

from .models import WaitlistEntry


class WaitlistEntrySerializer(serializers.ModelSerializer):
    retreat_title = serializers.CharField(source="retreat.title", read_only=True)
    room_name = serializers.CharField(source="room.name", read_only=True, default=None)

    class Meta:
        model = WaitlistEntry
        fields = [
            "id",
            "retreat",
            "retreat_title",
            "room",
            "room_name",
            "first_name",
            "last_name",
            "email",
            "phone",
            "guests_count",
            "language",
            "notes",
            "position",
            "status",
            "offered_room",
            "offered_at",
            "offer_expires_at",
            "responded_at",
            "booking",
            "created_at",
        ]
        read_only_fields = fields


class JoinWaitlistSerializer(serializers.Serializer):
    retreat = serializers.PrimaryKeyRelatedField(queryset=Retreat.objects.filter(is_published=True))
    room = serializers.PrimaryKeyRelatedField(queryset=Room.objects.all(), required=False, allow_null=True, default=None)
    first_name = serializers.CharField(max_length=100)
    last_name = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    email = serializers.EmailField()
    phone = serializers.CharField(max_length=40, required=False, allow_blank=True, default="")
    guests_count = serializers.IntegerField(min_value=1, max_value=20, default=1)
    language = LanguageField()
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class WaitlistResponseSerializer(serializers.Serializer):
    ACTION_ACCEPT = "accept"
    ACTION_DECLINE = "decline"

    token = serializers.UUIDField()
    action = serializers.ChoiceField(choices=[ACTION_ACCEPT, ACTION_DECLINE])


class PublicOfferSerializer(serializers.ModelSerializer):
    """Offer details shown on the respond page."""

    retreat_title = serializers.CharField(source="retreat.title", read_only=True)
    start_date = serializers.DateField(source="retreat.start_date", read_only=True)
    room_name = serializers.SerializerMethodField()

    class Meta:
        model = WaitlistEntry
        fields = [
            "first_name",
            "retreat_title",
            "start_date",
            "room_name",
            "guests_count",
            "status",
            "offer_expires_at",
        ]
        read_only_fields = fields

    def get_room_name(self, obj: WaitlistEntry):
        room = obj.offered_room or obj.room
        return room.name if room else None
