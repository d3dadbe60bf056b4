from __future__ import annotations

from rest_framework import serializers

from .models import Retreat, Room


class RoomSerializer(serializers.ModelSerializer):
    class Meta:
        model = Room
        fields = [
            "id",
            "retreat",
            "name",
            "description",
            "price",
            "capacity",
            "available",
            "is_sold_out",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["available", "is_sold_out", "created_at", "updated_at"]

    def validate_capacity(self, value: int) -> int:
        if value < 0:
            raise serializers.ValidationError("Capacity cannot be negative.")
        return value

    def create(self, validated_data):
        # a new room starts with every seat free
        validated_data["available"] = validated_data.get("capacity", 1)
        validated_data["is_sold_out"] = validated_data["available"] == 0
        return super().create(validated_data)


class RetreatSerializer(serializers.ModelSerializer):
    rooms = RoomSerializer(many=True, read_only=True)
    available_seats = serializers.SerializerMethodField()

    class Meta:
        model = Retreat
        fields = [
            "id",
            "title",
            "slug",
            "destination",
            "start_date",
            "end_date",
            "installment_count",
            "early_bird_enabled",
            "is_published",
            "available_seats",
            "rooms",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["created_at", "updated_at"]

    def get_available_seats(self, obj: Retreat) -> int:
        return sum(room.available for room in obj.rooms.all())

    def validate(self, attrs):
        start = attrs.get("start_date", getattr(self.instance, "start_date", None))
        end = attrs.get("end_date", getattr(self.instance, "end_date", None))
        if start and end and end < start:
            raise serializers.ValidationError({"end_date": "End date must be on or after the start date."})
        return attrs
