from __future__ import annotations

from rest_framework import serializers

from retreats.models import Retreat, Room

from .models import PromoCode, normalize_code


class PromoCodeSerializer(serializers.ModelSerializer):
    class Meta:
        model = PromoCode
        fields = [
            "id",
            "code",
            "description",
            "discount_type",
            "discount_value",
            "scope",
            "retreat",
            "room",
            "valid_from",
            "valid_until",
            "max_uses",
            "current_uses",
            "min_order_amount",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["current_uses", "created_at", "updated_at"]

    def validate_code(self, value: str) -> str:
        value = normalize_code(value)
        if len(value) < 3:
            raise serializers.ValidationError("Code must be at least 3 characters.")
        others = PromoCode.objects.filter(code=value)
        if self.instance is not None:
            others = others.exclude(pk=self.instance.pk)
        if others.exists():
            raise serializers.ValidationError("A promo code with this code already exists.")
        return value

    def validate(self, attrs):
        def get(name):
            return attrs.get(name, getattr(self.instance, name, None))

        discount_type, value = get("discount_type"), get("discount_value")
        scope, retreat, room = get("scope") or PromoCode.SCOPE_GLOBAL, get("retreat"), get("room")

        if discount_type == PromoCode.TYPE_PERCENTAGE and value is not None and value > 100:
            raise serializers.ValidationError({"discount_value": "Percentage discount cannot exceed 100%."})
        if scope == PromoCode.SCOPE_RETREAT and retreat is None:
            raise serializers.ValidationError({"retreat": "A retreat is required for retreat-scoped codes."})
        if scope == PromoCode.SCOPE_ROOM:
            if room is None:
                raise serializers.ValidationError({"room": "A room is required for room-scoped codes."})
            if retreat is not None and room.retreat_id != retreat.pk:
                raise serializers.ValidationError({"room": "Room belongs to a different retreat."})
        valid_from, valid_until = get("valid_from"), get("valid_until")
        if valid_from and valid_until and valid_until < valid_from:
            raise serializers.ValidationError({"valid_until": "End date must be on or after the start date."})
        return attrs


class ValidatePromoCodeSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=50)
    retreat = serializers.PrimaryKeyRelatedField(queryset=Retreat.objects.filter(is_published=True))
    room = serializers.PrimaryKeyRelatedField(queryset=Room.objects.all())
    guests_count = serializers.IntegerField(min_value=1, max_value=20, default=1)

    def validate(self, attrs):
        if attrs["room"].retreat_id != attrs["retreat"].pk:
            raise serializers.ValidationError({"room": "Room belongs to a different retreat."})
        return attrs
