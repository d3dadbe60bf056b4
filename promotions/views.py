from __future__ import annotations

import logging

from django.utils import timezone
from rest_framework import serializers, viewsets
from rest_framework.decorators import action, api_view, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import AnonRateThrottle

from bookings.models import Booking
from bookings.services import price_booking

from . import services
from .models import PromoCode
from .serializers import PromoCodeSerializer, ValidatePromoCodeSerializer

logger = logging.getLogger(__name__)


class PromoCodeViewSet(viewsets.ModelViewSet):
    """Admin management of promo codes. Redeemed codes can be deactivated but not deleted."""

    queryset = PromoCode.objects.select_related("retreat", "room")
    serializer_class = PromoCodeSerializer
    permission_classes = [IsAdminUser]
    filterset_fields = ["is_active", "discount_type", "scope", "retreat", "room"]
    search_fields = ["code", "description"]
    ordering_fields = ["created_at", "code", "valid_from", "valid_until", "current_uses"]

    def perform_destroy(self, instance: PromoCode) -> None:
        if instance.redemptions.exists():
            raise serializers.ValidationError({"code": "This code has been redeemed; deactivate it instead."})
        logger.info("Deleted promo code %s", instance.code)
        instance.delete()

    @action(detail=True, methods=["get"])
    def stats(self, request: Request, pk: str | None = None) -> Response:
        return Response(services.promo_code_stats(self.get_object()))


@api_view(["POST"])
@permission_classes([AllowAny])
@throttle_classes([AnonRateThrottle])
def validate_promo_code(request: Request) -> Response:
    """
    POST /api/promo-codes/validate/ {code, retreat, room, guests_count}

    Checks a code against the order and reports which discount checkout
    would apply. Early bird wins ties.
    """
    serializer = ValidatePromoCodeSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    retreat, room, guests_count = data["retreat"], data["room"], data["guests_count"]
    today = timezone.localdate()

    base = price_booking(retreat, room, guests_count, Booking.PLAN_DEPOSIT, today)
    promo = services.validate_promo_code(data["code"], retreat, room, order_amount=base["subtotal"], today=today)
    pricing = price_booking(retreat, room, guests_count, Booking.PLAN_DEPOSIT, today, promo_code=promo)
    discount = pricing["early_bird_discount"] + pricing["promo_discount"]

    return Response(
        {
            "valid": True,
            "code": promo.code,
            "discount_type": promo.discount_type,
            "discount_value": str(promo.discount_value),
            "discount": {
                "amount": str(discount),
                "source": pricing["discount_source"] or None,
                "promo_discount": str(services.calculate_promo_discount(base["subtotal"], promo)),
                "early_bird_discount": str(base["early_bird_discount"]),
            },
            "subtotal": str(pricing["subtotal"]),
            "final_amount": str(pricing["total"]),
        }
    )
