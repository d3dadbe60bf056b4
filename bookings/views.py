from __future__ import annotations

import logging

from django.conf import settings
from django.http import Http404
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action, api_view, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import AnonRateThrottle

from payments.refunds import refund_booking
from payments.serializers import PaymentSerializer, RefundSerializer
from payments.services import stripe_service

from . import lifecycle
from .models import Booking
from .serializers import (
    AssignRoomSerializer,
    BookingSerializer,
    BookingStatusChangeSerializer,
    CancelBookingSerializer,
    CheckoutSerializer,
    GuestBookingSerializer,
    RestoreBookingSerializer,
)
from .services import create_booking, get_booking_for_guest

logger = logging.getLogger(__name__)


class BookingViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.UpdateModelMixin,
    viewsets.GenericViewSet,
):
    """
    Admin booking management. Bookings are created at checkout and never
    deleted; every state change goes through an action below.
    """

    queryset = Booking.objects.select_related("retreat", "room", "promo_code").prefetch_related("schedule")
    serializer_class = BookingSerializer
    permission_classes = [IsAdminUser]
    filterset_fields = ["status", "payment_status", "retreat", "room", "payment_plan", "language"]
    search_fields = ["booking_number", "email", "first_name", "last_name", "phone"]
    ordering_fields = ["created_at", "check_in_date", "total_amount", "balance_due"]

    def _respond(self, booking: Booking) -> Response:
        booking.refresh_from_db()
        return Response(BookingSerializer(booking).data)

    @action(detail=True, methods=["post"])
    def confirm(self, request: Request, pk: str | None = None) -> Response:
        result = lifecycle.confirm_booking(self.get_object(), by_user=request.user)
        return self._respond(result.booking)

    @action(detail=True, methods=["post"])
    def complete(self, request: Request, pk: str | None = None) -> Response:
        result = lifecycle.complete_booking(self.get_object(), by_user=request.user)
        return self._respond(result.booking)

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        serializer = CancelBookingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = lifecycle.cancel_booking(self.get_object(), by_user=request.user, **serializer.validated_data)
        return self._respond(result.booking)

    @action(detail=True, methods=["post"])
    def restore(self, request: Request, pk: str | None = None) -> Response:
        serializer = RestoreBookingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = lifecycle.restore_booking(self.get_object(), by_user=request.user, **serializer.validated_data)
        return self._respond(result.booking)

    @action(detail=True, methods=["post"], url_path="assign-room")
    def assign_room(self, request: Request, pk: str | None = None) -> Response:
        serializer = AssignRoomSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = lifecycle.assign_room(self.get_object(), serializer.validated_data["room"], by_user=request.user)
        return self._respond(booking)

    @action(detail=True, methods=["post"])
    def refund(self, request: Request, pk: str | None = None) -> Response:
        serializer = RefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payments = refund_booking(self.get_object(), by_user=request.user, **serializer.validated_data)
        return Response(
            {
                "amount": str(serializer.validated_data["amount"]),
                "refunds": PaymentSerializer(payments, many=True).data,
            },
            status=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=["get"])
    def payments(self, request: Request, pk: str | None = None) -> Response:
        booking = self.get_object()
        return Response(PaymentSerializer(booking.payments.order_by("created_at", "id"), many=True).data)

    @action(detail=True, methods=["get"])
    def history(self, request: Request, pk: str | None = None) -> Response:
        booking = self.get_object()
        return Response(BookingStatusChangeSerializer(booking.status_changes.all(), many=True).data)


@api_view(["POST"])
@permission_classes([AllowAny])
@throttle_classes([AnonRateThrottle])
def checkout(request: Request) -> Response:
    """
    POST /api/checkout/

    Creates a pending booking (taking its seats) and the deposit
    PaymentIntent. The booking is confirmed by the payment webhook.
    """
    serializer = CheckoutSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    booking = create_booking(**serializer.validated_data)

    client_secret = stripe_service.start_deposit_payment(booking)

    return Response(
        {
            "booking_number": booking.booking_number,
            "access_token": str(booking.access_token),
            "total_amount": str(booking.total_amount),
            "deposit_amount": str(booking.deposit_amount),
            "discount_source": booking.discount_source or None,
            "discount_amount": str(booking.early_bird_discount + booking.promo_discount),
            "client_secret": client_secret,
            "publishable_key": getattr(settings, "STRIPE_PUBLIC_KEY", ""),
        },
        status=status.HTTP_201_CREATED,
    )


@api_view(["GET"])
@permission_classes([AllowAny])
def my_booking(request: Request) -> Response:
    """GET /api/my-booking/?token=<access_token>"""
    token = request.query_params.get("token", "")
    booking = _guest_booking_or_404(token)
    return Response(GuestBookingSerializer(booking).data)


@api_view(["POST"])
@permission_classes([AllowAny])
@throttle_classes([AnonRateThrottle])
def my_booking_pay(request: Request) -> Response:
    """POST /api/my-booking/pay/ {token}: intent for the next open scheduled payment."""
    booking = _guest_booking_or_404(request.data.get("token", ""))
    if booking.status not in (Booking.STATUS_PENDING, Booking.STATUS_CONFIRMED):
        return Response({"error": "This booking can no longer be paid online."}, status=status.HTTP_400_BAD_REQUEST)
    intent, payment = stripe_service.create_next_payment_intent(booking)
    return Response(
        {
            "client_secret": intent.client_secret,
            "amount": str(payment.amount),
            "publishable_key": getattr(settings, "STRIPE_PUBLIC_KEY", ""),
        }
    )


def _guest_booking_or_404(token: str) -> Booking:
    booking = get_booking_for_guest(token)
    if booking is None:
        raise Http404("Booking not found")
    return booking
