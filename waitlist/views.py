from __future__ import annotations

import logging

from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action, api_view, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import AnonRateThrottle


from . import services
from .models import WaitlistEntry
from .serializers import (
    JoinWaitlistSerializer,
    PublicOfferSerializer,
    WaitlistEntrySerializer,
    WaitlistResponseSerializer,
)

logger = logging.getLogger(__name__)


class WaitlistEntryViewSet(
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    POST is the public join form; listing and manual offers are admin-only.
    """

    queryset = WaitlistEntry.objects.select_related("retreat", "room", "offered_room")
    serializer_class = WaitlistEntrySerializer
    filterset_fields = ["retreat", "room", "status", "language"]
    search_fields = ["email", "first_name", "last_name"]
    ordering_fields = ["position", "created_at", "offer_expires_at"]

    def get_permissions(self):
        if self.action == "create":
            return [AllowAny()]
        return [IsAdminUser()]

    def get_throttles(self):
        if self.action == "create":
            return [AnonRateThrottle()]
        return super().get_throttles()

    def create(self, request: Request, *args, **kwargs) -> Response:
        serializer = JoinWaitlistSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entry = services.join_waitlist(**serializer.validated_data)
        return Response(
            {"position": entry.position, "status": entry.status, "email": entry.email},
            status=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=["post"])
    def notify(self, request: Request, pk: str | None = None) -> Response:
        entry = services.admin_offer(self.get_object())
        return Response(WaitlistEntrySerializer(entry).data)


def _entry_for_token(token) -> WaitlistEntry | None:
    return (
        WaitlistEntry.objects.select_related("retreat", "room", "offered_room")
        .filter(response_token=token)
        .first()
    )


@api_view(["GET", "POST"])
@permission_classes([AllowAny])
@throttle_classes([AnonRateThrottle])
def respond(request: Request) -> Response:
    """
    GET  /api/waitlist/respond/?token=..   offer details and status
    POST /api/waitlist/respond/  {token, action: accept|decline}
    """
    if request.method == "GET":
        serializer = WaitlistResponseSerializer(data={"token": request.query_params.get("token"), "action": "accept"})
        serializer.is_valid(raise_exception=True)
        entry = _entry_for_token(serializer.validated_data["token"])
        if entry is None:
            return Response({"error": "Invalid or unknown token"}, status=status.HTTP_404_NOT_FOUND)
        services.ensure_offer_active(entry)
        return Response(PublicOfferSerializer(entry).data)

    serializer = WaitlistResponseSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    entry = _entry_for_token(serializer.validated_data["token"])
    if entry is None:
        return Response({"error": "Invalid or unknown token"}, status=status.HTTP_404_NOT_FOUND)
    services.ensure_offer_active(entry)

    if serializer.validated_data["action"] == WaitlistResponseSerializer.ACTION_DECLINE:
        entry = services.decline_offer(entry)
        return Response({"status": entry.status})

    acceptance = services.accept_offer(entry)
    return Response(
        {
            "status": acceptance.entry.status,
            "booking_number": acceptance.booking.booking_number,
            "access_token": str(acceptance.booking.access_token),
            "deposit_amount": str(acceptance.booking.deposit_amount),
            "client_secret": acceptance.client_secret,
        },
        status=status.HTTP_201_CREATED,
    )
