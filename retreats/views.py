from __future__ import annotations

import logging

from django.db import transaction
from rest_framework import status, viewsets
from rest_framework.permissions import SAFE_METHODS, AllowAny, IsAdminUser
from rest_framework.request import Request
from rest_framework.response import Response

from .inventory import set_capacity
from .models import Retreat, Room
from .serializers import RetreatSerializer, RoomSerializer

logger = logging.getLogger(__name__)


class AdminWritePublicRead(viewsets.ModelViewSet):
    def get_permissions(self):
        if self.request.method in SAFE_METHODS:
            return [AllowAny()]
        return [IsAdminUser()]


class RetreatViewSet(AdminWritePublicRead):
    serializer_class = RetreatSerializer
    filterset_fields = ["destination", "is_published", "early_bird_enabled"]
    search_fields = ["title", "destination", "slug"]
    ordering_fields = ["start_date", "title", "created_at"]

    def get_queryset(self):
        qs = Retreat.objects.prefetch_related("rooms")
        user = self.request.user
        if not (user and user.is_staff):
            qs = qs.filter(is_published=True)
        return qs


class RoomViewSet(AdminWritePublicRead):
    """
    Rooms of a retreat. A capacity change goes through inventory accounting
    so that booked seats are preserved and freed seats reach the waitlist.
    """

    queryset = Room.objects.select_related("retreat")
    serializer_class = RoomSerializer
    filterset_fields = ["retreat", "is_sold_out"]
    search_fields = ["name", "retreat__title"]
    ordering_fields = ["price", "name", "available"]

    def update(self, request: Request, *args, **kwargs) -> Response:
        partial = kwargs.pop("partial", False)
        room = self.get_object()
        serializer = self.get_serializer(room, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)

        capacity = serializer.validated_data.pop("capacity", None)
        freed = 0
        with transaction.atomic():
            if capacity is not None and capacity != room.capacity:
                room, freed = set_capacity(room.pk, capacity)
            else:
                room = Room.objects.select_for_update().get(pk=room.pk)
            serializer.instance = room
            serializer.save()

        if freed > 0:
            from waitlist.services import promote_for_room  # avoid circular import

            promoted = promote_for_room(room.pk)
            logger.info("Capacity change on room %s offered %s waitlist spot(s)", room.pk, len(promoted))

        room.refresh_from_db()
        return Response(self.get_serializer(room).data, status=status.HTTP_200_OK)
