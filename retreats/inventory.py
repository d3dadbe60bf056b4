"""
Room inventory accounting.

Every mutation of Room.available goes through this module. Decrements are
single conditional UPDATEs (`available >= count` in the WHERE clause), so two
concurrent bookings can never both take the last seats; capacity edits lock
the row. Callers that free seats are responsible for asking the waitlist to
promote afterwards (see waitlist.services.promote_for_room).
"""
from __future__ import annotations

import logging

from django.db import transaction
from django.db.models import BooleanField, Case, F, Sum, Value, When
from django.db.models.functions import Least
from django.utils import timezone

from core.exceptions import InsufficientInventory

from .models import Room

logger = logging.getLogger(__name__)


def take_seats(room_id: int, count: int) -> None:
    """Atomically take `count` seats from a room or raise InsufficientInventory."""
    if count <= 0:
        raise ValueError("Seat count must be positive")

    updated = Room.objects.filter(pk=room_id, available__gte=count).update(
        available=F("available") - count,
        is_sold_out=Case(
            When(available=count, then=Value(True)),
            default=F("is_sold_out"),
            output_field=BooleanField(),
        ),
        updated_at=timezone.now(),
    )
    if not updated:
        available = Room.objects.filter(pk=room_id).values_list("available", flat=True).first()
        logger.warning("Room %s cannot take %s seats (available=%s)", room_id, count, available)
        raise InsufficientInventory(
            f"Room has {available if available is not None else 0} spots available, but {count} needed",
            room_id=room_id,
            requested=count,
        )
    logger.info("Room %s: took %s seats", room_id, count)


def release_seats(room_id: int, count: int) -> None:
    """Return seats to a room, never exceeding capacity; clears the sold-out flag."""
    if count <= 0:
        raise ValueError("Seat count must be positive")

    Room.objects.filter(pk=room_id).update(
        available=Least(F("available") + count, F("capacity")),
        is_sold_out=False,
        updated_at=timezone.now(),
    )
    logger.info("Room %s: released %s seats", room_id, count)


@transaction.atomic
def set_capacity(room_id: int, capacity: int) -> tuple[Room, int]:
    """
    Change a room's capacity while keeping its occupied seats.

    Returns (room, freed) where `freed` is the increase in available seats
    (negative when capacity shrank).
    """
    room = Room.objects.select_for_update().get(pk=room_id)
    occupied = room.occupied
    if capacity < occupied:
        raise InsufficientInventory(
            f"Capacity {capacity} is below the {occupied} seats already booked",
            room_id=room_id,
            requested=capacity,
        )

    new_available = capacity - occupied
    freed = new_available - room.available
    room.capacity = capacity
    room.available = new_available
    room.is_sold_out = new_available == 0
    room.save(update_fields=["capacity", "available", "is_sold_out", "updated_at"])
    logger.info("Room %s capacity set to %s (available %s, freed %s)", room_id, capacity, new_available, freed)
    return room, freed


def available_seats(retreat_id: int, room_id: int | None = None) -> int:
    """Free seats in one room, or across all rooms of a retreat when room_id is None."""
    qs = Room.objects.filter(retreat_id=retreat_id)
    if room_id is not None:
        qs = qs.filter(pk=room_id)
    return int(qs.aggregate(total=Sum("available"))["total"] or 0)
