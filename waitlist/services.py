"""
Waitlist promotion.

Freed seats are offered to waiting guests in the order they joined. Room
and any-room entries keep their own position sequences, so the two scopes
are merged by join time rather than by position. Promotion for a
retreat is serialized by locking the Retreat row, and every status change on
an entry is a compare-and-swap on its current status, so two workers can
never offer the same seats or the same entry twice.

Declines and expiries feed a FIFO work queue of (retreat, room) scopes
instead of recursing back into promotion.
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Max, Q, Sum
from django.utils import timezone

from bookings.models import Booking
from bookings.services import create_booking
from core.exceptions import InsufficientInventory, InvalidTransition, OfferExpired
from notifications import resolver as events
from notifications.contexts import booking_context, waitlist_context
from notifications.dispatcher import dispatcher
from retreats.models import Retreat, Room

from .models import WaitlistEntry

logger = logging.getLogger(__name__)


@dataclass
class OfferAcceptance:
    entry: WaitlistEntry
    booking: Booking
    client_secret: Optional[str] = None


def _scope_filter(room_id: Optional[int]) -> Q:
    return Q(room_id=room_id) if room_id else Q(room__isnull=True)


def _notify_admin(entry: WaitlistEntry, waitlist_event: str, flag: str, **extra) -> None:
    dispatcher.notify_admin(
        "waitlist",
        events.ADMIN_WAITLIST,
        waitlist_context(entry, waitlist_event=waitlist_event, **extra),
        flag=flag,
        booking=entry.booking,
    )


def join_waitlist(
    retreat: Retreat,
    room: Optional[Room],
    first_name: str,
    email: str,
    last_name: str = "",
    phone: str = "",
    guests_count: int = 1,
    language: str = "en",
    notes: str = "",
) -> WaitlistEntry:
    """Queue a guest at the end of the (retreat, room) scope."""
    email = email.strip().lower()
    if room is not None and room.retreat_id != retreat.pk:
        raise ValidationError({"room": "Room belongs to a different retreat."})
    if retreat.has_started():
        raise ValidationError("The waitlist is closed: the retreat has already started.")

    with transaction.atomic():
        Retreat.objects.select_for_update().get(pk=retreat.pk)
        if WaitlistEntry.objects.filter(
            retreat=retreat, email=email, status__in=WaitlistEntry.OPEN_STATUSES
        ).exists():
            raise ValidationError({"email": "This email is already on the waitlist for this retreat."})

        room_id = room.pk if room is not None else None
        last = (
            WaitlistEntry.objects.filter(_scope_filter(room_id), retreat=retreat)
            .aggregate(last=Max("position"))["last"]
            or 0
        )
        entry = WaitlistEntry.objects.create(
            retreat=retreat,
            room=room,
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=phone,
            guests_count=guests_count,
            language=language or "en",
            notes=notes,
            position=last + 1,
        )

    logger.info("Waitlist entry %s joined %s at position %s", entry.pk, retreat.slug, entry.position)
    dispatcher.send(
        events.WAITLIST_JOINED,
        entry.email,
        waitlist_context(entry),
        language=entry.language,
    )
    _notify_admin(entry, "joined", "notify_on_waitlist_join")
    return entry


def _promised_seats(room_id: int) -> int:
    return int(
        WaitlistEntry.objects.filter(status=WaitlistEntry.STATUS_OFFERED, offered_room_id=room_id)
        .aggregate(total=Sum("guests_count"))["total"]
        or 0
    )


def _offer_hours() -> int:
    return int(getattr(settings, "WAITLIST_OFFER_HOURS", 72))


def _mark_offered(entry_id: int, room_id: Optional[int], now) -> bool:
    return bool(
        WaitlistEntry.objects.filter(pk=entry_id, status=WaitlistEntry.STATUS_WAITING).update(
            status=WaitlistEntry.STATUS_OFFERED,
            offered_room_id=room_id,
            offered_at=now,
            offer_expires_at=now + timedelta(hours=_offer_hours()),
            updated_at=now,
        )
    )


def _promote_room(retreat: Retreat, room: Room, now) -> list[int]:
    room = Room.objects.get(pk=room.pk)
    free = room.available - _promised_seats(room.pk)
    offered: list[int] = []

    while free > 0:
        candidate = (
            WaitlistEntry.objects.filter(
                Q(room_id=room.pk) | Q(room__isnull=True),
                retreat=retreat,
                status=WaitlistEntry.STATUS_WAITING,
                guests_count__lte=free,
            )
            .order_by("created_at", "id")
            .first()
        )
        if candidate is None:
            break
        if _mark_offered(candidate.pk, room.pk, now):
            offered.append(candidate.pk)
            free -= candidate.guests_count
            logger.info(
                "Offered %s seat(s) in room %s to waitlist entry %s",
                candidate.guests_count,
                room.pk,
                candidate.pk,
            )
    return offered


def _send_offer(entry: WaitlistEntry) -> None:
    dispatcher.send(
        events.WAITLIST_SPOT_AVAILABLE,
        entry.email,
        waitlist_context(entry),
        language=entry.language,
    )


def promote(retreat: Retreat, room: Optional[Room] = None, now=None) -> list[WaitlistEntry]:
    """
    Offer free seats in `room` (or every room of the retreat) to waiting
    entries. Seats already held by open offers are not offered again.
    """
    now = now or timezone.now()
    if retreat.has_started(timezone.localdate(now)):
        return []

    with transaction.atomic():
        Retreat.objects.select_for_update().get(pk=retreat.pk)
        rooms = [room] if room is not None else list(retreat.rooms.order_by("id"))
        offered_ids: list[int] = []
        for r in rooms:
            offered_ids.extend(_promote_room(retreat, r, now))

    entries = list(
        WaitlistEntry.objects.filter(pk__in=offered_ids).select_related("retreat", "room").order_by("position")
    )
    for entry in entries:
        _send_offer(entry)
    return entries


def run_promotion_queue(scopes: Iterable[tuple[int, Optional[int]]], now=None) -> list[WaitlistEntry]:
    """
    Drain a FIFO queue of (retreat_id, room_id) scopes; room_id None means
    every room of the retreat. Duplicate scopes are processed once.
    """
    queue = deque(scopes)
    seen: set[tuple[int, Optional[int]]] = set()
    offered: list[WaitlistEntry] = []
    while queue:
        scope = queue.popleft()
        if scope in seen:
            continue
        seen.add(scope)
        retreat_id, room_id = scope
        retreat = Retreat.objects.filter(pk=retreat_id).first()
        if retreat is None:
            continue
        room = Room.objects.filter(pk=room_id, retreat=retreat).first() if room_id else None
        if room_id and room is None:
            continue
        offered.extend(promote(retreat, room, now=now))
    return offered


def promote_for_room(room_id: int, now=None) -> list[WaitlistEntry]:
    """Entry point for inventory increases (cancellation, full refund, capacity edit)."""
    retreat_id = Room.objects.filter(pk=room_id).values_list("retreat_id", flat=True).first()
    if retreat_id is None:
        return []
    return run_promotion_queue([(retreat_id, room_id)], now=now)


def _finalize(entry: WaitlistEntry, status: str, now) -> bool:
    return bool(
        WaitlistEntry.objects.filter(pk=entry.pk, status=WaitlistEntry.STATUS_OFFERED).update(
            status=status,
            responded_at=now if status != WaitlistEntry.STATUS_EXPIRED else None,
            updated_at=now,
        )
    )


def _expire(entry: WaitlistEntry, now) -> bool:
    if not _finalize(entry, WaitlistEntry.STATUS_EXPIRED, now):
        return False
    entry.refresh_from_db()
    logger.info("Waitlist offer %s expired", entry.pk)
    dispatcher.send(
        events.WAITLIST_EXPIRED,
        entry.email,
        waitlist_context(entry),
        language=entry.language,
    )
    return True


def _pick_room(entry: WaitlistEntry) -> Room:
    room = entry.offered_room or entry.room
    if room is not None:
        return room
    room = (
        Room.objects.filter(retreat_id=entry.retreat_id, available__gte=entry.guests_count)
        .order_by("price", "id")
        .first()
    )
    if room is None:
        raise InsufficientInventory(
            "No room currently has space for this waitlist entry",
            retreat_id=entry.retreat_id,
            requested=entry.guests_count,
        )
    return room


def ensure_offer_active(entry: WaitlistEntry, now=None) -> WaitlistEntry:
    """Raise OfferExpired (finalizing the entry and re-promoting) once an offer has lapsed."""
    now = now or timezone.now()
    if entry.offer_is_expired(now):
        if _expire(entry, now):
            run_promotion_queue([(entry.retreat_id, entry.offered_room_id)], now=now)
        raise OfferExpired()
    if entry.status == WaitlistEntry.STATUS_EXPIRED:
        raise OfferExpired()
    return entry


def accept_offer(entry: WaitlistEntry, now=None) -> OfferAcceptance:
    """
    Turn an open offer into a pending booking (deposit plan) and start the
    deposit payment. Expired offers are finalized and rejected.
    """
    now = now or timezone.now()
    entry = WaitlistEntry.objects.select_related("retreat", "room", "offered_room").get(pk=entry.pk)
    ensure_offer_active(entry, now)
    if entry.status != WaitlistEntry.STATUS_OFFERED:
        raise InvalidTransition(
            entry.status,
            WaitlistEntry.STATUS_ACCEPTED,
            message=f"This offer cannot be accepted (status: {entry.status})",
        )

    with transaction.atomic():
        locked = WaitlistEntry.objects.select_for_update().get(pk=entry.pk)
        if locked.status != WaitlistEntry.STATUS_OFFERED:
            raise InvalidTransition(locked.status, WaitlistEntry.STATUS_ACCEPTED)
        booking = create_booking(
            entry.retreat,
            _pick_room(entry),
            first_name=entry.first_name,
            last_name=entry.last_name,
            email=entry.email,
            phone=entry.phone,
            guests_count=entry.guests_count,
            payment_plan=Booking.PLAN_DEPOSIT,
            language=entry.language,
            source="waitlist",
        )
        locked.status = WaitlistEntry.STATUS_ACCEPTED
        locked.responded_at = now
        locked.booking = booking
        locked.save(update_fields=["status", "responded_at", "booking", "updated_at"])
        entry = locked

    logger.info("Waitlist entry %s accepted; booking %s created", entry.pk, booking.booking_number)

    from payments.services import stripe_service  # avoid circular import

    client_secret = stripe_service.start_deposit_payment(booking)

    ctx = booking_context(booking)
    ctx.update(waitlist_context(entry))
    ctx["payment_url"] = ctx["my_booking_url"]
    dispatcher.send(events.WAITLIST_ACCEPTED, entry.email, ctx, language=entry.language, booking=booking)
    _notify_admin(entry, "accepted", "notify_on_waitlist_response", booking_number=booking.booking_number)
    return OfferAcceptance(entry=entry, booking=booking, client_secret=client_secret)


def decline_offer(entry: WaitlistEntry, now=None) -> WaitlistEntry:
    """Finalize an offer as declined and pass the seats to the next guest."""
    now = now or timezone.now()
    entry = WaitlistEntry.objects.select_related("retreat", "room").get(pk=entry.pk)
    if not _finalize(entry, WaitlistEntry.STATUS_DECLINED, now):
        raise InvalidTransition(
            entry.status,
            WaitlistEntry.STATUS_DECLINED,
            message=f"This offer cannot be declined (status: {entry.status})",
        )
    entry.refresh_from_db()
    logger.info("Waitlist offer %s declined", entry.pk)

    dispatcher.send(events.WAITLIST_DECLINED, entry.email, waitlist_context(entry), language=entry.language)
    _notify_admin(entry, "declined", "notify_on_waitlist_response")
    run_promotion_queue([(entry.retreat_id, entry.offered_room_id)], now=now)
    return entry


def expire_offers(now=None) -> int:
    """Sweep: expire overdue offers and re-run promotion for their scopes."""
    now = now or timezone.now()
    overdue = list(
        WaitlistEntry.objects.filter(status=WaitlistEntry.STATUS_OFFERED, offer_expires_at__lt=now)
        .select_related("retreat", "room")
        .order_by("offer_expires_at")
    )
    scopes = []
    expired = 0
    for entry in overdue:
        if _expire(entry, now):
            expired += 1
            scopes.append((entry.retreat_id, entry.offered_room_id))
    if scopes:
        run_promotion_queue(scopes, now=now)
    if expired:
        logger.info("Expired %s waitlist offer(s)", expired)
    return expired


def _room_with_free_seats(entry: WaitlistEntry) -> Optional[Room]:
    """Cheapest eligible room whose unpromised seats cover the entry's party."""
    rooms = Room.objects.filter(retreat_id=entry.retreat_id)
    if entry.room_id:
        rooms = rooms.filter(pk=entry.room_id)
    for room in rooms.filter(available__gte=entry.guests_count).order_by("price", "id"):
        if room.available - _promised_seats(room.pk) >= entry.guests_count:
            return room
    return None


def admin_offer(entry: WaitlistEntry, now=None) -> WaitlistEntry:
    """
    Manually offer a spot to a specific waiting entry, regardless of queue
    order. The offer still needs free seats that no other open offer holds;
    any-room entries are offered the cheapest room that has them.
    """
    now = now or timezone.now()
    entry = WaitlistEntry.objects.select_related("retreat", "room").get(pk=entry.pk)
    if entry.retreat.has_started(timezone.localdate(now)):
        raise InvalidTransition(
            entry.status,
            WaitlistEntry.STATUS_OFFERED,
            message="Cannot offer a spot for a retreat that has already started",
        )
    not_waiting = InvalidTransition(
        entry.status,
        WaitlistEntry.STATUS_OFFERED,
        message=f"Only waiting entries can be offered a spot (status: {entry.status})",
    )
    if entry.status != WaitlistEntry.STATUS_WAITING:
        raise not_waiting

    with transaction.atomic():
        Retreat.objects.select_for_update().get(pk=entry.retreat_id)
        room = _room_with_free_seats(entry)
        if room is None:
            raise InsufficientInventory(
                "No room has enough unpromised seats for this waitlist entry",
                retreat_id=entry.retreat_id,
                requested=entry.guests_count,
            )
        if not _mark_offered(entry.pk, room.pk, now):
            raise not_waiting
    entry.refresh_from_db()
    logger.info("Admin offered a spot to waitlist entry %s", entry.pk)
    _send_offer(entry)
    return entry
