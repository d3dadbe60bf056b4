"""
Booking lifecycle operations.

Each operation validates against Booking.VALID_STATUS_TRANSITIONS, applies
its financial and inventory side effects inside one transaction, and only
then sends notifications and runs waitlist promotion. Emails never roll back
a committed change.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from core.exceptions import InvalidTransition
from notifications import resolver as events
from notifications.contexts import booking_context, format_date
from notifications.dispatcher import dispatcher
from payments.models import PaymentScheduleEntry
from payments.refunds import release_booking_seats
from promotions.services import release_redemption
from retreats.inventory import release_seats, take_seats

from .models import Booking, BookingStatusChange

logger = logging.getLogger(__name__)

AUTO_CANCEL_REASON = "Payment deadline exceeded - auto-cancelled"


@dataclass
class TransitionResult:
    booking: Booking
    changed: bool
    previous_status: str


def _lock(booking: Booking) -> Booking:
    return Booking.objects.select_for_update().select_related("retreat", "room").get(pk=booking.pk)


def _promote(room_id: Optional[int]) -> None:
    if room_id is None:
        return
    from waitlist.services import promote_for_room  # avoid circular import

    promote_for_room(room_id)


def confirm_booking(booking: Booking, by_user=None) -> TransitionResult:
    """pending -> confirmed once at least the deposit is in."""
    with transaction.atomic():
        booking = _lock(booking)
        previous = booking.status
        if booking.status == Booking.STATUS_CONFIRMED:
            return TransitionResult(booking, False, previous)
        if booking.payment_status == Booking.PAYMENT_UNPAID:
            raise InvalidTransition(
                previous,
                Booking.STATUS_CONFIRMED,
                message="Cannot confirm a booking before the deposit is paid",
            )
        changed = booking.transition_to(Booking.STATUS_CONFIRMED, by_user=by_user)

        send_confirmation = booking.confirmation_sent_at is None
        if send_confirmation:
            booking.confirmation_sent_at = timezone.now()
            booking.save(update_fields=["confirmation_sent_at", "updated_at"])

    if send_confirmation:
        schedule = list(booking.schedule.order_by("number"))
        dispatcher.send(
            events.BOOKING_CONFIRMATION,
            booking.email,
            booking_context(booking, schedule=schedule),
            language=booking.language,
            booking=booking,
        )
    return TransitionResult(booking, changed, previous)


def complete_booking(booking: Booking, now=None, by_user=None) -> TransitionResult:
    """confirmed -> completed after the retreat has ended. No money moves."""
    today = timezone.localdate(now) if now else timezone.localdate()
    with transaction.atomic():
        booking = _lock(booking)
        previous = booking.status
        if booking.status != Booking.STATUS_COMPLETED and not booking.retreat.has_ended(today):
            raise InvalidTransition(
                previous,
                Booking.STATUS_COMPLETED,
                message="Cannot complete a booking before the retreat has ended",
            )
        changed = booking.transition_to(Booking.STATUS_COMPLETED, by_user=by_user)
    return TransitionResult(booking, changed, previous)


def cancel_booking(booking: Booking, reason: str = "", send_email: bool = True, by_user=None) -> TransitionResult:
    """
    Cancel a pending or confirmed booking: stop its open scheduled payments
    and give back its seats and any promo code use. Never refunds; see
    payments.refunds.refund_booking.
    """
    with transaction.atomic():
        booking = _lock(booking)
        previous = booking.status
        changed = booking.transition_to(Booking.STATUS_CANCELLED, by_user=by_user, reason=reason)
        if not changed:
            return TransitionResult(booking, False, previous)

        stopped = PaymentScheduleEntry.objects.filter(booking=booking).cancel_open(
            reason=f"Booking cancelled: {reason}" if reason else "Booking cancelled"
        )
        room_id = booking.room_id
        seats_released = release_booking_seats(booking)
        release_redemption(booking)

    logger.info(
        "Cancelled booking %s (%s scheduled payments stopped, seats released=%s)",
        booking.booking_number,
        stopped,
        seats_released,
    )

    if seats_released:
        _promote(room_id)

    if send_email:
        ctx = booking_context(booking)
        ctx["reason"] = reason
        dispatcher.send(
            events.BOOKING_CANCELLED,
            booking.email,
            ctx,
            language=booking.language,
            booking=booking,
        )
    return TransitionResult(booking, True, previous)


def restore_booking(
    booking: Booking,
    new_due_date: Optional[date] = None,
    notes: str = "",
    send_email: bool = True,
    by_user=None,
    now=None,
) -> TransitionResult:
    """
    Bring a cancelled booking back to pending before the retreat starts.
    Re-takes its seats and reopens failed/cancelled scheduled payments.
    """
    now = now or timezone.now()
    grace_days = getattr(settings, "PAYMENT_GRACE_DAYS", 14)

    with transaction.atomic():
        booking = _lock(booking)
        previous = booking.status
        if booking.status != Booking.STATUS_CANCELLED:
            raise InvalidTransition(
                previous,
                Booking.STATUS_PENDING,
                message="Only cancelled bookings can be restored",
            )
        if booking.retreat.has_started(timezone.localdate(now)):
            raise InvalidTransition(
                previous,
                Booking.STATUS_PENDING,
                message="Cannot restore a booking after the retreat has started",
            )

        if booking.room_id and not booking.seats_held:
            take_seats(booking.room_id, booking.guests_count)
            booking.seats_held = True
            booking.save(update_fields=["seats_held", "updated_at"])

        due_date = new_due_date or (timezone.localdate(now) + timedelta(days=grace_days))
        deadline = timezone.make_aware(datetime.combine(due_date, time(23, 59, 59)))
        reopened = PaymentScheduleEntry.objects.filter(booking=booking).reset_for_restore(due_date, deadline)

        note = f"[{now:%Y-%m-%d %H:%M}] Restored by admin: {notes or 'No notes'}"
        booking.internal_notes = f"{booking.internal_notes}\n\n{note}" if booking.internal_notes else note
        booking.save(update_fields=["internal_notes", "updated_at"])
        booking.transition_to(
            Booking.STATUS_PENDING,
            by_user=by_user,
            action=BookingStatusChange.ACTION_RESTORE,
            reason=notes,
            metadata={"new_due_date": due_date.isoformat(), "reopened_payments": reopened},
        )

    logger.info("Restored booking %s (%s scheduled payments reopened)", booking.booking_number, reopened)

    if send_email:
        ctx = booking_context(booking, schedule=list(booking.schedule.order_by("number")))
        ctx.update(new_due_date=format_date(due_date), notes=notes)
        dispatcher.send(
            events.BOOKING_RESTORED,
            booking.email,
            ctx,
            language=booking.language,
            booking=booking,
        )
    return TransitionResult(booking, True, previous)


def assign_room(booking: Booking, room, by_user=None) -> Booking:
    """
    Move a booking to another room of the same retreat. Seats in the new room
    are taken before the old room's seats are released.
    """
    with transaction.atomic():
        booking = _lock(booking)
        if booking.status == Booking.STATUS_CANCELLED:
            raise InvalidTransition(booking.status, booking.status, message="Cannot change the room of a cancelled booking")
        if room.retreat_id != booking.retreat_id:
            raise ValidationError({"room": "Room belongs to a different retreat."})
        if booking.room_id == room.pk:
            return booking

        old_room_id = booking.room_id
        was_held = booking.seats_held
        take_seats(room.pk, booking.guests_count)
        if was_held and old_room_id:
            release_seats(old_room_id, booking.guests_count)

        booking.room = room
        booking.seats_held = True
        booking.save(update_fields=["room", "seats_held", "updated_at"])
        BookingStatusChange.record(
            booking,
            action=BookingStatusChange.ACTION_ROOM_CHANGE,
            by_user=by_user,
            metadata={"old_room": old_room_id, "new_room": room.pk},
        )

    logger.info("Booking %s moved from room %s to room %s", booking.booking_number, old_room_id, room.pk)
    if was_held and old_room_id:
        _promote(old_room_id)
    return booking
