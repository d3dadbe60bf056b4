from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from notifications import resolver as events
from notifications.contexts import booking_context
from notifications.dispatcher import dispatcher
from payments.models import PaymentScheduleEntry
from payments.schedule import (
    apply_early_bird,
    create_schedule,
    first_payment_amount,
    is_early_bird_eligible,
    round_currency,
)
from promotions import services as promotions
from retreats.inventory import take_seats

from .models import Booking, BookingStatusChange

logger = logging.getLogger(__name__)


def price_booking(retreat, room, guests_count: int, payment_plan: str, today, promo_code=None) -> dict:
    """
    Total, deposit and discount for a new booking. Early bird and a promo
    code do not stack: the larger discount applies, early bird on a tie.
    """
    subtotal = round_currency(Decimal(room.price) * guests_count)
    early_bird = retreat.early_bird_enabled and is_early_bird_eligible(
        today, retreat.start_date, getattr(settings, "EARLY_BIRD_CUTOFF_MONTHS", 3)
    )
    early_bird_discount = Decimal("0.00")
    if early_bird:
        _, early_bird_discount = apply_early_bird(subtotal, getattr(settings, "EARLY_BIRD_DISCOUNT_PERCENT", 10))

    discount = promotions.best_discount(subtotal, early_bird_discount, promo_code)
    total = subtotal - discount.amount

    deposit = first_payment_amount(
        total,
        today,
        retreat.start_date,
        plan=payment_plan,
        deposit_percent=getattr(settings, "BOOKING_DEPOSIT_PERCENT", 10),
        late_deposit_percent=getattr(settings, "BOOKING_LATE_DEPOSIT_PERCENT", 50),
        late_threshold_months=getattr(settings, "BOOKING_LATE_THRESHOLD_MONTHS", 2),
    )
    early_bird_applied = discount.source == promotions.SOURCE_EARLY_BIRD
    return {
        "subtotal": subtotal,
        "total": total,
        "deposit": deposit,
        "discount_source": discount.source or "",
        "is_early_bird": early_bird_applied,
        "early_bird_discount": discount.amount if early_bird_applied else Decimal("0.00"),
        "promo_code": promo_code if discount.promo_applied else None,
        "promo_discount": discount.amount if discount.promo_applied else Decimal("0.00"),
    }


def create_booking(
    retreat,
    room,
    first_name: str,
    last_name: str,
    email: str,
    phone: str = "",
    guests_count: int = 1,
    payment_plan: str = Booking.PLAN_DEPOSIT,
    language: str = "en",
    today=None,
    source: str = "checkout",
    by_user=None,
    promo_code: str = "",
) -> Booking:
    """
    Create a pending booking: price it, take the seats and persist its
    payment schedule. Raises InsufficientInventory when the room is full and
    InvalidPromoCode when a given promo code cannot be used.
    """
    today = today or timezone.localdate()
    if room.retreat_id != retreat.pk:
        raise ValidationError({"room": "Room belongs to a different retreat."})
    if retreat.has_started(today):
        raise ValidationError("Bookings are closed: the retreat has already started.")
    if guests_count < 1:
        raise ValidationError({"guests_count": "At least one guest is required."})
    if payment_plan not in (Booking.PLAN_DEPOSIT, Booking.PLAN_FULL):
        raise ValidationError({"payment_plan": f"Unknown payment plan '{payment_plan}'."})

    promo = None
    if promo_code:
        subtotal = round_currency(Decimal(room.price) * guests_count)
        promo = promotions.validate_promo_code(promo_code, retreat, room, order_amount=subtotal, today=today)

    pricing = price_booking(retreat, room, guests_count, payment_plan, today, promo_code=promo)
    if pricing["total"] <= 0:
        raise ValidationError("Booking total must be greater than zero.")

    lines = create_schedule(
        pricing["total"],
        pricing["deposit"],
        retreat.start_date,
        retreat.installment_count,
        today,
        buffer_days=getattr(settings, "PAYMENT_SCHEDULE_BUFFER_DAYS", 7),
    )

    with transaction.atomic():
        take_seats(room.pk, guests_count)
        booking = Booking.objects.create(
            first_name=first_name,
            last_name=last_name,
            email=email.strip().lower(),
            phone=phone,
            language=language or "en",
            retreat=retreat,
            room=room,
            guests_count=guests_count,
            seats_held=True,
            payment_plan=payment_plan,
            total_amount=pricing["total"],
            deposit_amount=lines[0].amount,
            balance_due=pricing["total"],
            is_early_bird=pricing["is_early_bird"],
            early_bird_discount=pricing["early_bird_discount"],
            discount_source=pricing["discount_source"],
            promo_code=pricing["promo_code"],
            promo_discount=pricing["promo_discount"],
        )
        if pricing["promo_code"] is not None:
            promotions.record_redemption(
                pricing["promo_code"],
                booking,
                original_amount=pricing["subtotal"],
                discount_applied=pricing["promo_discount"],
                final_amount=pricing["total"],
            )
        max_attempts = getattr(settings, "PAYMENT_MAX_ATTEMPTS", 3)
        PaymentScheduleEntry.objects.bulk_create(
            [
                PaymentScheduleEntry(
                    booking=booking,
                    number=line.number,
                    amount=line.amount,
                    due_date=line.due_date,
                    description=line.description,
                    max_attempts=max_attempts,
                )
                for line in lines
            ]
        )
        BookingStatusChange.record(
            booking,
            old_status="",
            old_payment_status="",
            reason=f"Booking created ({source})",
            by_user=by_user,
            metadata={"source": source, "schedule_entries": len(lines)},
        )

    logger.info(
        "Created booking %s for %s guest(s) in room %s (total %s, %s payments)",
        booking.booking_number,
        guests_count,
        room.pk,
        booking.total_amount,
        len(lines),
    )

    ctx = booking_context(booking, schedule=lines)
    ctx["source"] = source
    dispatcher.notify_admin(
        "bookings",
        events.ADMIN_NEW_BOOKING,
        ctx,
        flag="notify_on_new_booking",
        booking=booking,
    )
    return booking


def get_booking_for_guest(access_token) -> Optional[Booking]:
    try:
        token = uuid.UUID(str(access_token))
    except ValueError:
        return None
    return Booking.objects.select_related("retreat", "room").filter(access_token=token).first()
