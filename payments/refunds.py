"""
Refund accounting and booking money totals.

The Payment ledger is the source of truth: balance_due and payment_status on
the booking are always recomputed from it, never adjusted incrementally.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Iterable

from django.db import transaction
from django.utils import timezone

from bookings.models import Booking, BookingStatusChange
from core.exceptions import InvalidRefundAmount, InvalidTransition
from notifications import resolver as events
from notifications.contexts import booking_context, format_amount
from notifications.dispatcher import dispatcher
from retreats.inventory import release_seats

from . import gateway
from .models import Payment, PaymentScheduleEntry, refunded_total, succeeded_total
from .schedule import round_currency

logger = logging.getLogger(__name__)


def compute_refundable(payments: Iterable[Payment]) -> Decimal:
    payments = list(payments)
    return round_currency(succeeded_total(payments) - refunded_total(payments))


def recalculate_booking_totals(booking: Booking, save: bool = True) -> Booking:
    """
    balance_due = total - paid + refunded; payment_status follows from the
    same sums.
    """
    payments = list(Payment.objects.filter(booking=booking))
    paid = succeeded_total(payments)
    refunded = refunded_total(payments)
    refundable = paid - refunded

    booking.balance_due = round_currency(booking.total_amount - paid + refunded)
    if refunded > 0 and refundable <= 0:
        booking.payment_status = Booking.PAYMENT_REFUNDED
    elif refunded > 0:
        booking.payment_status = Booking.PAYMENT_PARTIAL_REFUND
    elif paid >= booking.total_amount and paid > 0:
        booking.payment_status = Booking.PAYMENT_PAID
    elif paid > 0:
        booking.payment_status = Booking.PAYMENT_DEPOSIT
    else:
        booking.payment_status = Booking.PAYMENT_UNPAID

    if save:
        booking.save(update_fields=["balance_due", "payment_status", "updated_at"])
    return booking


def release_booking_seats(booking: Booking) -> bool:
    """Give the booking's seats back to its room once. Returns True if seats were released."""
    released = Booking.objects.filter(pk=booking.pk, seats_held=True).update(seats_held=False)
    if not released:
        return False
    booking.seats_held = False
    if booking.room_id:
        release_seats(booking.room_id, booking.guests_count)
    return True


def refundable_by_intent(payments: Iterable[Payment]) -> list[tuple[str, Decimal]]:
    """
    (payment intent id, still refundable) for each charge, newest first.
    Payments recorded without an intent are grouped under "" and come last.
    """
    paid: dict[str, Decimal] = {}
    latest: dict[str, tuple] = {}
    refunded: dict[str, Decimal] = defaultdict(Decimal)
    for p in payments:
        intent_id = p.stripe_payment_intent_id or ""
        if p.is_refund:
            refunded[intent_id] += abs(p.amount)
        elif p.status == Payment.STATUS_SUCCEEDED:
            paid[intent_id] = paid.get(intent_id, Decimal("0.00")) + p.amount
            latest[intent_id] = max(latest.get(intent_id, (p.created_at, p.pk)), (p.created_at, p.pk))

    order = sorted(paid, key=lambda i: (i != "", latest[i]), reverse=True)
    rows = []
    for intent_id in order:
        left = round_currency(paid[intent_id] - refunded[intent_id])
        if left > 0:
            rows.append((intent_id, left))
    return rows


def allocate_refund(amount: Decimal, available: list[tuple[str, Decimal]]) -> list[tuple[str, Decimal]]:
    """Spread `amount` over charges newest first; whatever no charge covers goes under ""."""
    parts = []
    remaining = amount
    for intent_id, left in available:
        if remaining <= 0:
            break
        portion = min(left, remaining)
        parts.append((intent_id, portion))
        remaining -= portion
    if remaining > 0:
        parts.append(("", remaining))
    return parts


def refund_booking(
    booking: Booking,
    amount,
    reason: str = "",
    by_user=None,
    issue_stripe_refund: bool = True,
    send_email: bool = True,
) -> list[Payment]:
    """
    Refund part or all of what the guest has paid.

    The amount is spread over the booking's charges newest first, with one
    Stripe refund and one negative refund row per charge. A full refund also
    returns the booking's seats to the room and promotes the waitlist.
    Cancellation is separate.
    """
    amount = round_currency(amount)

    with transaction.atomic():
        booking = Booking.objects.select_for_update().get(pk=booking.pk)
        ledger = list(Payment.objects.filter(booking=booking))
        refundable = compute_refundable(ledger)
        if amount <= 0 or amount > refundable:
            raise InvalidRefundAmount(
                f"Refund amount must be greater than 0 and at most {refundable}",
                requested=amount,
                refundable=refundable,
            )

        old_payment_status = booking.payment_status
        created_by = by_user if getattr(by_user, "is_authenticated", False) else None
        payments: list[Payment] = []
        # A Stripe error rolls back every row; retrying reuses the same
        # idempotency keys, so refunds Stripe already made are not repeated.
        for intent_id, portion in allocate_refund(amount, refundable_by_intent(ledger)):
            stripe_refund_id = ""
            if issue_stripe_refund and intent_id:
                refund = gateway.create_refund(
                    intent_id,
                    portion,
                    metadata={"booking_number": booking.booking_number, "reason": reason[:400]},
                    idempotency_key=f"refund-{booking.pk}-{intent_id}-{refundable}-{portion}",
                )
                stripe_refund_id = refund.id
            payments.append(
                Payment.objects.create(
                    booking=booking,
                    amount=-portion,
                    currency=gateway.currency(),
                    status=Payment.STATUS_SUCCEEDED,
                    payment_type=Payment.TYPE_REFUND,
                    stripe_payment_intent_id=intent_id,
                    stripe_refund_id=stripe_refund_id,
                    failure_reason=reason,
                    created_by=created_by,
                )
            )
        recalculate_booking_totals(booking)

        full_refund = amount >= refundable
        seats_released = full_refund and release_booking_seats(booking)

        BookingStatusChange.record(
            booking,
            old_payment_status=old_payment_status,
            action=BookingStatusChange.ACTION_REFUND,
            reason=reason,
            by_user=by_user,
            metadata={
                "amount": str(amount),
                "full_refund": full_refund,
                "stripe_refund_ids": [p.stripe_refund_id for p in payments if p.stripe_refund_id],
            },
        )

    logger.info(
        "Refunded %s on booking %s over %s charge(s) (full=%s, seats released=%s)",
        amount,
        booking.booking_number,
        len(payments),
        full_refund,
        seats_released,
    )

    if seats_released and booking.room_id:
        from waitlist.services import promote_for_room  # avoid circular import

        promote_for_room(booking.room_id)

    if send_email:
        ctx = booking_context(booking)
        ctx.update(refund_amount=format_amount(amount), reason=reason)
        dispatcher.send(
            events.REFUND_CONFIRMATION,
            booking.email,
            ctx,
            language=booking.language,
            booking=booking,
            payment=payments[0],
        )
    return payments


def record_external_refund(booking: Booking, stripe_refund_id: str, amount, payment_intent_id: str = "") -> Payment | None:
    """
    Record a refund made outside this system (Stripe dashboard). Keyed by the
    Stripe refund id so a refund is never recorded twice.
    """
    amount = round_currency(amount)
    with transaction.atomic():
        booking = Booking.objects.select_for_update().get(pk=booking.pk)
        if Payment.objects.filter(stripe_refund_id=stripe_refund_id).exists():
            logger.info("Refund %s already recorded", stripe_refund_id)
            return None
        refundable = compute_refundable(Payment.objects.filter(booking=booking))
        amount = min(amount, refundable)
        if amount <= 0:
            logger.warning("Refund %s on booking %s exceeds refundable amount", stripe_refund_id, booking.booking_number)
            return None

        old_payment_status = booking.payment_status
        payment = Payment.objects.create(
            booking=booking,
            amount=-amount,
            currency=gateway.currency(),
            status=Payment.STATUS_SUCCEEDED,
            payment_type=Payment.TYPE_REFUND,
            stripe_payment_intent_id=payment_intent_id,
            stripe_refund_id=stripe_refund_id,
            failure_reason="Refunded in Stripe dashboard",
        )
        recalculate_booking_totals(booking)
        full_refund = amount >= refundable
        seats_released = full_refund and release_booking_seats(booking)
        BookingStatusChange.record(
            booking,
            old_payment_status=old_payment_status,
            action=BookingStatusChange.ACTION_REFUND,
            reason="Refunded in Stripe dashboard",
            metadata={"amount": str(amount), "full_refund": full_refund, "stripe_refund_id": stripe_refund_id},
        )

    if seats_released and booking.room_id:
        from waitlist.services import promote_for_room  # avoid circular import

        promote_for_room(booking.room_id)
    return payment


def cancel_scheduled_payment(entry: PaymentScheduleEntry, reason: str = "", by_user=None) -> PaymentScheduleEntry:
    """Stop a single scheduled payment from being collected."""
    with transaction.atomic():
        entry = PaymentScheduleEntry.objects.select_for_update().select_related("booking").get(pk=entry.pk)
        if entry.status in (PaymentScheduleEntry.STATUS_PAID, PaymentScheduleEntry.STATUS_CANCELLED):
            raise InvalidTransition(
                entry.status,
                PaymentScheduleEntry.STATUS_CANCELLED,
                message=f"Cannot cancel a {entry.status} scheduled payment",
            )
        entry.status = PaymentScheduleEntry.STATUS_CANCELLED
        entry.failure_reason = reason or "Cancelled by admin"
        entry.save(update_fields=["status", "failure_reason", "updated_at"])
        BookingStatusChange.record(
            entry.booking,
            action=BookingStatusChange.ACTION_STATUS_CHANGE,
            reason=entry.failure_reason,
            by_user=by_user,
            metadata={"schedule_entry": entry.number, "amount": str(entry.amount), "cancelled_at": timezone.now().isoformat()},
        )
    logger.info("Cancelled scheduled payment #%s on booking %s", entry.number, entry.booking.booking_number)
    return entry
