# FILE: payments/tasks.py
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Dict

from celery import shared_task
from django.conf import settings
from django.db.models import F, Q
from django.utils import timezone

from bookings.lifecycle import AUTO_CANCEL_REASON, cancel_booking
from bookings.models import Booking
from notifications import resolver as events
from notifications.contexts import booking_context, payment_context
from notifications.dispatcher import dispatcher
from notifications.models import EmailAuditLog

from .models import PaymentScheduleEntry
from .schedule import STAGE_ONE_DAY, STAGE_THREE_DAYS, days_remaining, deadline_action, due_date_reminder
from .services import stripe_service

logger = logging.getLogger(__name__)

ACTIVE_BOOKING_STATUSES = (Booking.STATUS_PENDING, Booking.STATUS_CONFIRMED)


@shared_task
def process_payment_deadlines(now=None) -> Dict[str, int]:
    """
    Auto-cancel bookings whose failed payment is still unpaid after the
    grace deadline.
    """
    now = now or timezone.now()
    booking_ids = (
        # pending entries carry a deadline only after a manual restore
        PaymentScheduleEntry.objects.filter(
            status__in=[PaymentScheduleEntry.STATUS_FAILED, PaymentScheduleEntry.STATUS_PENDING],
            payment_deadline__lte=now,
            booking__status__in=ACTIVE_BOOKING_STATUSES,
        )
        .values_list("booking_id", flat=True)
        .distinct()
    )
    cancelled = errors = 0
    for booking in Booking.objects.filter(pk__in=list(booking_ids)):
        try:
            result = cancel_booking(booking, reason=AUTO_CANCEL_REASON)
        except Exception:
            logger.exception("Auto-cancel failed for booking %s", booking.booking_number)
            errors += 1
            continue
        if result.changed:
            cancelled += 1
            logger.warning("Auto-cancelled booking %s: payment deadline exceeded", booking.booking_number)
    return {"cancelled": cancelled, "errors": errors}


@shared_task
def charge_due_installments(now=None) -> Dict[str, int]:
    """
    Charge installments that are due, off-session. Failed installments are
    retried once a day until max_attempts or their deadline.
    """
    now = now or timezone.now()
    today = timezone.localdate(now)
    retry_before = now - timedelta(days=1)
    due = (
        PaymentScheduleEntry.objects.select_related("booking")
        .filter(
            number__gt=1,
            due_date__lte=today,
            attempts__lt=F("max_attempts"),
            booking__status__in=ACTIVE_BOOKING_STATUSES,
        )
        .filter(
            Q(status=PaymentScheduleEntry.STATUS_PENDING)
            | Q(
                status=PaymentScheduleEntry.STATUS_FAILED,
                payment_deadline__gt=now,
                last_attempt_at__lt=retry_before,
            )
        )
        .order_by("due_date", "pk")
    )
    charged = failed = 0
    for entry in due:
        try:
            ok = stripe_service.charge_installment(entry)
        except Exception:
            logger.exception("Charging schedule entry %s crashed", entry.pk)
            ok = False
        if ok:
            charged += 1
        else:
            failed += 1
    logger.info("Installment run: %s charged, %s not charged", charged, failed)
    return {"charged": charged, "failed": failed}


def _send_due_reminders(now) -> int:
    today = timezone.localdate(now)
    horizon = today + timedelta(days=14)
    entries = PaymentScheduleEntry.objects.select_related("booking", "booking__retreat", "booking__room").filter(
        status=PaymentScheduleEntry.STATUS_PENDING,
        number__gt=1,
        due_date__lte=horizon,
        booking__status__in=ACTIVE_BOOKING_STATUSES,
    )
    sent = 0
    for entry in entries:
        last_sent = timezone.localdate(entry.last_reminder_sent_at) if entry.last_reminder_sent_at else None
        reminder_type = due_date_reminder(entry.due_date, today, last_sent=last_sent)
        if reminder_type is None:
            continue
        booking = entry.booking
        ctx = payment_context(
            booking,
            entry.amount,
            entry=entry,
            reminder_type=reminder_type,
            days_until=(entry.due_date - today).days,
        )
        dispatcher.send(events.PAYMENT_REMINDER, booking.email, ctx, language=booking.language, booking=booking)
        PaymentScheduleEntry.objects.filter(pk=entry.pk).update(last_reminder_sent_at=now)
        sent += 1
    return sent


def _send_deadline_reminders(now) -> int:
    entries = PaymentScheduleEntry.objects.select_related("booking", "booking__retreat", "booking__room").filter(
        status=PaymentScheduleEntry.STATUS_FAILED,
        payment_deadline__gt=now,
        booking__status__in=ACTIVE_BOOKING_STATUSES,
    )
    sent = 0
    for entry in entries:
        stage = deadline_action(entry.payment_deadline, now, entry.reminder_stage)
        if stage not in (STAGE_THREE_DAYS, STAGE_ONE_DAY):
            continue
        # claim the stage first so two workers never send it twice
        claimed = (
            PaymentScheduleEntry.objects.filter(pk=entry.pk, reminder_stage=entry.reminder_stage)
            .update(reminder_stage=stage, last_reminder_sent_at=now)
        )
        if not claimed:
            continue
        booking = entry.booking
        ctx = payment_context(
            booking,
            entry.amount,
            entry=entry,
            days_remaining=days_remaining(entry.payment_deadline, now),
            failure_reason=entry.failure_reason,
        )
        dispatcher.send(events.DEADLINE_REMINDER, booking.email, ctx, language=booking.language, booking=booking)
        sent += 1
    return sent


def _send_pre_retreat_reminders(now) -> int:
    days = getattr(settings, "PRE_RETREAT_REMINDER_DAYS", 42)
    start = timezone.localdate(now) + timedelta(days=days)
    already = EmailAuditLog.objects.filter(
        email_type=events.PRE_RETREAT_REMINDER,
        status=EmailAuditLog.STATUS_SENT,
        booking__isnull=False,
    ).values_list("booking_id", flat=True)
    bookings = (
        Booking.objects.select_related("retreat", "room")
        .filter(status=Booking.STATUS_CONFIRMED, retreat__start_date=start)
        .exclude(pk__in=already)
    )
    sent = 0
    for booking in bookings:
        ctx = booking_context(booking, schedule=list(booking.schedule.order_by("number")))
        ctx.update(days_until=days, balance_due_value=booking.balance_due if booking.balance_due > 0 else "")
        dispatcher.send(events.PRE_RETREAT_REMINDER, booking.email, ctx, language=booking.language, booking=booking)
        sent += 1
    return sent


@shared_task
def send_payment_reminders(now=None) -> Dict[str, int]:
    """Due-date, grace-deadline and pre-retreat reminders."""
    now = now or timezone.now()
    result = {
        "due": _send_due_reminders(now),
        "deadline": _send_deadline_reminders(now),
        "pre_retreat": _send_pre_retreat_reminders(now),
    }
    logger.info("Reminder run: %s", result)
    return result
