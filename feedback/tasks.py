from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from bookings.models import Booking
from notifications import resolver as events
from notifications.contexts import booking_context, site_url
from notifications.dispatcher import dispatcher

logger = logging.getLogger(__name__)

# the completion sweep may already have moved a finished booking on
FOLLOWUP_STATUSES = (Booking.STATUS_CONFIRMED, Booking.STATUS_COMPLETED)


def followup_candidates(today):
    """Fully paid bookings whose retreat ended N days before `today` and that have no feedback yet."""
    ended = today - timedelta(days=getattr(settings, "FOLLOWUP_DAYS_AFTER_RETREAT", 2))
    return (
        Booking.objects.select_related("retreat", "room")
        .filter(
            status__in=FOLLOWUP_STATUSES,
            payment_status=Booking.PAYMENT_PAID,
            retreat__end_date=ended,
            feedback__isnull=True,
            followup_sent_at__isnull=True,
        )
        .order_by("id")
    )


@shared_task
def send_post_retreat_followups(now=None) -> int:
    """Email each guest a link to the feedback form a few days after their retreat."""
    now = now or timezone.now()
    sent = 0
    for booking in followup_candidates(timezone.localdate(now)):
        # claim first so two workers never email the same guest
        claimed = Booking.objects.filter(pk=booking.pk, followup_sent_at__isnull=True).update(followup_sent_at=now)
        if not claimed:
            continue
        ctx = booking_context(booking)
        ctx["feedback_url"] = site_url("/feedback", token=str(booking.access_token))
        ctx["review_url"] = getattr(settings, "REVIEW_URL", "")
        dispatcher.send(events.POST_RETREAT_FOLLOWUP, booking.email, ctx, language=booking.language, booking=booking)
        sent += 1
    if sent:
        logger.info("Sent %s post-retreat follow-up email(s)", sent)
    return sent
