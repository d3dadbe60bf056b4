from __future__ import annotations

import logging

from celery import shared_task
from django.utils import timezone

from core.exceptions import InvalidTransition

from .lifecycle import complete_booking
from .models import Booking

logger = logging.getLogger(__name__)


@shared_task
def complete_finished_bookings(now=None) -> int:
    """Confirmed bookings whose retreat has ended become completed."""
    now = now or timezone.now()
    finished = Booking.objects.filter(
        status=Booking.STATUS_CONFIRMED,
        retreat__end_date__lte=timezone.localdate(now),
    )
    completed = 0
    for booking in finished:
        try:
            if complete_booking(booking, now=now).changed:
                completed += 1
        except InvalidTransition as e:
            logger.warning("Could not complete booking %s: %s", booking.booking_number, e)
    return completed
