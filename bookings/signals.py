import logging

from django.dispatch import Signal, receiver

from core.middleware.request_id import get_request_id

logger = logging.getLogger(__name__)

# Sent after every real status transition: booking, old, new, by_user
booking_status_changed = Signal()


@receiver(booking_status_changed)
def log_status_change(sender, booking, old, new, by_user=None, **kwargs):
    logger.info(
        "Booking %s: %s -> %s by %s (request %s)",
        booking.booking_number,
        old,
        new,
        getattr(by_user, "username", None) or "system",
        get_request_id() or "-",
    )
