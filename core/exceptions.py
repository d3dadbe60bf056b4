"""
Domain errors for the booking lifecycle and the DRF exception handler
that turns them into API responses.

Financial-state errors (transitions, refunds, inventory) propagate to the
caller. Notification-layer errors are logged by the dispatcher and never
reach a view.
"""
from __future__ import annotations

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class RetreatBookingError(Exception):
    """Base class for domain errors; carries an HTTP status for the API layer."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "booking_error"
    default_message = "Booking operation failed"

    def __init__(self, message: str | None = None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class InvalidTransition(RetreatBookingError):
    code = "invalid_transition"
    default_message = "Invalid status transition"

    def __init__(self, current: str = "", requested: str = "", message: str | None = None):
        message = message or f"Invalid transition from {current or '?'} to {requested or '?'}"
        super().__init__(message, current=current, requested=requested)


class InvalidRefundAmount(RetreatBookingError):
    code = "invalid_refund_amount"
    default_message = "Refund amount must be greater than 0 and at most the refundable amount"


class InsufficientInventory(RetreatBookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "insufficient_inventory"
    default_message = "Room does not have enough available spots"


class InvalidPromoCode(RetreatBookingError):
    code = "invalid_promo_code"
    default_message = "Invalid promo code"


class OfferExpired(RetreatBookingError):
    status_code = status.HTTP_410_GONE
    code = "offer_expired"
    default_message = "This waitlist offer has expired"


class DuplicateEvent(RetreatBookingError):
    """Webhook event already processed; callers treat this as success."""

    status_code = status.HTTP_200_OK
    code = "duplicate_event"
    default_message = "Event already processed"


class NotificationFailure(RetreatBookingError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "notification_failure"
    default_message = "Email delivery failed"


class PaymentProviderError(RetreatBookingError):
    """Stripe rejected or failed a request made on the admin's behalf."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "payment_provider_error"
    default_message = "The payment provider rejected the request"


class ConfigurationMissing(RetreatBookingError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "configuration_missing"
    default_message = "Required configuration is missing"


def api_exception_handler(exc, context):
    """DRF EXCEPTION_HANDLER: domain errors become {"error", "code"} responses."""
    if isinstance(exc, RetreatBookingError):
        view = context.get("view")
        logger.info(
            "%s in %s: %s",
            exc.__class__.__name__,
            view.__class__.__name__ if view is not None else "unknown view",
            exc.message,
        )
        payload = {"error": exc.message, "code": exc.code}
        if exc.details:
            payload["details"] = {k: str(v) for k, v in exc.details.items()}
        return Response(payload, status=exc.status_code)

    response = exception_handler(exc, context)
    if response is None:
        # Django ValidationError raised from model/service code
        from django.core.exceptions import ValidationError as DjangoValidationError

        if isinstance(exc, DjangoValidationError):
            detail = exc.message_dict if hasattr(exc, "error_dict") else {"error": exc.messages}
            return Response(detail, status=status.HTTP_400_BAD_REQUEST)
    return response
