"""
Template resolution: database override for the requested language, then the
English override, then the built-in file template.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .models import EmailTemplate

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en"

# Customer events
BOOKING_CONFIRMATION = "booking_confirmation"
BOOKING_CANCELLED = "booking_cancelled"
BOOKING_RESTORED = "booking_restored"
PAYMENT_RECEIVED = "payment_received"
PAYMENT_FAILED = "payment_failed"
PAYMENT_REMINDER = "payment_reminder"
DEADLINE_REMINDER = "deadline_reminder"
REFUND_CONFIRMATION = "refund_confirmation"
WAITLIST_JOINED = "waitlist_joined"
WAITLIST_SPOT_AVAILABLE = "waitlist_spot_available"
WAITLIST_ACCEPTED = "waitlist_accepted"
WAITLIST_DECLINED = "waitlist_declined"
WAITLIST_EXPIRED = "waitlist_expired"
PRE_RETREAT_REMINDER = "pre_retreat_reminder"
POST_RETREAT_FOLLOWUP = "post_retreat_followup"

# Admin events
ADMIN_NEW_BOOKING = "admin_new_booking"
ADMIN_PAYMENT_RECEIVED = "admin_payment_received"
ADMIN_PAYMENT_FAILED = "admin_payment_failed"
ADMIN_WAITLIST = "admin_waitlist"

FALLBACK_SUBJECTS = {
    BOOKING_CONFIRMATION: "Your booking {{ booking_number }} is confirmed",
    BOOKING_CANCELLED: "Your booking {{ booking_number }} has been cancelled",
    BOOKING_RESTORED: "Your booking {{ booking_number }} has been restored",
    PAYMENT_RECEIVED: "Payment received for booking {{ booking_number }}",
    PAYMENT_FAILED: "Action needed: payment failed for booking {{ booking_number }}",
    PAYMENT_REMINDER: "Payment reminder for booking {{ booking_number }}",
    DEADLINE_REMINDER: "{{ days_remaining }} day{{ days_remaining|pluralize }} left to complete your payment",
    REFUND_CONFIRMATION: "Refund issued for booking {{ booking_number }}",
    WAITLIST_JOINED: "You're on the waitlist for {{ retreat_title }}",
    WAITLIST_SPOT_AVAILABLE: "A spot opened up at {{ retreat_title }}",
    WAITLIST_ACCEPTED: "Your spot at {{ retreat_title }} is reserved",
    WAITLIST_DECLINED: "Waitlist offer declined for {{ retreat_title }}",
    WAITLIST_EXPIRED: "Your waitlist offer for {{ retreat_title }} has expired",
    PRE_RETREAT_REMINDER: "{{ retreat_title }} starts in {{ days_until }} days",
    POST_RETREAT_FOLLOWUP: "How was your {{ destination }} retreat? Share your experience",
    ADMIN_NEW_BOOKING: "New booking {{ booking_number }} ({{ guest_name }})",
    ADMIN_PAYMENT_RECEIVED: "Payment received: {{ amount }} for {{ booking_number }}",
    ADMIN_PAYMENT_FAILED: "Payment failed: {{ amount }} for {{ booking_number }}",
    ADMIN_WAITLIST: "Waitlist {{ waitlist_event }}: {{ guest_name }} ({{ retreat_title }})",
}

EVENT_TYPES = tuple(FALLBACK_SUBJECTS)


@dataclass(frozen=True)
class ResolvedTemplate:
    event_type: str
    language: str
    subject: str
    body: Optional[str] = None
    template_name: Optional[str] = None

    @property
    def is_override(self) -> bool:
        return self.body is not None


def fallback_template(event_type: str) -> ResolvedTemplate:
    if event_type not in FALLBACK_SUBJECTS:
        raise KeyError(f"Unknown email event type: {event_type}")
    return ResolvedTemplate(
        event_type=event_type,
        language=DEFAULT_LANGUAGE,
        subject=FALLBACK_SUBJECTS[event_type],
        template_name=f"emails/{event_type}.html",
    )


def resolve_template(event_type: str, language: str = DEFAULT_LANGUAGE) -> ResolvedTemplate:
    languages = [language or DEFAULT_LANGUAGE]
    if DEFAULT_LANGUAGE not in languages:
        languages.append(DEFAULT_LANGUAGE)

    overrides = {
        t.language: t
        for t in EmailTemplate.objects.filter(slug=event_type, language__in=languages, is_active=True)
    }
    for lang in languages:
        override = overrides.get(lang)
        if override is not None:
            return ResolvedTemplate(
                event_type=event_type,
                language=lang,
                subject=override.subject,
                body=override.html_body,
            )

    logger.debug("No template override for %s [%s]; using built-in template", event_type, language)
    return fallback_template(event_type)
