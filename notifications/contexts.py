"""
Template variables for booking, payment and waitlist emails.

Everything is flattened to strings and numbers so a context survives the
trip through the Celery broker unchanged.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Iterable, Optional
from urllib.parse import urlencode

from django.conf import settings

from payments.schedule import round_currency, schedule_as_html


def format_amount(amount, currency: str = "") -> str:
    value = round_currency(amount if amount is not None else Decimal("0"))
    currency = (currency or getattr(settings, "STRIPE_CURRENCY", "eur")).upper()
    return f"{value:,.2f} {currency}"


def format_date(value) -> str:
    if value is None:
        return ""
    return f"{value:%d %B %Y}"


def format_datetime(value) -> str:
    if value is None:
        return ""
    return f"{value:%d %B %Y %H:%M} UTC"


def site_url(path: str, **params) -> str:
    url = f"{settings.SITE_URL}{path}"
    if params:
        url = f"{url}?{urlencode(params)}"
    return url


def base_context() -> Dict[str, Any]:
    return {
        "site_name": getattr(settings, "SITE_NAME", ""),
        "site_url": settings.SITE_URL,
    }


def retreat_context(retreat, room=None) -> Dict[str, Any]:
    return {
        "retreat_title": retreat.title,
        "destination": retreat.destination,
        "start_date": format_date(retreat.start_date),
        "end_date": format_date(retreat.end_date),
        "room_name": room.name if room is not None else "",
    }


def booking_context(booking, schedule: Optional[Iterable] = None) -> Dict[str, Any]:
    ctx = base_context()
    ctx.update(retreat_context(booking.retreat, booking.room))
    ctx.update(
        {
            "booking_number": booking.booking_number,
            "first_name": booking.first_name,
            "last_name": booking.last_name,
            "guest_name": booking.full_name,
            "guest_email": booking.email,
            "guests_count": booking.guests_count,
            "total_amount": format_amount(booking.total_amount),
            "deposit_amount": format_amount(booking.deposit_amount),
            "balance_due": format_amount(booking.balance_due),
            "early_bird_discount": format_amount(booking.early_bird_discount) if booking.is_early_bird else "",
            "promo_discount": format_amount(booking.promo_discount) if booking.promo_discount else "",
            "promo_code": booking.promo_code.code if booking.promo_code_id else "",
            "booking_status": booking.get_status_display(),
            "payment_status": booking.get_payment_status_display(),
            "my_booking_url": site_url("/my-booking", token=str(booking.access_token)),
        }
    )
    if schedule is not None:
        ctx["schedule_html"] = schedule_as_html(schedule)
    return ctx


def payment_context(booking, amount, entry=None, **extra) -> Dict[str, Any]:
    ctx = booking_context(booking)
    ctx["amount"] = format_amount(amount)
    ctx["payment_url"] = ctx["my_booking_url"]
    if entry is not None:
        ctx.update(
            {
                "payment_description": entry.description,
                "payment_number": entry.number,
                "due_date": format_date(entry.due_date),
                "deadline": format_datetime(entry.payment_deadline),
            }
        )
    ctx.update(extra)
    return ctx


def waitlist_context(entry, **extra) -> Dict[str, Any]:
    ctx = base_context()
    ctx.update(retreat_context(entry.retreat, entry.room))
    ctx.update(
        {
            "first_name": entry.first_name,
            "last_name": entry.last_name,
            "guest_name": f"{entry.first_name} {entry.last_name}".strip(),
            "guest_email": entry.email,
            "guests_count": entry.guests_count,
            "position": entry.position,
            "notes": entry.notes,
        }
    )
    if entry.response_token:
        token = str(entry.response_token)
        ctx["accept_url"] = site_url("/waitlist/respond", token=token, action="accept")
        ctx["decline_url"] = site_url("/waitlist/respond", token=token, action="decline")
    if entry.offer_expires_at:
        ctx["offer_expires_at"] = format_datetime(entry.offer_expires_at)
    ctx.update(extra)
    return ctx
