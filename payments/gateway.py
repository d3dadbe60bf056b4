"""
Thin wrapper around the Stripe API.

All provider calls go through here so that a missing secret key surfaces as
ConfigurationMissing and tests can patch one place.
"""
from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

import stripe
from django.conf import settings

from core.exceptions import ConfigurationMissing, PaymentProviderError

logger = logging.getLogger(__name__)


def currency() -> str:
    return getattr(settings, "STRIPE_CURRENCY", "eur").lower()


def money_cents(amount) -> int:
    q = Decimal(str(amount or 0)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return int((q * 100).to_integral_value())


def cents_to_amount(cents) -> Decimal:
    return (Decimal(int(cents or 0)) / 100).quantize(Decimal("0.01"))


def is_configured() -> bool:
    return bool(getattr(settings, "STRIPE_SECRET_KEY", ""))


def _client_key() -> str:
    key = getattr(settings, "STRIPE_SECRET_KEY", "")
    if not key:
        raise ConfigurationMissing("Stripe is not configured (STRIPE_SECRET_KEY is empty)", setting="STRIPE_SECRET_KEY")
    return key


def create_payment_intent(
    amount,
    metadata: Dict[str, str],
    customer: Optional[str] = None,
    payment_method: Optional[str] = None,
    off_session: bool = False,
    idempotency_key: Optional[str] = None,
    receipt_email: Optional[str] = None,
):
    params: Dict[str, Any] = {
        "api_key": _client_key(),
        "amount": money_cents(amount),
        "currency": currency(),
        "metadata": metadata,
    }
    if customer:
        params["customer"] = customer
    if receipt_email:
        params["receipt_email"] = receipt_email
    if off_session:
        params.update(payment_method=payment_method, off_session=True, confirm=True)
    else:
        params.update(setup_future_usage="off_session", automatic_payment_methods={"enabled": True})
    if idempotency_key:
        params["idempotency_key"] = idempotency_key
    intent = stripe.PaymentIntent.create(**params)
    logger.info("Created PaymentIntent %s (%s %s)", intent.id, params["amount"], params["currency"])
    return intent


def create_customer(email: str, name: str, metadata: Dict[str, str]):
    return stripe.Customer.create(api_key=_client_key(), email=email, name=name, metadata=metadata)


def create_refund(payment_intent_id: str, amount, metadata: Dict[str, str], idempotency_key: Optional[str] = None):
    params: Dict[str, Any] = {
        "api_key": _client_key(),
        "payment_intent": payment_intent_id,
        "amount": money_cents(amount),
        "reason": "requested_by_customer",
        "metadata": metadata,
    }
    if idempotency_key:
        params["idempotency_key"] = idempotency_key
    try:
        refund = stripe.Refund.create(**params)
    except stripe.StripeError as e:
        logger.error("Stripe error creating refund on %s: %s", payment_intent_id, e)
        raise PaymentProviderError(
            getattr(e, "user_message", None) or str(e) or "Stripe could not create the refund",
            payment_intent=payment_intent_id,
        ) from e
    logger.info("Created refund %s for PaymentIntent %s", refund.id, payment_intent_id)
    return refund


def list_refunds(payment_intent_id: str) -> List[Dict[str, Any]]:
    """Every refund Stripe holds for an intent, as plain dicts with id and amount."""
    refunds = stripe.Refund.list(api_key=_client_key(), payment_intent=payment_intent_id, limit=100)
    return [{"id": r.id, "amount": r.amount, "status": getattr(r, "status", None)} for r in refunds.auto_paging_iter()]


def construct_event(payload: bytes, signature: str):
    secret = getattr(settings, "STRIPE_WEBHOOK_SECRET", "")
    if not secret:
        raise ConfigurationMissing("Stripe webhook secret not configured", setting="STRIPE_WEBHOOK_SECRET")
    return stripe.Webhook.construct_event(payload, signature, secret)
