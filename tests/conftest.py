import itertools
import os
from types import SimpleNamespace
from unittest import mock

import pytest
from rest_framework.test import APIClient

from tests.factories import RoomFactory, UserFactory


os.environ.setdefault("DJANGO_SETTINGS_MODULE", "retreat_backend.settings.test")


@pytest.fixture
def api_client() -> APIClient:
    """Unauthenticated DRF APIClient for the public endpoints."""
    return APIClient(enforce_csrf_checks=False)


@pytest.fixture
def admin_user(db):
    return UserFactory(username="staff", is_staff=True, is_superuser=True)


@pytest.fixture
def admin_client(admin_user) -> APIClient:
    """APIClient authenticated as a staff user via force_authenticate."""
    client = APIClient(enforce_csrf_checks=False)
    client.force_authenticate(user=admin_user)
    return client


@pytest.fixture(autouse=True)
def stripe_gateway():
    """
    Replace the Stripe calls in payments.gateway so no test reaches the
    network. Intents come back unconfirmed, the way an on-session intent does.
    """
    counter = itertools.count(1)

    def _intent(amount, metadata, **kwargs):
        n = next(counter)
        return SimpleNamespace(
            id=f"pi_test_{n}",
            client_secret=f"pi_test_{n}_secret",
            status="requires_payment_method",
            metadata=metadata,
        )

    def _refund(payment_intent_id, amount, metadata, idempotency_key=None):
        return SimpleNamespace(id=f"re_test_{next(counter)}")

    with mock.patch("payments.gateway.create_payment_intent", side_effect=_intent) as create_intent, mock.patch(
        "payments.gateway.create_customer", return_value=SimpleNamespace(id="cus_test")
    ) as create_customer, mock.patch("payments.gateway.create_refund", side_effect=_refund) as create_refund:
        yield SimpleNamespace(
            create_payment_intent=create_intent,
            create_customer=create_customer,
            create_refund=create_refund,
        )


@pytest.fixture
def room(db):
    return RoomFactory(capacity=4)


@pytest.fixture
def make_booking(db):
    """Create a booking through the real service (seats taken, schedule built)."""
    from bookings.services import create_booking

    def _make(room, guests_count=1, email=None, payment_plan="deposit", **kwargs):
        return create_booking(
            room.retreat,
            room,
            first_name=kwargs.pop("first_name", "Ana"),
            last_name=kwargs.pop("last_name", "Silva"),
            email=email or f"guest{room.pk}-{guests_count}@example.com",
            guests_count=guests_count,
            payment_plan=payment_plan,
            **kwargs,
        )

    return _make


@pytest.fixture
def pay(db):
    """Record a successful payment for a schedule entry, as the webhook would."""
    from payments.services import stripe_service

    def _pay(booking, number=1, intent_id=None):
        entry = booking.schedule.get(number=number)
        return stripe_service.record_payment_success(
            booking,
            intent_id=intent_id or f"pi_paid_{booking.pk}_{number}",
            amount=entry.amount,
            entry=entry,
            payment_method="pm_card",
            customer="cus_test",
        )

    return _pay
