import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from django.urls import reverse
from django.utils import timezone

from bookings.models import Booking
from payments.models import Payment, PaymentScheduleEntry
from tests.factories import RetreatFactory, RoomFactory, UserFactory


def _checkout_payload(room, **overrides):
    payload = {
        "retreat": room.retreat_id,
        "room": room.pk,
        "first_name": "Marta",
        "last_name": "Reis",
        "email": "marta@example.com",
        "guests_count": 2,
    }
    payload.update(overrides)
    return payload


@pytest.mark.django_db
def test_checkout_creates_pending_booking_with_deposit_intent(api_client, room, stripe_gateway):
    response = api_client.post(reverse("bookings:checkout"), _checkout_payload(room), format="json")

    assert response.status_code == 201
    data = response.json()
    assert data["booking_number"].startswith("RB-")
    assert data["total_amount"] == "2000.00"
    assert data["deposit_amount"] == "200.00"
    assert data["client_secret"].endswith("_secret")

    booking = Booking.objects.get(booking_number=data["booking_number"])
    assert str(booking.access_token) == data["access_token"]
    assert booking.status == Booking.STATUS_PENDING
    assert booking.stripe_customer_id == "cus_test"
    room.refresh_from_db()
    assert room.available == 2
    stripe_gateway.create_payment_intent.assert_called_once()


@pytest.mark.django_db
def test_checkout_full_room_conflicts(api_client, room, make_booking):
    make_booking(room, guests_count=3)
    response = api_client.post(reverse("bookings:checkout"), _checkout_payload(room), format="json")

    assert response.status_code == 409
    assert response.json()["code"] == "insufficient_inventory"


@pytest.mark.django_db
def test_checkout_validation(api_client, room):
    other = RoomFactory()
    response = api_client.post(reverse("bookings:checkout"), _checkout_payload(other, retreat=room.retreat_id), format="json")
    assert response.status_code == 400
    assert "room" in response.json()

    today = timezone.localdate()
    started = RoomFactory(retreat=RetreatFactory(start_date=today, end_date=today + timedelta(days=3)))
    response = api_client.post(reverse("bookings:checkout"), _checkout_payload(started), format="json")
    assert response.status_code == 400

    response = api_client.post(reverse("bookings:checkout"), _checkout_payload(room, language="pt"), format="json")
    assert response.status_code == 400
    assert "language" in response.json()


@pytest.mark.django_db
def test_my_booking_by_token(api_client, room, make_booking, pay):
    booking = make_booking(room)
    pay(booking)

    response = api_client.get(reverse("bookings:my-booking"), {"token": str(booking.access_token)})

    assert response.status_code == 200
    data = response.json()
    assert data["booking_number"] == booking.booking_number
    assert [p["status"] for p in data["payments"]] == ["succeeded"]
    assert len(data["schedule"]) == booking.schedule.count()
    assert "internal_notes" not in data

    assert api_client.get(reverse("bookings:my-booking"), {"token": str(uuid.uuid4())}).status_code == 404
    assert api_client.get(reverse("bookings:my-booking"), {"token": "nope"}).status_code == 404


@pytest.mark.django_db
def test_my_booking_pay_targets_next_open_entry(api_client, room, make_booking, pay):
    booking = make_booking(room)
    pay(booking)

    response = api_client.post(reverse("bookings:my-booking-pay"), {"token": str(booking.access_token)}, format="json")

    assert response.status_code == 200
    second = booking.schedule.get(number=2)
    assert response.json()["amount"] == str(second.amount)
    assert Payment.objects.filter(schedule_entry=second, status=Payment.STATUS_PENDING).exists()


@pytest.mark.django_db
def test_my_booking_pay_rejects_cancelled(api_client, room, make_booking, admin_client):
    booking = make_booking(room)
    admin_client.post(reverse("bookings:bookings-cancel", args=[booking.pk]), {"send_email": False}, format="json")

    response = api_client.post(reverse("bookings:my-booking-pay"), {"token": str(booking.access_token)}, format="json")
    assert response.status_code == 400


@pytest.mark.django_db
def test_admin_endpoints_require_staff(api_client, room, make_booking):
    booking = make_booking(room)
    assert api_client.get(reverse("bookings:bookings-list")).status_code in (401, 403)

    api_client.force_authenticate(user=UserFactory())
    assert api_client.get(reverse("bookings:bookings-list")).status_code == 403
    assert api_client.post(reverse("bookings:bookings-cancel", args=[booking.pk])).status_code == 403


@pytest.mark.django_db
def test_admin_list_filters_and_search(admin_client, room, make_booking):
    make_booking(room, email="one@example.com")
    cancelled = make_booking(room, email="two@example.com")
    admin_client.post(reverse("bookings:bookings-cancel", args=[cancelled.pk]), {"send_email": False}, format="json")

    response = admin_client.get(reverse("bookings:bookings-list"), {"status": "cancelled"})
    assert response.status_code == 200
    assert [b["email"] for b in response.json()["results"]] == ["two@example.com"]

    response = admin_client.get(reverse("bookings:bookings-list"), {"search": "one@"})
    assert [b["email"] for b in response.json()["results"]] == ["one@example.com"]


@pytest.mark.django_db
def test_admin_lifecycle_actions(admin_client, room, make_booking, pay):
    booking = make_booking(room, guests_count=2)

    response = admin_client.post(reverse("bookings:bookings-confirm", args=[booking.pk]))
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_transition"

    pay(booking)
    response = admin_client.post(reverse("bookings:bookings-confirm", args=[booking.pk]))
    assert response.status_code == 200
    assert response.json()["status"] == "confirmed"

    response = admin_client.post(
        reverse("bookings:bookings-cancel", args=[booking.pk]), {"reason": "Injury", "send_email": False}, format="json"
    )
    assert response.json()["status"] == "cancelled"
    assert response.json()["cancellation_reason"] == "Injury"

    due = (timezone.localdate() + timedelta(days=10)).isoformat()
    response = admin_client.post(
        reverse("bookings:bookings-restore", args=[booking.pk]), {"new_due_date": due, "send_email": False}, format="json"
    )
    assert response.status_code == 200
    assert response.json()["status"] == "pending"
    open_entries = [e for e in response.json()["schedule"] if e["status"] == PaymentScheduleEntry.STATUS_PENDING]
    assert open_entries and all(e["due_date"] == due for e in open_entries)

    history = admin_client.get(reverse("bookings:bookings-history", args=[booking.pk])).json()
    actions = {h["action"] for h in history}
    assert {"payment_received", "cancellation", "restore"} <= actions


@pytest.mark.django_db
def test_admin_assign_room(admin_client, room, make_booking):
    booking = make_booking(room, guests_count=2)
    target = RoomFactory(retreat=room.retreat, capacity=2)

    response = admin_client.post(reverse("bookings:bookings-assign-room", args=[booking.pk]), {"room": target.pk}, format="json")
    assert response.status_code == 200
    assert response.json()["room"] == target.pk

    response = admin_client.post(reverse("bookings:bookings-assign-room", args=[booking.pk]), {"room": room.pk}, format="json")
    assert response.status_code == 200
    target.refresh_from_db()
    assert target.available == 2

    elsewhere = RoomFactory()
    response = admin_client.post(reverse("bookings:bookings-assign-room", args=[booking.pk]), {"room": elsewhere.pk}, format="json")
    assert response.status_code == 400


@pytest.mark.django_db
def test_admin_refund_and_payments(admin_client, room, make_booking, pay, stripe_gateway):
    booking = make_booking(room)
    pay(booking)
    url = reverse("bookings:bookings-refund", args=[booking.pk])

    response = admin_client.post(url, {"amount": "500.00"}, format="json")
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_refund_amount"

    response = admin_client.post(url, {"amount": "25.00", "reason": "Goodwill"}, format="json")
    assert response.status_code == 201
    assert Decimal(response.json()["amount"]) == Decimal("25.00")
    assert [Decimal(r["amount"]) for r in response.json()["refunds"]] == [Decimal("-25.00")]

    payments = admin_client.get(reverse("bookings:bookings-payments", args=[booking.pk])).json()
    assert [p["payment_type"] for p in payments] == ["deposit", "refund"]


@pytest.mark.django_db
def test_admin_can_edit_guest_details_but_not_money(admin_client, room, make_booking):
    booking = make_booking(room)
    response = admin_client.patch(
        reverse("bookings:bookings-detail", args=[booking.pk]),
        {"phone": "+351 900 000 000", "total_amount": "1.00", "status": "confirmed"},
        format="json",
    )
    assert response.status_code == 200
    booking.refresh_from_db()
    assert booking.phone == "+351 900 000 000"
    assert booking.total_amount == Decimal("1000.00")
    assert booking.status == Booking.STATUS_PENDING


@pytest.mark.django_db
def test_bookings_cannot_be_deleted_via_api(admin_client, room, make_booking):
    booking = make_booking(room)
    response = admin_client.delete(reverse("bookings:bookings-detail", args=[booking.pk]))
    assert response.status_code == 405


@pytest.mark.django_db
def test_cancel_schedule_entry_endpoint(admin_client, api_client, room, make_booking):
    booking = make_booking(room)
    entry = booking.schedule.get(number=3)
    url = reverse("payments_api:schedule-cancel", args=[entry.pk])

    assert api_client.post(url, {"reason": "Comp"}, format="json").status_code in (401, 403)

    response = admin_client.post(url, {"reason": "Comp"}, format="json")
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    response = admin_client.post(url, {"reason": "Again"}, format="json")
    assert response.status_code == 400


@pytest.mark.django_db
def test_admin_refund_rejected_by_stripe(admin_client, room, make_booking, pay, stripe_gateway):
    from core.exceptions import PaymentProviderError

    booking = make_booking(room)
    pay(booking)
    stripe_gateway.create_refund.side_effect = PaymentProviderError("Charge already refunded")

    response = admin_client.post(reverse("bookings:bookings-refund", args=[booking.pk]), {"amount": "25.00"}, format="json")

    assert response.status_code == 502
    assert response.json()["code"] == "payment_provider_error"
    assert not booking.payments.filter(payment_type=Payment.TYPE_REFUND).exists()
