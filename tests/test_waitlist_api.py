import uuid
from datetime import timedelta

import pytest
from django.urls import reverse
from django.utils import timezone

from bookings.lifecycle import cancel_booking
from bookings.models import Booking
from waitlist.models import WaitlistEntry
from waitlist.tasks import expire_waitlist_offers


@pytest.fixture
def offer(room, make_booking):
    """An open waitlist offer for 2 seats freed by a cancellation."""
    booking = make_booking(room, guests_count=4)
    from waitlist.services import join_waitlist

    entry = join_waitlist(room.retreat, room, first_name="Olga", email="olga@example.com", guests_count=2)
    cancel_booking(booking, send_email=False)
    entry.refresh_from_db()
    assert entry.status == WaitlistEntry.STATUS_OFFERED
    return entry


@pytest.mark.django_db
def test_join_waitlist_endpoint(api_client, room):
    url = reverse("waitlist:waitlist-list")
    payload = {"retreat": room.retreat_id, "room": room.pk, "first_name": "Pia", "email": "Pia@Example.com", "guests_count": 2}

    response = api_client.post(url, payload, format="json")
    assert response.status_code == 201
    assert response.json() == {"position": 1, "status": "waiting", "email": "pia@example.com"}

    assert api_client.post(url, payload, format="json").status_code == 400

    any_room = dict(payload, room=None, email="any@example.com")
    assert api_client.post(url, any_room, format="json").json()["position"] == 1


@pytest.mark.django_db
def test_waitlist_listing_is_admin_only(api_client, admin_client, room):
    from waitlist.services import join_waitlist

    join_waitlist(room.retreat, room, first_name="Pia", email="pia@example.com")
    assert api_client.get(reverse("waitlist:waitlist-list")).status_code in (401, 403)

    response = admin_client.get(reverse("waitlist:waitlist-list"), {"status": "waiting"})
    assert response.status_code == 200
    assert response.json()["count"] == 1


@pytest.mark.django_db
def test_admin_notify_offers_out_of_order(admin_client, room):
    from waitlist.services import join_waitlist

    join_waitlist(room.retreat, room, first_name="Head", email="head@example.com")
    tail = join_waitlist(room.retreat, room, first_name="Tail", email="tail@example.com")

    response = admin_client.post(reverse("waitlist:waitlist-notify", args=[tail.pk]))
    assert response.status_code == 200
    assert response.json()["status"] == "offered"

    assert admin_client.post(reverse("waitlist:waitlist-notify", args=[tail.pk])).status_code == 400


@pytest.mark.django_db
def test_respond_get_shows_offer(api_client, offer, room):
    response = api_client.get(reverse("waitlist:waitlist-respond"), {"token": str(offer.response_token)})

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "offered"
    assert data["room_name"] == room.name
    assert data["guests_count"] == 2

    assert api_client.get(reverse("waitlist:waitlist-respond"), {"token": str(uuid.uuid4())}).status_code == 404
    assert api_client.get(reverse("waitlist:waitlist-respond"), {"token": "garbage"}).status_code == 400


@pytest.mark.django_db
def test_respond_accept_creates_booking(api_client, offer, stripe_gateway):
    response = api_client.post(
        reverse("waitlist:waitlist-respond"),
        {"token": str(offer.response_token), "action": "accept"},
        format="json",
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "accepted"
    assert data["client_secret"].endswith("_secret")
    booking = Booking.objects.get(booking_number=data["booking_number"])
    assert str(booking.access_token) == data["access_token"]
    assert booking.guests_count == 2

    # the token is single-use
    again = api_client.post(
        reverse("waitlist:waitlist-respond"),
        {"token": str(offer.response_token), "action": "accept"},
        format="json",
    )
    assert again.status_code == 400


@pytest.mark.django_db
def test_respond_decline(api_client, offer):
    response = api_client.post(
        reverse("waitlist:waitlist-respond"),
        {"token": str(offer.response_token), "action": "decline"},
        format="json",
    )
    assert response.status_code == 200
    assert response.json() == {"status": "declined"}


@pytest.mark.django_db
def test_respond_to_expired_offer_is_gone(api_client, offer):
    WaitlistEntry.objects.filter(pk=offer.pk).update(offer_expires_at=timezone.now() - timedelta(minutes=1))
    url = reverse("waitlist:waitlist-respond")

    assert api_client.get(url, {"token": str(offer.response_token)}).status_code == 410
    response = api_client.post(url, {"token": str(offer.response_token), "action": "accept"}, format="json")

    assert response.status_code == 410
    assert response.json()["code"] == "offer_expired"
    offer.refresh_from_db()
    assert offer.status == WaitlistEntry.STATUS_EXPIRED
    assert offer.booking_id is None


@pytest.mark.django_db
def test_decline_after_expiry_is_gone(api_client, offer):
    WaitlistEntry.objects.filter(pk=offer.pk).update(offer_expires_at=timezone.now() - timedelta(minutes=1))
    response = api_client.post(
        reverse("waitlist:waitlist-respond"),
        {"token": str(offer.response_token), "action": "decline"},
        format="json",
    )
    assert response.status_code == 410
    offer.refresh_from_db()
    assert offer.status == WaitlistEntry.STATUS_EXPIRED


@pytest.mark.django_db
def test_expire_task(offer):
    assert expire_waitlist_offers(now=offer.offer_expires_at - timedelta(seconds=1)) == 0
    assert expire_waitlist_offers(now=offer.offer_expires_at + timedelta(seconds=1)) == 1
    offer.refresh_from_db()
    assert offer.status == WaitlistEntry.STATUS_EXPIRED
