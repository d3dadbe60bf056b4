import pytest
from django.urls import reverse

from notifications.models import EmailAuditLog
from waitlist.models import WaitlistEntry
from waitlist.services import join_waitlist
from tests.factories import RetreatFactory, RoomFactory


@pytest.mark.django_db
def test_public_retreat_listing_hides_unpublished(api_client, admin_client):
    published = RoomFactory().retreat
    RetreatFactory(is_published=False)

    response = api_client.get(reverse("retreats:retreats-list"))
    assert response.status_code == 200
    assert [r["id"] for r in response.json()["results"]] == [published.pk]
    assert response.json()["results"][0]["available_seats"] == 4

    assert admin_client.get(reverse("retreats:retreats-list")).json()["count"] == 2


@pytest.mark.django_db
def test_retreat_writes_are_admin_only(api_client, admin_client):
    payload = {
        "title": "Autumn Surf",
        "slug": "autumn-surf",
        "destination": "Nazare",
        "start_date": "2030-10-01",
        "end_date": "2030-10-08",
    }
    assert api_client.post(reverse("retreats:retreats-list"), payload, format="json").status_code in (401, 403)

    response = admin_client.post(reverse("retreats:retreats-list"), payload, format="json")
    assert response.status_code == 201

    bad = dict(payload, slug="backwards", end_date="2030-09-01")
    assert admin_client.post(reverse("retreats:retreats-list"), bad, format="json").status_code == 400


@pytest.mark.django_db
def test_new_room_starts_fully_available(admin_client):
    retreat = RetreatFactory()
    response = admin_client.post(
        reverse("retreats:rooms-list"),
        {"retreat": retreat.pk, "name": "Loft", "price": "900.00", "capacity": 3, "available": 1},
        format="json",
    )
    assert response.status_code == 201
    assert response.json()["available"] == 3


@pytest.mark.django_db
def test_capacity_increase_promotes_waitlist(admin_client, room, make_booking):
    make_booking(room, guests_count=4)
    entry = join_waitlist(room.retreat, room, first_name="Wes", email="wes@example.com", guests_count=2)

    response = admin_client.patch(reverse("retreats:rooms-detail", args=[room.pk]), {"capacity": 6}, format="json")

    assert response.status_code == 200
    assert response.json()["available"] == 2
    entry.refresh_from_db()
    assert entry.status == WaitlistEntry.STATUS_OFFERED


@pytest.mark.django_db
def test_capacity_below_booked_seats_conflicts(admin_client, room, make_booking):
    make_booking(room, guests_count=3)
    response = admin_client.patch(reverse("retreats:rooms-detail", args=[room.pk]), {"capacity": 2}, format="json")
    assert response.status_code == 409
    room.refresh_from_db()
    assert room.capacity == 4


@pytest.mark.django_db
def test_email_template_validation(admin_client):
    url = reverse("notifications:email-templates-list")
    ok = {"slug": "booking_cancelled", "language": "nl", "subject": "Boeking {{ booking_number }}", "html_body": "<p>Hallo</p>"}
    assert admin_client.post(url, ok, format="json").status_code == 201

    unknown = dict(ok, slug="newsletter", language="es")
    assert admin_client.post(url, unknown, format="json").status_code == 400

    broken = dict(ok, language="fr", html_body="{% if %}")
    response = admin_client.post(url, broken, format="json")
    assert response.status_code == 400
    assert "html_body" in response.json()

    unsupported = dict(ok, language="pt")
    response = admin_client.post(url, unsupported, format="json")
    assert response.status_code == 400
    assert "language" in response.json()


@pytest.mark.django_db
def test_email_logs_are_read_only(admin_client, room, make_booking):
    booking = make_booking(room)
    url = reverse("notifications:email-logs-list")

    response = admin_client.get(url, {"booking": booking.pk})
    assert response.status_code == 200
    assert response.json()["count"] == EmailAuditLog.objects.filter(booking=booking).count()

    log = EmailAuditLog.objects.first()
    detail = reverse("notifications:email-logs-detail", args=[log.pk])
    assert admin_client.delete(detail).status_code == 405
