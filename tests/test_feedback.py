import csv
import io
import uuid
from datetime import timedelta

import pytest
from django.core.management import call_command
from django.urls import reverse
from django.utils import timezone

from bookings.lifecycle import cancel_booking
from bookings.models import Booking
from feedback.models import RetreatFeedback
from feedback.services import CSV_HEADERS, filter_by_band, nps, nps_summary
from feedback.tasks import send_post_retreat_followups
from notifications.models import EmailAuditLog
from tests.factories import BookingFactory, RetreatFactory, RetreatFeedbackFactory, RoomFactory


def test_nps_math():
    assert nps(0, 0, 0) == 0
    assert nps(7, 1, 10) == 60
    assert nps(1, 3, 4) == -50


def test_nps_rounds_halves_up():
    assert nps(1, 0, 8) == 13
    assert nps(0, 1, 8) == -12
    assert nps(5, 0, 8) == 63
    assert nps(2, 1, 3) == 33


@pytest.mark.django_db
def test_summary_counts_and_averages():
    RetreatFeedbackFactory(recommend_score=10, overall_rating=5, food_rating=4)
    RetreatFeedbackFactory(recommend_score=9, overall_rating=4, food_rating=2)
    RetreatFeedbackFactory(recommend_score=7, overall_rating=3, testimonial="Loved it", allow_testimonial_use=True)
    RetreatFeedbackFactory(recommend_score=2, overall_rating=1)
    RetreatFeedbackFactory(recommend_score=None, overall_rating=None)

    summary = nps_summary(RetreatFeedback.objects.all())

    assert summary["total"] == 5
    assert summary["respondents"] == 4
    assert (summary["promoters"], summary["passives"], summary["detractors"]) == (2, 1, 1)
    assert summary["nps"] == 25
    assert summary["with_testimonials"] == 1
    assert summary["averages"]["overall"] == 3.25
    assert summary["averages"]["food"] == 3.0
    assert summary["averages"]["surfing"] == 0


@pytest.mark.django_db
def test_rating_bands():
    for rating in (5, 4, 3, 2, 1):
        RetreatFeedbackFactory(overall_rating=rating)
    qs = RetreatFeedback.objects.all()

    assert sorted(filter_by_band(qs, "high").values_list("overall_rating", flat=True)) == [4, 5]
    assert list(filter_by_band(qs, "medium").values_list("overall_rating", flat=True)) == [3]
    assert sorted(filter_by_band(qs, "low").values_list("overall_rating", flat=True)) == [1, 2]
    assert filter_by_band(qs, "all").count() == 5
    with pytest.raises(ValueError):
        filter_by_band(qs, "excellent")


@pytest.mark.django_db
def test_submit_feedback_with_booking_token(api_client):
    booking = BookingFactory()
    url = reverse("feedback:feedback-list")
    payload = {"token": str(booking.access_token), "overall_rating": 5, "recommend_score": 9, "highlights": "Waves"}

    response = api_client.post(url, payload, format="json")
    assert response.status_code == 201
    assert response.json() == {"success": True}

    feedback = RetreatFeedback.objects.get(booking=booking)
    assert feedback.retreat_id == booking.retreat_id
    assert feedback.email == booking.email

    duplicate = api_client.post(url, payload, format="json")
    assert duplicate.status_code == 400
    assert RetreatFeedback.objects.count() == 1


@pytest.mark.django_db
def test_submit_feedback_rejections(api_client):
    url = reverse("feedback:feedback-list")
    assert api_client.post(url, {"token": str(uuid.uuid4()), "overall_rating": 4}, format="json").status_code == 404

    booking = BookingFactory()
    assert api_client.post(url, {"token": str(booking.access_token), "overall_rating": 9}, format="json").status_code == 400

    cancel_booking(booking, send_email=False)
    assert api_client.post(url, {"token": str(booking.access_token), "overall_rating": 4}, format="json").status_code == 400


@pytest.mark.django_db
def test_admin_summary_and_band_filter(api_client, admin_client):
    RetreatFeedbackFactory(overall_rating=5, recommend_score=10)
    RetreatFeedbackFactory(overall_rating=2, recommend_score=3)

    assert api_client.get(reverse("feedback:feedback-list")).status_code in (401, 403)

    summary = admin_client.get(reverse("feedback:feedback-summary")).json()
    assert summary["nps"] == 0
    assert summary["respondents"] == 2

    low = admin_client.get(reverse("feedback:feedback-summary"), {"rating": "low"}).json()
    assert low["total"] == 1
    assert low["nps"] == -100

    listing = admin_client.get(reverse("feedback:feedback-list"), {"rating": "high"}).json()
    assert [row["overall_rating"] for row in listing["results"]] == [5]

    assert admin_client.get(reverse("feedback:feedback-list"), {"rating": "bogus"}).json()["count"] == 0


@pytest.mark.django_db
def test_admin_csv_export(admin_client):
    feedback = RetreatFeedbackFactory(overall_rating=4, testimonial='Said "wow", twice', allow_testimonial_use=True)

    response = admin_client.get(reverse("feedback:feedback-export"))

    assert response.status_code == 200
    assert response["Content-Type"].startswith("text/csv")
    assert "feedback-export-" in response["Content-Disposition"]
    rows = list(csv.reader(io.StringIO(response.content.decode())))
    assert rows[0] == CSV_HEADERS
    assert rows[1][1] == feedback.booking.full_name
    assert rows[1][4] == "4"
    assert rows[1][12] == 'Said "wow", twice'
    assert rows[1][13] == "Yes"


@pytest.mark.django_db
def test_csv_export_neutralises_formulas(admin_client):
    RetreatFeedbackFactory(
        highlights="=HYPERLINK(\"http://evil.example\",\"click\")",
        improvements="+1 more surf session",
        testimonial="@everyone loved it",
        booking__first_name="-Ana",
    )

    response = admin_client.get(reverse("feedback:feedback-export"))

    row = list(csv.reader(io.StringIO(response.content.decode())))[1]
    assert row[1].startswith("'-Ana")
    assert row[10] == "'=HYPERLINK(\"http://evil.example\",\"click\")"
    assert row[11] == "'+1 more surf session"
    assert row[12] == "'@everyone loved it"
    assert row[4] == "5"


def _finished_booking(ended_days_ago=2, **kwargs):
    today = timezone.localdate()
    end = today - timedelta(days=ended_days_ago)
    room = RoomFactory(retreat=RetreatFactory(destination="Taghazout", start_date=end - timedelta(days=7), end_date=end))
    kwargs.setdefault("status", Booking.STATUS_CONFIRMED)
    kwargs.setdefault("payment_status", Booking.PAYMENT_PAID)
    return BookingFactory(room=room, **kwargs)


@pytest.mark.django_db
def test_followup_asks_paid_guests_for_feedback_once(mailoutbox):
    booking = _finished_booking(language="de")

    assert send_post_retreat_followups() == 1
    assert send_post_retreat_followups() == 0

    log = EmailAuditLog.objects.get(email_type="post_retreat_followup")
    assert log.booking == booking
    assert log.status == EmailAuditLog.STATUS_SENT
    assert "Taghazout" in log.subject
    [message] = mailoutbox
    assert f"/feedback?token={booking.access_token}" in message.alternatives[0][0]
    booking.refresh_from_db()
    assert booking.followup_sent_at is not None


@pytest.mark.django_db
def test_followup_skips_bookings_that_do_not_qualify():
    _finished_booking(ended_days_ago=1)
    _finished_booking(ended_days_ago=3)
    _finished_booking(payment_status=Booking.PAYMENT_DEPOSIT)
    _finished_booking(status=Booking.STATUS_CANCELLED)
    RetreatFeedbackFactory(booking=_finished_booking())
    completed = _finished_booking(status=Booking.STATUS_COMPLETED)

    assert send_post_retreat_followups() == 1
    assert EmailAuditLog.objects.get(email_type="post_retreat_followup").booking == completed


@pytest.mark.django_db
def test_send_followups_command():
    _finished_booking()
    out = io.StringIO()

    call_command("send_followups", stdout=out)

    assert "Sent 1 follow-up email(s)" in out.getvalue()
