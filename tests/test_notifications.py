from smtplib import SMTPException
from unittest import mock

import pytest
from django.core import mail
from django.core.exceptions import ValidationError
from django.test import override_settings

from core.models import SiteSetting
from notifications import resolver
from notifications.dispatcher import dispatcher
from notifications.models import EmailAuditLog, EmailTemplate
from notifications.rendering import render_email


def _ctx(**extra):
    ctx = {
        "first_name": "Ana",
        "booking_number": "RB-250101-ABCDEF",
        "retreat_title": "Surf Week",
        "start_date": "01 July 2025",
    }
    ctx.update(extra)
    return ctx


def test_render_escapes_guest_text_but_not_urls():
    subject, html = render_email(
        "Hi {{ first_name }}",
        {"first_name": "<b>Ana</b>", "my_booking_url": "https://x.test/?a=1&b=2", "schedule_html": "<table></table>"},
        body_source="{{ first_name }} {{ my_booking_url }} {{ schedule_html }}",
    )
    assert subject == "Hi <b>Ana</b>"
    assert "&lt;b&gt;Ana&lt;/b&gt;" in html
    assert "https://x.test/?a=1&b=2" in html
    assert "<table></table>" in html


@pytest.mark.django_db
def test_resolver_prefers_language_then_english_then_file():
    resolved = resolver.resolve_template(resolver.BOOKING_CANCELLED, "de")
    assert resolved.is_override is False
    assert resolved.template_name == "emails/booking_cancelled.html"

    EmailTemplate.objects.create(slug=resolver.BOOKING_CANCELLED, language="en", subject="EN", html_body="en")
    assert resolver.resolve_template(resolver.BOOKING_CANCELLED, "de").subject == "EN"

    EmailTemplate.objects.create(slug=resolver.BOOKING_CANCELLED, language="de", subject="DE", html_body="de")
    assert resolver.resolve_template(resolver.BOOKING_CANCELLED, "de").subject == "DE"

    EmailTemplate.objects.filter(language="de").update(is_active=False)
    assert resolver.resolve_template(resolver.BOOKING_CANCELLED, "de").subject == "EN"


def test_unknown_event_type_has_no_fallback():
    with pytest.raises(KeyError):
        resolver.fallback_template("no_such_email")


@pytest.mark.django_db
def test_send_writes_audit_and_email():
    log = dispatcher.send(resolver.BOOKING_CANCELLED, "ana@example.com", _ctx(reason="Storm"))

    assert log.status == EmailAuditLog.STATUS_SENT
    assert log.subject == "Your booking RB-250101-ABCDEF has been cancelled"
    assert len(mail.outbox) == 1
    message = mail.outbox[0]
    assert message.to == ["ana@example.com"]
    assert "Storm" in message.alternatives[0][0]


@pytest.mark.django_db
def test_broken_override_falls_back_to_builtin():
    EmailTemplate.objects.create(
        slug=resolver.BOOKING_CANCELLED, language="en", subject="Broken", html_body="{% if %}"
    )
    log = dispatcher.send(resolver.BOOKING_CANCELLED, "ana@example.com", _ctx())
    assert log.status == EmailAuditLog.STATUS_SENT
    assert log.subject.startswith("Your booking")


@pytest.mark.django_db
def test_provider_failure_is_audited_not_raised():
    with mock.patch("django.core.mail.EmailMultiAlternatives.send", side_effect=SMTPException("down")):
        log = dispatcher.send(resolver.BOOKING_CANCELLED, "ana@example.com", _ctx())
    assert log.status == EmailAuditLog.STATUS_FAILED
    assert "down" in log.error_message


@pytest.mark.django_db
def test_missing_recipient_is_audited_as_failed():
    log = dispatcher.send(resolver.BOOKING_CANCELLED, "", _ctx())
    assert log.status == EmailAuditLog.STATUS_FAILED
    assert len(mail.outbox) == 0


@pytest.mark.django_db
def test_admin_notification_suppressed_without_address():
    log = dispatcher.notify_admin("bookings", resolver.ADMIN_NEW_BOOKING, _ctx(guest_name="Ana Silva"))
    assert log.status == EmailAuditLog.STATUS_SUPPRESSED
    assert log.recipient_type == EmailAuditLog.RECIPIENT_ADMIN
    assert len(mail.outbox) == 0


@pytest.mark.django_db
def test_admin_notification_routes_by_category():
    SiteSetting.objects.create(
        key=SiteSetting.KEY_ADMIN_NOTIFICATIONS,
        value={"general_email": "ops@example.com", "payments_email": "money@example.com"},
    )
    ctx = _ctx(guest_name="Ana Silva", amount="100.00 EUR")
    assert dispatcher.notify_admin("payments", resolver.ADMIN_PAYMENT_RECEIVED, ctx).recipient == "money@example.com"
    assert dispatcher.notify_admin("bookings", resolver.ADMIN_NEW_BOOKING, ctx).recipient == "ops@example.com"


@pytest.mark.django_db
@override_settings(ADMIN_NOTIFICATION_EMAIL="fallback@example.com")
def test_admin_notification_flag_and_env_fallback():
    ctx = _ctx(guest_name="Ana Silva")
    assert dispatcher.notify_admin("bookings", resolver.ADMIN_NEW_BOOKING, ctx).recipient == "fallback@example.com"

    SiteSetting.objects.create(key=SiteSetting.KEY_ADMIN_NOTIFICATIONS, value={"notify_on_new_booking": False})
    assert dispatcher.notify_admin("bookings", resolver.ADMIN_NEW_BOOKING, ctx, flag="notify_on_new_booking") is None


@pytest.mark.django_db
def test_audit_log_is_append_only():
    log = dispatcher.send(resolver.BOOKING_CANCELLED, "ana@example.com", _ctx())
    log.subject = "changed"
    with pytest.raises(ValidationError):
        log.save()
    with pytest.raises(ValidationError):
        log.delete()


@pytest.mark.django_db
@override_settings(NOTIFICATIONS_ASYNC=True)
def test_async_send_is_queued_after_commit(django_capture_on_commit_callbacks):
    with mock.patch("notifications.tasks.send_email_task.delay") as delay:
        with django_capture_on_commit_callbacks(execute=True):
            assert dispatcher.send(resolver.BOOKING_CANCELLED, "ana@example.com", _ctx()) is None
    delay.assert_called_once()
    assert delay.call_args.kwargs["event_type"] == resolver.BOOKING_CANCELLED
