"""
Notification dispatcher.

State changes in bookings, payments and waitlist call `dispatcher.send` or
`dispatcher.notify_admin` after their own writes. Delivery is best-effort:
failures are written to the audit log and logged, never raised back into the
code that triggered them.
"""
from __future__ import annotations

import logging
from email.utils import make_msgid
from smtplib import SMTPException
from typing import Any, Mapping, Optional

from django.conf import settings
from django.core.mail import BadHeaderError, EmailMultiAlternatives
from django.db import transaction
from django.template import TemplateDoesNotExist, TemplateSyntaxError
from django.utils.html import strip_tags

from core.exceptions import ConfigurationMissing, NotificationFailure
from core.site_settings import get_admin_notification_config

from .models import EmailAuditLog
from .rendering import render_email
from .resolver import fallback_template, resolve_template

logger = logging.getLogger(__name__)


def _pk(obj) -> Optional[int]:
    if obj is None:
        return None
    return getattr(obj, "pk", obj)


class NotificationDispatcher:
    def render(self, event_type: str, context: Mapping[str, Any], language: str = "en") -> tuple[str, str]:
        """
        Render using the best available template. A broken database override
        falls back to the built-in template instead of failing the send.
        """
        resolved = resolve_template(event_type, language)
        if resolved.is_override:
            try:
                return render_email(resolved.subject, context, body_source=resolved.body)
            except TemplateSyntaxError:
                logger.exception(
                    "Template override %s [%s] is invalid; using built-in template",
                    event_type,
                    resolved.language,
                )
                resolved = fallback_template(event_type)
        return render_email(resolved.subject, context, template_name=resolved.template_name)

    def send(
        self,
        event_type: str,
        to: str,
        context: Mapping[str, Any],
        language: str = "en",
        booking=None,
        payment=None,
        recipient_type: str = EmailAuditLog.RECIPIENT_CUSTOMER,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Optional[EmailAuditLog]:
        """
        Send one templated email. Returns the audit log row, or None when the
        send was handed to the Celery queue.
        """
        kwargs = dict(
            event_type=event_type,
            to=to,
            context=dict(context),
            language=language or "en",
            booking_id=_pk(booking),
            payment_id=_pk(payment),
            recipient_type=recipient_type,
            metadata=dict(metadata or {}),
        )
        if getattr(settings, "NOTIFICATIONS_ASYNC", False):
            from .tasks import send_email_task

            transaction.on_commit(lambda: send_email_task.delay(**kwargs))
            return None
        return self.deliver(**kwargs)

    def deliver(
        self,
        event_type: str,
        to: str,
        context: Mapping[str, Any],
        language: str = "en",
        booking_id: Optional[int] = None,
        payment_id: Optional[int] = None,
        recipient_type: str = EmailAuditLog.RECIPIENT_CUSTOMER,
        metadata: Optional[Mapping[str, Any]] = None,
        raise_on_failure: bool = False,
    ) -> EmailAuditLog:
        subject = ""
        try:
            if not to:
                raise NotificationFailure("No recipient address", event_type=event_type)
            try:
                subject, html = self.render(event_type, context, language)
            except (KeyError, TemplateDoesNotExist, TemplateSyntaxError) as exc:
                raise NotificationFailure(f"Could not render {event_type}: {exc}", event_type=event_type) from exc
            message_id = self._send_message(to, subject, html)
        except NotificationFailure as exc:
            logger.exception("Failed to send %s email to %s", event_type, to or "(none)")
            entry = self._audit(
                event_type,
                to,
                subject,
                EmailAuditLog.STATUS_FAILED,
                booking_id=booking_id,
                payment_id=payment_id,
                recipient_type=recipient_type,
                error_message=exc.message,
                metadata=metadata,
            )
            if raise_on_failure:
                raise
            return entry

        logger.info("Sent %s email to %s (%s)", event_type, to, message_id)
        return self._audit(
            event_type,
            to,
            subject,
            EmailAuditLog.STATUS_SENT,
            booking_id=booking_id,
            payment_id=payment_id,
            recipient_type=recipient_type,
            provider_message_id=message_id,
            metadata=metadata,
        )

    def notify_admin(
        self,
        category: str,
        event_type: str,
        context: Mapping[str, Any],
        flag: Optional[str] = None,
        booking=None,
        payment=None,
    ) -> Optional[EmailAuditLog]:
        """
        Notify the admin responsible for `category`. Recipients resolve
        category email, then general email, then ADMIN_NOTIFICATION_EMAIL;
        with none configured the send is recorded as suppressed.
        """
        config = get_admin_notification_config()
        if not config.is_enabled(flag):
            logger.info("Admin notification %s disabled by %s", event_type, flag)
            return None

        try:
            to = config.recipient_for(category)
        except ConfigurationMissing:
            logger.warning("No admin email configured; %s notification suppressed", event_type)
            return self._audit(
                event_type,
                "",
                "",
                EmailAuditLog.STATUS_SUPPRESSED,
                booking_id=_pk(booking),
                payment_id=_pk(payment),
                recipient_type=EmailAuditLog.RECIPIENT_ADMIN,
                error_message="no admin email configured",
                metadata={"category": category},
            )

        return self.send(
            event_type,
            to,
            context,
            booking=booking,
            payment=payment,
            recipient_type=EmailAuditLog.RECIPIENT_ADMIN,
            metadata={"category": category},
        )

    def _send_message(self, to: str, subject: str, html: str) -> str:
        message_id = make_msgid(domain=getattr(settings, "EMAIL_MESSAGE_ID_DOMAIN", None) or "retreats.local")
        reply_to = [settings.REPLY_TO_EMAIL] if getattr(settings, "REPLY_TO_EMAIL", "") else None
        message = EmailMultiAlternatives(
            subject=subject,
            body=strip_tags(html),
            from_email=settings.DEFAULT_FROM_EMAIL,
            to=[to],
            reply_to=reply_to,
            headers={"Message-ID": message_id},
        )
        message.attach_alternative(html, "text/html")
        try:
            sent = message.send(fail_silently=False)
        except (SMTPException, BadHeaderError, OSError) as exc:
            raise NotificationFailure(f"Email provider error: {exc}", recipient=to) from exc
        if not sent:
            raise NotificationFailure("Email provider accepted no messages", recipient=to)
        return message_id

    def _audit(
        self,
        event_type: str,
        to: str,
        subject: str,
        status: str,
        booking_id=None,
        payment_id=None,
        recipient_type: str = EmailAuditLog.RECIPIENT_CUSTOMER,
        error_message: str = "",
        provider_message_id: str = "",
        metadata=None,
    ) -> EmailAuditLog:
        return EmailAuditLog.objects.create(
            email_type=event_type,
            recipient=to or "",
            recipient_type=recipient_type,
            subject=subject or "",
            status=status,
            booking_id=booking_id,
            payment_id=payment_id,
            error_message=error_message,
            provider_message_id=provider_message_id,
            metadata=dict(metadata or {}),
        )


dispatcher = NotificationDispatcher()
