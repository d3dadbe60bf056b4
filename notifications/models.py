from django.core.exceptions import ValidationError
from django.db import models


class EmailTemplate(models.Model):
    """
    Database override for one of the built-in email templates.

    `subject` and `html_body` use Django template syntax; variables are
    HTML-escaped unless they are on the renderer's raw allow-list.
    """

    slug = models.SlugField(max_length=64, help_text="Event type, e.g. booking_confirmation")
    language = models.CharField(max_length=8, default="en")
    subject = models.CharField(max_length=255)
    html_body = models.TextField()
    is_active = models.BooleanField(default=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["slug", "language"]
        constraints = [
            models.UniqueConstraint(fields=["slug", "language"], name="email_template_unique_slug_language"),
        ]

    def __str__(self):
        return f"{self.slug} [{self.language}]"


class EmailAuditLog(models.Model):
    """Append-only record of every email send attempt."""

    STATUS_SENT = "sent"
    STATUS_FAILED = "failed"
    STATUS_SUPPRESSED = "suppressed"

    STATUS_CHOICES = [
        (STATUS_SENT, "Sent"),
        (STATUS_FAILED, "Failed"),
        (STATUS_SUPPRESSED, "Suppressed"),
    ]

    RECIPIENT_CUSTOMER = "customer"
    RECIPIENT_ADMIN = "admin"

    RECIPIENT_CHOICES = [
        (RECIPIENT_CUSTOMER, "Customer"),
        (RECIPIENT_ADMIN, "Admin"),
    ]

    email_type = models.CharField(max_length=64, db_index=True)
    recipient = models.CharField(max_length=254, blank=True)
    recipient_type = models.CharField(max_length=10, choices=RECIPIENT_CHOICES, default=RECIPIENT_CUSTOMER)
    subject = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=12, choices=STATUS_CHOICES)
    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="email_logs",
    )
    payment = models.ForeignKey(
        "payments.Payment",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="email_logs",
    )
    error_message = models.TextField(blank=True)
    provider_message_id = models.CharField(max_length=255, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["status", "-created_at"], name="emaillog_status_created_idx"),
            models.Index(fields=["recipient"], name="emaillog_recipient_idx"),
        ]

    def __str__(self):
        return f"{self.email_type} -> {self.recipient or '(none)'} [{self.status}]"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("Email audit log entries cannot be modified.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Email audit log entries cannot be deleted.")
