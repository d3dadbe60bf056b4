from __future__ import annotations

from datetime import date
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone


class Payment(models.Model):
    """
    One money movement on a booking. Refunds are appended as negative rows of
    type `refund`; existing rows are never rewritten to reflect a refund.
    """

    STATUS_PENDING = "pending"
    STATUS_SUCCEEDED = "succeeded"
    STATUS_FAILED = "failed"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_SUCCEEDED, "Succeeded"),
        (STATUS_FAILED, "Failed"),
    ]

    TYPE_DEPOSIT = "deposit"
    TYPE_INSTALLMENT = "installment"
    TYPE_FULL = "full"
    TYPE_REFUND = "refund"

    TYPE_CHOICES = [
        (TYPE_DEPOSIT, "Deposit"),
        (TYPE_INSTALLMENT, "Installment"),
        (TYPE_FULL, "Full payment"),
        (TYPE_REFUND, "Refund"),
    ]

    booking = models.ForeignKey("bookings.Booking", on_delete=models.PROTECT, related_name="payments")
    schedule_entry = models.ForeignKey(
        "payments.PaymentScheduleEntry",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments",
    )
    amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        help_text="Negative for refunds",
    )
    currency = models.CharField(max_length=3, default="eur")
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default=STATUS_PENDING)
    payment_type = models.CharField(max_length=12, choices=TYPE_CHOICES)
    scheduled_due_date = models.DateField(null=True, blank=True)

    stripe_payment_intent_id = models.CharField(max_length=255, blank=True, db_index=True)
    stripe_refund_id = models.CharField(
        max_length=255,
        blank=True,
        help_text="Stripe refund ID (refund rows only)",
    )
    failure_reason = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Admin who recorded the payment or issued the refund",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["booking", "status"], name="payment_booking_status_idx"),
            models.Index(fields=["payment_type"], name="payment_type_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["stripe_refund_id"],
                condition=~models.Q(stripe_refund_id=""),
                name="payment_unique_stripe_refund",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.get_payment_type_display()} {self.amount} {self.currency.upper()} ({self.status})"

    @property
    def is_refund(self) -> bool:
        return self.payment_type == self.TYPE_REFUND


class PaymentScheduleEntryQuerySet(models.QuerySet):
    OPEN_STATUSES = ("pending", "processing", "failed")

    def open(self):
        return self.filter(status__in=self.OPEN_STATUSES)

    def cancel_open(self, reason: str) -> int:
        """Stop every unpaid entry; used when the booking is cancelled."""
        return self.open().update(
            status=PaymentScheduleEntry.STATUS_CANCELLED,
            failure_reason=reason,
            updated_at=timezone.now(),
        )

    def reset_for_restore(self, due_date: date, deadline) -> int:
        """Reopen failed/cancelled entries with a new due date after a manual restore."""
        return self.filter(
            status__in=[PaymentScheduleEntry.STATUS_FAILED, PaymentScheduleEntry.STATUS_CANCELLED]
        ).update(
            status=PaymentScheduleEntry.STATUS_PENDING,
            due_date=due_date,
            payment_deadline=deadline,
            attempts=0,
            failed_at=None,
            reminder_stage="",
            failure_reason="",
            last_reminder_sent_at=None,
            updated_at=timezone.now(),
        )


class PaymentScheduleEntry(models.Model):
    """
    One line of a booking's payment plan (deposit is #1). Generated once at
    booking time; afterwards only status tracking and due dates change.
    """

    STATUS_PENDING = "pending"
    STATUS_PROCESSING = "processing"
    STATUS_PAID = "paid"
    STATUS_FAILED = "failed"
    STATUS_CANCELLED = "cancelled"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_PROCESSING, "Processing"),
        (STATUS_PAID, "Paid"),
        (STATUS_FAILED, "Failed"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    STAGE_NONE = ""
    STAGE_INITIAL = "initial"
    STAGE_THREE_DAYS = "3_day"
    STAGE_ONE_DAY = "1_day"

    STAGE_CHOICES = [
        (STAGE_NONE, "None"),
        (STAGE_INITIAL, "Failure notice sent"),
        (STAGE_THREE_DAYS, "3 days left reminder sent"),
        (STAGE_ONE_DAY, "1 day left reminder sent"),
    ]

    booking = models.ForeignKey("bookings.Booking", on_delete=models.PROTECT, related_name="schedule")
    number = models.PositiveSmallIntegerField(help_text="1-based; the deposit is #1")
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    due_date = models.DateField()
    description = models.CharField(max_length=120)

    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default=STATUS_PENDING)
    attempts = models.PositiveSmallIntegerField(default=0)
    max_attempts = models.PositiveSmallIntegerField(default=3)
    last_attempt_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.TextField(blank=True)

    failed_at = models.DateTimeField(null=True, blank=True, help_text="First failure; starts the grace window")
    payment_deadline = models.DateTimeField(null=True, blank=True, help_text="Auto-cancel after this moment")
    reminder_stage = models.CharField(max_length=10, choices=STAGE_CHOICES, blank=True, default=STAGE_NONE)
    last_reminder_sent_at = models.DateTimeField(null=True, blank=True)

    stripe_payment_intent_id = models.CharField(max_length=255, blank=True, db_index=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = PaymentScheduleEntryQuerySet.as_manager()

    class Meta:
        ordering = ["booking_id", "number"]
        verbose_name_plural = "payment schedule entries"
        constraints = [
            models.UniqueConstraint(fields=["booking", "number"], name="schedule_unique_booking_number"),
        ]
        indexes = [
            models.Index(fields=["status", "due_date"], name="schedule_status_due_idx"),
            models.Index(fields=["status", "payment_deadline"], name="schedule_status_deadline_idx"),
        ]

    def __str__(self) -> str:
        return f"#{self.number} {self.description} {self.amount} due {self.due_date} ({self.status})"

    @property
    def payment_type(self) -> str:
        if self.number == 1:
            if self.booking.total_amount <= self.amount:
                return Payment.TYPE_FULL
            return Payment.TYPE_DEPOSIT
        return Payment.TYPE_INSTALLMENT


class StripeWebhookEvent(models.Model):
    """
    Tracks Stripe webhook events for idempotency and audit trail.
    Prevents duplicate processing of webhook events.
    """

    stripe_event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe event ID"
    )

    event_type = models.CharField(
        max_length=100,
        help_text="Stripe event type (e.g., payment_intent.succeeded)"
    )

    processed = models.BooleanField(
        default=False,
        help_text="Whether this event has been successfully processed"
    )

    processing_attempts = models.PositiveIntegerField(
        default=0,
        help_text="Number of processing attempts"
    )

    event_data = models.JSONField(
        help_text="Full Stripe event data"
    )

    last_error = models.TextField(
        blank=True,
        help_text="Last processing error if any"
    )

    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="webhook_events",
        help_text="Booking the event was applied to, if any"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When event was successfully processed"
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["event_type"], name="webhook_event_type_idx"),
            models.Index(fields=["processed"], name="webhook_processed_idx"),
            models.Index(fields=["-created_at"], name="webhook_created_idx"),
        ]

    def __str__(self):
        status = "processed" if self.processed else "pending"
        return f"[{status}] {self.event_type} - {self.stripe_event_id}"

    def mark_processed(self):
        """Mark event as successfully processed."""
        self.processed = True
        self.processed_at = timezone.now()
        self.save(update_fields=["processed", "processed_at", "booking"])

    def increment_attempts(self, error_message=None):
        """Increment processing attempts and optionally log error."""
        self.processing_attempts += 1
        if error_message:
            self.last_error = error_message
        self.save(update_fields=["processing_attempts", "last_error"])


def succeeded_total(payments) -> Decimal:
    return sum(
        (p.amount for p in payments if p.status == Payment.STATUS_SUCCEEDED and not p.is_refund),
        Decimal("0.00"),
    )


def refunded_total(payments) -> Decimal:
    return sum((abs(p.amount) for p in payments if p.is_refund), Decimal("0.00"))
