from __future__ import annotations

import secrets
import string
import uuid
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from core.exceptions import InvalidTransition

BOOKING_NUMBER_ALPHABET = string.ascii_uppercase + string.digits


def generate_booking_number(now=None) -> str:
    now = now or timezone.now()
    suffix = "".join(secrets.choice(BOOKING_NUMBER_ALPHABET) for _ in range(6))
    return f"RB-{now:%y%m%d}-{suffix}"


class Booking(models.Model):
    """
    A guest's reservation of seats in a room of a retreat.

    Status moves only through `transition_to`; money fields are derived from
    the payment ledger by payments.refunds.recalculate_booking_totals.
    """

    STATUS_PENDING = "pending"
    STATUS_CONFIRMED = "confirmed"
    STATUS_COMPLETED = "completed"
    STATUS_CANCELLED = "cancelled"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_CONFIRMED, "Confirmed"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    # cancelled -> pending is the restore path
    VALID_STATUS_TRANSITIONS = {
        STATUS_PENDING: {STATUS_CONFIRMED, STATUS_CANCELLED},
        STATUS_CONFIRMED: {STATUS_COMPLETED, STATUS_CANCELLED},
        STATUS_COMPLETED: set(),
        STATUS_CANCELLED: {STATUS_PENDING},
    }

    PAYMENT_UNPAID = "unpaid"
    PAYMENT_DEPOSIT = "deposit"
    PAYMENT_PAID = "paid"
    PAYMENT_PARTIAL_REFUND = "partial_refund"
    PAYMENT_REFUNDED = "refunded"

    PAYMENT_STATUS_CHOICES = [
        (PAYMENT_UNPAID, "Unpaid"),
        (PAYMENT_DEPOSIT, "Deposit paid"),
        (PAYMENT_PAID, "Paid in full"),
        (PAYMENT_PARTIAL_REFUND, "Partially refunded"),
        (PAYMENT_REFUNDED, "Refunded"),
    ]

    PLAN_DEPOSIT = "deposit"
    PLAN_FULL = "full"

    PLAN_CHOICES = [
        (PLAN_DEPOSIT, "Deposit + installments"),
        (PLAN_FULL, "Pay in full"),
    ]

    DISCOUNT_EARLY_BIRD = "early_bird"
    DISCOUNT_PROMO_CODE = "promo_code"

    DISCOUNT_SOURCE_CHOICES = [
        (DISCOUNT_EARLY_BIRD, "Early bird"),
        (DISCOUNT_PROMO_CODE, "Promo code"),
    ]

    booking_number = models.CharField(max_length=20, unique=True, blank=True, editable=False)
    access_token = models.UUIDField(
        default=uuid.uuid4,
        unique=True,
        editable=False,
        help_text="Secret for the guest-facing my-booking link",
    )

    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField(db_index=True)
    phone = models.CharField(max_length=40, blank=True)
    language = models.CharField(max_length=8, default="en")

    retreat = models.ForeignKey("retreats.Retreat", on_delete=models.PROTECT, related_name="bookings")
    room = models.ForeignKey(
        "retreats.Room",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="bookings",
    )
    guests_count = models.PositiveSmallIntegerField(default=1, validators=[MinValueValidator(1)])
    seats_held = models.BooleanField(
        default=False,
        help_text="Whether guests_count seats are currently taken from the room",
    )

    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    payment_status = models.CharField(
        max_length=16,
        choices=PAYMENT_STATUS_CHOICES,
        default=PAYMENT_UNPAID,
        db_index=True,
    )
    payment_plan = models.CharField(max_length=10, choices=PLAN_CHOICES, default=PLAN_DEPOSIT)

    total_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    deposit_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    balance_due = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    is_early_bird = models.BooleanField(default=False)
    early_bird_discount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    discount_source = models.CharField(max_length=16, choices=DISCOUNT_SOURCE_CHOICES, blank=True)
    promo_code = models.ForeignKey(
        "promotions.PromoCode",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="bookings",
    )
    promo_discount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))

    check_in_date = models.DateField(null=True, blank=True)
    check_out_date = models.DateField(null=True, blank=True)

    stripe_customer_id = models.CharField(max_length=255, blank=True)
    stripe_payment_method_id = models.CharField(max_length=255, blank=True)

    internal_notes = models.TextField(blank=True)
    cancellation_reason = models.TextField(blank=True)

    confirmed_at = models.DateTimeField(null=True, blank=True)
    confirmation_sent_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    restored_at = models.DateTimeField(null=True, blank=True)
    followup_sent_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["retreat", "status"], name="booking_retreat_status_idx"),
            models.Index(fields=["room", "status"], name="booking_room_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.booking_number} {self.full_name} ({self.status})"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def clean(self):
        if self.room_id and self.retreat_id and self.room.retreat_id != self.retreat_id:
            raise ValidationError({"room": "Room belongs to a different retreat."})

    def save(self, *args, **kwargs):
        if not self.booking_number:
            self.booking_number = generate_booking_number()
            while Booking.objects.filter(booking_number=self.booking_number).exists():
                self.booking_number = generate_booking_number()
        if self.retreat_id and not self.check_in_date:
            self.check_in_date = self.retreat.start_date
            self.check_out_date = self.retreat.end_date
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Bookings are never deleted; cancel the booking instead.")

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in self.VALID_STATUS_TRANSITIONS.get(self.status, set())

    def transition_to(
        self,
        new_status: str,
        by_user=None,
        action: str | None = None,
        reason: str = "",
        metadata: dict | None = None,
    ) -> bool:
        """
        Perform a validated status transition and record history + timestamps.
        Returns False when the booking is already in `new_status`.
        """
        from .signals import booking_status_changed

        old_status = self.status
        if new_status == old_status:
            return False
        if not self.can_transition_to(new_status):
            raise InvalidTransition(old_status, new_status)

        now = timezone.now()
        update_fields = ["status", "updated_at"]
        if new_status == self.STATUS_CONFIRMED and not self.confirmed_at:
            self.confirmed_at = now
            update_fields.append("confirmed_at")
        elif new_status == self.STATUS_COMPLETED:
            self.completed_at = now
            update_fields.append("completed_at")
        elif new_status == self.STATUS_CANCELLED:
            self.cancelled_at = now
            self.cancellation_reason = reason
            update_fields += ["cancelled_at", "cancellation_reason"]
        elif new_status == self.STATUS_PENDING and old_status == self.STATUS_CANCELLED:
            self.restored_at = now
            self.cancelled_at = None
            self.cancellation_reason = ""
            update_fields += ["restored_at", "cancelled_at", "cancellation_reason"]

        self.status = new_status
        self.save(update_fields=update_fields)

        if action is None:
            action = {
                self.STATUS_CANCELLED: BookingStatusChange.ACTION_CANCELLATION,
                self.STATUS_PENDING: BookingStatusChange.ACTION_RESTORE,
            }.get(new_status, BookingStatusChange.ACTION_STATUS_CHANGE)

        BookingStatusChange.record(
            self,
            old_status=old_status,
            old_payment_status=self.payment_status,
            action=action,
            reason=reason,
            by_user=by_user,
            metadata=metadata,
        )
        booking_status_changed.send(sender=Booking, booking=self, old=old_status, new=new_status, by_user=by_user)
        return True


class BookingStatusChange(models.Model):
    """Append-only audit trail of status, payment and room changes."""

    ACTION_STATUS_CHANGE = "status_change"
    ACTION_CANCELLATION = "cancellation"
    ACTION_REFUND = "refund"
    ACTION_PAYMENT_RECEIVED = "payment_received"
    ACTION_ROOM_CHANGE = "room_change"
    ACTION_RESTORE = "restore"

    ACTION_CHOICES = [
        (ACTION_STATUS_CHANGE, "Status change"),
        (ACTION_CANCELLATION, "Cancellation"),
        (ACTION_REFUND, "Refund"),
        (ACTION_PAYMENT_RECEIVED, "Payment received"),
        (ACTION_ROOM_CHANGE, "Room change"),
        (ACTION_RESTORE, "Restore"),
    ]

    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name="status_changes")
    old_status = models.CharField(max_length=12, blank=True)
    new_status = models.CharField(max_length=12, blank=True)
    old_payment_status = models.CharField(max_length=16, blank=True)
    new_payment_status = models.CharField(max_length=16, blank=True)
    action = models.CharField(max_length=20, choices=ACTION_CHOICES, default=ACTION_STATUS_CHANGE)
    reason = models.TextField(blank=True)
    changed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [models.Index(fields=["booking", "-created_at"], name="bookingchange_booking_idx")]

    def __str__(self) -> str:
        return f"{self.booking_id}: {self.old_status or '-'} -> {self.new_status or '-'} ({self.action})"

    @classmethod
    def record(
        cls,
        booking: Booking,
        old_status: str | None = None,
        old_payment_status: str | None = None,
        action: str = ACTION_STATUS_CHANGE,
        reason: str = "",
        by_user=None,
        metadata: dict | None = None,
    ) -> "BookingStatusChange":
        if by_user is not None and not getattr(by_user, "is_authenticated", False):
            by_user = None
        return cls.objects.create(
            booking=booking,
            old_status=old_status if old_status is not None else booking.status,
            new_status=booking.status,
            old_payment_status=old_payment_status if old_payment_status is not None else booking.payment_status,
            new_payment_status=booking.payment_status,
            action=action,
            reason=reason or "",
            changed_by=by_user,
            metadata=metadata or {},
        )
