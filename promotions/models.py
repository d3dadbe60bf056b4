from __future__ import annotations

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


class PromoCode(models.Model):
    """
    A discount guests can enter at checkout. `current_uses` only moves through
    promotions.services so concurrent checkouts cannot exceed `max_uses`.
    """

    TYPE_PERCENTAGE = "percentage"
    TYPE_FIXED = "fixed_amount"

    TYPE_CHOICES = [
        (TYPE_PERCENTAGE, "Percentage"),
        (TYPE_FIXED, "Fixed amount"),
    ]

    SCOPE_GLOBAL = "global"
    SCOPE_RETREAT = "retreat"
    SCOPE_ROOM = "room"

    SCOPE_CHOICES = [
        (SCOPE_GLOBAL, "All retreats"),
        (SCOPE_RETREAT, "One retreat"),
        (SCOPE_ROOM, "One room"),
    ]

    code = models.CharField(max_length=50, unique=True)
    description = models.TextField(blank=True)
    discount_type = models.CharField(max_length=16, choices=TYPE_CHOICES, default=TYPE_PERCENTAGE)
    discount_value = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
        help_text="Percent off for percentage codes, amount off for fixed codes",
    )
    scope = models.CharField(max_length=10, choices=SCOPE_CHOICES, default=SCOPE_GLOBAL)
    retreat = models.ForeignKey(
        "retreats.Retreat",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="promo_codes",
    )
    room = models.ForeignKey(
        "retreats.Room",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="promo_codes",
    )
    valid_from = models.DateField(default=timezone.localdate)
    valid_until = models.DateField(null=True, blank=True)
    max_uses = models.PositiveIntegerField(null=True, blank=True, help_text="Empty means unlimited")
    current_uses = models.PositiveIntegerField(default=0, editable=False)
    min_order_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return self.code

    def clean(self):
        errors = {}
        if self.discount_type == self.TYPE_PERCENTAGE and self.discount_value and self.discount_value > 100:
            errors["discount_value"] = "Percentage discount cannot exceed 100%."
        if self.scope == self.SCOPE_RETREAT and not self.retreat_id:
            errors["retreat"] = "A retreat is required for retreat-scoped codes."
        if self.scope == self.SCOPE_ROOM:
            if not self.room_id:
                errors["room"] = "A room is required for room-scoped codes."
            elif self.retreat_id and self.room.retreat_id != self.retreat_id:
                errors["room"] = "Room belongs to a different retreat."
        if self.valid_until and self.valid_from and self.valid_until < self.valid_from:
            errors["valid_until"] = "End date must be on or after the start date."
        if errors:
            raise ValidationError(errors)

    def save(self, *args, **kwargs):
        self.code = normalize_code(self.code)
        if self.scope == self.SCOPE_ROOM and self.room_id and not self.retreat_id:
            self.retreat_id = self.room.retreat_id
        super().save(*args, **kwargs)


class PromoCodeRedemption(models.Model):
    """One use of a promo code by a booking; removed again if the booking is cancelled."""

    promo_code = models.ForeignKey(PromoCode, on_delete=models.PROTECT, related_name="redemptions")
    booking = models.OneToOneField(
        "bookings.Booking",
        on_delete=models.CASCADE,
        related_name="promo_redemption",
    )
    original_amount = models.DecimalField(max_digits=10, decimal_places=2)
    discount_applied = models.DecimalField(max_digits=10, decimal_places=2)
    final_amount = models.DecimalField(max_digits=10, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.promo_code.code} on {self.booking_id}"
