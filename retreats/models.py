from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone


class Retreat(models.Model):
    title = models.CharField(max_length=200)
    slug = models.SlugField(max_length=200, unique=True)
    destination = models.CharField(max_length=200)
    start_date = models.DateField()
    end_date = models.DateField()

    installment_count = models.PositiveSmallIntegerField(
        default=2,
        help_text="Installments after the deposit for bookings paid on the deposit plan",
    )
    early_bird_enabled = models.BooleanField(default=True)
    is_published = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["start_date", "id"]

    def __str__(self) -> str:
        return f"{self.destination} ({self.start_date:%Y-%m-%d})"

    def clean(self):
        if self.end_date and self.start_date and self.end_date < self.start_date:
            raise ValidationError({"end_date": "End date must be on or after the start date."})

    def has_started(self, today=None) -> bool:
        today = today or timezone.localdate()
        return self.start_date <= today

    def has_ended(self, today=None) -> bool:
        today = today or timezone.localdate()
        return self.end_date <= today


class Room(models.Model):
    """
    Bookable room type within a retreat.

    `available` counts seats not yet taken by a booking. It is only mutated
    through retreats.inventory so that concurrent bookings cannot oversell.
    """

    retreat = models.ForeignKey(Retreat, on_delete=models.CASCADE, related_name="rooms")
    name = models.CharField(max_length=120)
    description = models.TextField(blank=True)
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
        help_text="Price per guest",
    )
    capacity = models.PositiveIntegerField(default=1)
    available = models.PositiveIntegerField(default=1)
    is_sold_out = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["retreat_id", "name"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(available__lte=models.F("capacity")),
                name="room_available_lte_capacity",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name} @ {self.retreat}"

    @property
    def occupied(self) -> int:
        return int(self.capacity) - int(self.available)
