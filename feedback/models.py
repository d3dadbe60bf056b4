from __future__ import annotations

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

RATING_VALIDATORS = [MinValueValidator(1), MaxValueValidator(5)]


def _rating(help_text: str = ""):
    return models.PositiveSmallIntegerField(null=True, blank=True, validators=RATING_VALIDATORS, help_text=help_text)


class RetreatFeedback(models.Model):
    """Post-retreat survey; one per booking."""

    booking = models.OneToOneField("bookings.Booking", on_delete=models.CASCADE, related_name="feedback")
    retreat = models.ForeignKey("retreats.Retreat", on_delete=models.CASCADE, related_name="feedback")
    email = models.EmailField()

    overall_rating = _rating("1-5")
    surfing_rating = _rating()
    accommodation_rating = _rating()
    food_rating = _rating()
    staff_rating = _rating()
    recommend_score = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(0), MaxValueValidator(10)],
        help_text="0-10 likelihood to recommend (NPS)",
    )

    highlights = models.TextField(blank=True)
    improvements = models.TextField(blank=True)
    testimonial = models.TextField(blank=True)
    allow_testimonial_use = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name_plural = "retreat feedback"

    def __str__(self) -> str:
        return f"Feedback {self.booking_id} ({self.overall_rating or '-'}/5)"
