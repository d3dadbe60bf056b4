from __future__ import annotations

from django.db import models


class SiteSetting(models.Model):
    """
    Admin-editable runtime configuration stored as one JSON document per key.
    Typed views over these rows live in core.site_settings.
    """

    KEY_ADMIN_NOTIFICATIONS = "admin_notifications"
    KEY_BOOKING = "booking"

    KEY_CHOICES = [
        (KEY_ADMIN_NOTIFICATIONS, "Admin notifications"),
        (KEY_BOOKING, "Booking"),
    ]

    key = models.CharField(max_length=64, unique=True, choices=KEY_CHOICES)
    value = models.JSONField(default=dict, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["key"]

    def __str__(self) -> str:
        return self.key
