from __future__ import annotations

from django.conf import settings
from rest_framework import serializers


class LanguageField(serializers.ChoiceField):
    """A language code guests and email templates may use (settings.BOOKING_LANGUAGES)."""

    def __init__(self, **kwargs):
        kwargs.setdefault("required", False)
        kwargs.setdefault("default", "en")
        super().__init__(choices=list(settings.BOOKING_LANGUAGES), **kwargs)
