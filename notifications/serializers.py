from __future__ import annotations

from django.template import Template, TemplateSyntaxError
from rest_framework import serializers

from core.fields import LanguageField

from .models import EmailAuditLog, EmailTemplate
from .resolver import EVENT_TYPES


class EmailAuditLogSerializer(serializers.ModelSerializer):
    booking_number = serializers.CharField(source="booking.booking_number", read_only=True, default=None)

    class Meta:
        model = EmailAuditLog
        fields = [
            "id",
            "email_type",
            "recipient",
            "recipient_type",
            "subject",
            "status",
            "booking",
            "booking_number",
            "payment",
            "error_message",
            "provider_message_id",
            "metadata",
            "created_at",
        ]
        read_only_fields = fields


class EmailTemplateSerializer(serializers.ModelSerializer):
    language = LanguageField()

    class Meta:
        model = EmailTemplate
        fields = ["id", "slug", "language", "subject", "html_body", "is_active", "updated_at"]
        read_only_fields = ["updated_at"]

    def validate_slug(self, value: str) -> str:
        if value not in EVENT_TYPES:
            raise serializers.ValidationError(f"Unknown email type '{value}'.")
        return value

    def _check_syntax(self, value: str) -> str:
        try:
            Template(value)
        except TemplateSyntaxError as e:
            raise serializers.ValidationError(f"Template error: {e}")
        return value

    def validate_subject(self, value: str) -> str:
        return self._check_syntax(value)

    def validate_html_body(self, value: str) -> str:
        return self._check_syntax(value)
