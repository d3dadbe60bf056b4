from django import forms
from django.conf import settings
from django.contrib import admin
from django.template import Template, TemplateSyntaxError

from .models import EmailAuditLog, EmailTemplate
from .resolver import EVENT_TYPES


class EmailTemplateForm(forms.ModelForm):
    slug = forms.ChoiceField(choices=[(t, t) for t in EVENT_TYPES])
    language = forms.ChoiceField(choices=[(code, code) for code in settings.BOOKING_LANGUAGES])

    class Meta:
        model = EmailTemplate
        fields = ["slug", "language", "subject", "html_body", "is_active"]

    def clean(self):
        cleaned = super().clean()
        for field in ("subject", "html_body"):
            try:
                Template(cleaned.get(field) or "")
            except TemplateSyntaxError as e:
                self.add_error(field, f"Template error: {e}")
        return cleaned


@admin.register(EmailTemplate)
class EmailTemplateAdmin(admin.ModelAdmin):
    form = EmailTemplateForm
    list_display = ("slug", "language", "subject", "is_active", "updated_at")
    list_filter = ("language", "is_active")
    search_fields = ("slug", "subject")


@admin.register(EmailAuditLog)
class EmailAuditLogAdmin(admin.ModelAdmin):
    list_display = ("created_at", "email_type", "recipient", "recipient_type", "status", "booking")
    list_filter = ("status", "recipient_type", "email_type", "created_at")
    search_fields = ("recipient", "subject", "booking__booking_number", "provider_message_id")

    def get_readonly_fields(self, request, obj=None):
        return [f.name for f in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
