from __future__ import annotations

from django.contrib import admin, messages
from django.http import HttpRequest

from .models import Payment, PaymentScheduleEntry, StripeWebhookEvent
from .services import stripe_service


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("id", "booking", "payment_type", "amount", "currency", "status", "created_at")
    list_filter = ("status", "payment_type", "currency", "created_at")
    search_fields = ("booking__booking_number", "booking__email", "stripe_payment_intent_id", "stripe_refund_id")
    readonly_fields = [f.name for f in Payment._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(PaymentScheduleEntry)
class PaymentScheduleEntryAdmin(admin.ModelAdmin):
    list_display = ("booking", "number", "amount", "due_date", "status", "attempts", "payment_deadline", "reminder_stage")
    list_filter = ("status", "reminder_stage", "due_date")
    search_fields = ("booking__booking_number", "booking__email")
    readonly_fields = (
        "booking",
        "number",
        "amount",
        "attempts",
        "last_attempt_at",
        "paid_at",
        "failed_at",
        "stripe_payment_intent_id",
        "created_at",
        "updated_at",
    )

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(StripeWebhookEvent)
class StripeWebhookEventAdmin(admin.ModelAdmin):
    list_display = ("created_at", "event_type", "stripe_event_id", "processed", "processing_attempts", "booking")
    list_filter = ("processed", "event_type", "created_at")
    search_fields = ("stripe_event_id", "event_type", "last_error")
    readonly_fields = ("created_at", "processed_at", "event_data", "last_error")

    actions = ("replay_selected", "replay_failures")

    def replay_selected(self, request: HttpRequest, queryset):
        ok = 0
        for ev in queryset:
            if stripe_service.process_webhook_event(ev.event_data):
                ok += 1
        self.message_user(request, f"Replayed {ok}/{queryset.count()} events", level=messages.INFO)

    replay_selected.short_description = "Replay selected events"

    def replay_failures(self, request: HttpRequest, queryset):
        self.replay_selected(request, queryset.filter(processed=False))

    replay_failures.short_description = "Replay unprocessed events"
