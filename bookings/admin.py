from django.contrib import admin, messages

from core.exceptions import RetreatBookingError
from payments.models import Payment, PaymentScheduleEntry

from .lifecycle import cancel_booking, confirm_booking
from .models import Booking, BookingStatusChange


class ScheduleInline(admin.TabularInline):
    model = PaymentScheduleEntry
    extra = 0
    can_delete = False
    fields = ("number", "description", "amount", "due_date", "status", "attempts", "payment_deadline")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    can_delete = False
    fields = ("created_at", "payment_type", "amount", "currency", "status", "stripe_payment_intent_id", "stripe_refund_id")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


class StatusChangeInline(admin.TabularInline):
    model = BookingStatusChange
    extra = 0
    can_delete = False
    fields = ("created_at", "action", "old_status", "new_status", "old_payment_status", "new_payment_status", "reason", "changed_by")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "booking_number",
        "first_name",
        "last_name",
        "email",
        "retreat",
        "room",
        "guests_count",
        "status",
        "payment_status",
        "total_amount",
        "balance_due",
        "created_at",
    )
    list_filter = ("status", "payment_status", "payment_plan", "retreat", "language")
    search_fields = ("booking_number", "email", "first_name", "last_name", "phone")
    readonly_fields = (
        "booking_number",
        "access_token",
        "retreat",
        "room",
        "guests_count",
        "seats_held",
        "status",
        "payment_status",
        "payment_plan",
        "total_amount",
        "deposit_amount",
        "balance_due",
        "is_early_bird",
        "early_bird_discount",
        "discount_source",
        "promo_code",
        "promo_discount",
        "stripe_customer_id",
        "stripe_payment_method_id",
        "cancellation_reason",
        "confirmed_at",
        "confirmation_sent_at",
        "completed_at",
        "cancelled_at",
        "restored_at",
        "followup_sent_at",
        "created_at",
        "updated_at",
    )
    inlines = [ScheduleInline, PaymentInline, StatusChangeInline]
    actions = ("confirm_selected", "cancel_selected")

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def _run(self, request, queryset, operation, label, **kwargs):
        done = 0
        for booking in queryset:
            try:
                if operation(booking, by_user=request.user, **kwargs).changed:
                    done += 1
            except RetreatBookingError as e:
                self.message_user(request, f"{booking.booking_number}: {e.message}", level=messages.WARNING)
        self.message_user(request, f"{label} {done} booking(s)", level=messages.INFO)

    def confirm_selected(self, request, queryset):
        self._run(request, queryset, confirm_booking, "Confirmed")

    confirm_selected.short_description = "Confirm selected bookings"

    def cancel_selected(self, request, queryset):
        self._run(request, queryset, cancel_booking, "Cancelled", reason="Cancelled by admin")

    cancel_selected.short_description = "Cancel selected bookings"
