from django.contrib import admin, messages

from core.exceptions import RetreatBookingError

from .models import WaitlistEntry
from .services import admin_offer


@admin.register(WaitlistEntry)
class WaitlistEntryAdmin(admin.ModelAdmin):
    list_display = ("position", "email", "retreat", "room", "guests_count", "status", "offer_expires_at", "created_at")
    list_filter = ("status", "retreat", "language")
    search_fields = ("email", "first_name", "last_name")
    readonly_fields = (
        "position",
        "status",
        "response_token",
        "offered_room",
        "offered_at",
        "offer_expires_at",
        "responded_at",
        "booking",
        "created_at",
        "updated_at",
    )
    actions = ("offer_spot",)

    def offer_spot(self, request, queryset):
        offered = 0
        for entry in queryset:
            try:
                admin_offer(entry)
                offered += 1
            except RetreatBookingError as e:
                self.message_user(request, f"{entry.email}: {e.message}", level=messages.WARNING)
        self.message_user(request, f"Offered a spot to {offered} entr{'y' if offered == 1 else 'ies'}", level=messages.INFO)

    offer_spot.short_description = "Offer a spot now"
