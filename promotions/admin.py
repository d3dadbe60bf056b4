from django.contrib import admin

from .models import PromoCode, PromoCodeRedemption


class RedemptionInline(admin.TabularInline):
    model = PromoCodeRedemption
    extra = 0
    can_delete = False
    fields = ("created_at", "booking", "original_amount", "discount_applied", "final_amount")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(PromoCode)
class PromoCodeAdmin(admin.ModelAdmin):
    list_display = (
        "code",
        "discount_type",
        "discount_value",
        "scope",
        "retreat",
        "valid_from",
        "valid_until",
        "current_uses",
        "max_uses",
        "is_active",
    )
    list_filter = ("is_active", "discount_type", "scope")
    search_fields = ("code", "description")
    readonly_fields = ("current_uses", "created_at", "updated_at")
    inlines = [RedemptionInline]
