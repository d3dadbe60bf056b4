from django.contrib import admin

from .models import RetreatFeedback


@admin.register(RetreatFeedback)
class RetreatFeedbackAdmin(admin.ModelAdmin):
    list_display = ("created_at", "booking", "retreat", "overall_rating", "recommend_score", "allow_testimonial_use")
    list_filter = ("retreat", "overall_rating", "allow_testimonial_use")
    search_fields = ("email", "booking__booking_number", "highlights", "improvements", "testimonial")
    readonly_fields = ("booking", "retreat", "email", "created_at")
