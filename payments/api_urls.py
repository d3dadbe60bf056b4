# payments/api_urls.py
from __future__ import annotations

from django.urls import path

from . import views

app_name = "payments_api"

urlpatterns = [
    path("schedule/<int:entry_id>/cancel/", views.cancel_schedule_entry, name="schedule-cancel"),
]
