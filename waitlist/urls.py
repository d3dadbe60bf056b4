# waitlist/urls.py
from __future__ import annotations

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from . import views

app_name = "waitlist"

router = DefaultRouter()
router.register(r"waitlist", views.WaitlistEntryViewSet, basename="waitlist")

urlpatterns = [
    # before the router so "respond" is not read as an entry pk
    path("waitlist/respond/", views.respond, name="waitlist-respond"),
    path("", include(router.urls)),
]
