# retreats/urls.py
from __future__ import annotations

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import RetreatViewSet, RoomViewSet

app_name = "retreats"

router = DefaultRouter()
router.register(r"retreats", RetreatViewSet, basename="retreats")
router.register(r"rooms", RoomViewSet, basename="rooms")

urlpatterns = [
    path("", include(router.urls)),
]
