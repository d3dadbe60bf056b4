# feedback/urls.py
from __future__ import annotations

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import RetreatFeedbackViewSet

app_name = "feedback"

router = DefaultRouter()
router.register(r"feedback", RetreatFeedbackViewSet, basename="feedback")

urlpatterns = [
    path("", include(router.urls)),
]
