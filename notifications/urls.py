# notifications/urls.py
from __future__ import annotations

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import EmailAuditLogViewSet, EmailTemplateViewSet

app_name = "notifications"

router = DefaultRouter()
router.register(r"email-logs", EmailAuditLogViewSet, basename="email-logs")
router.register(r"email-templates", EmailTemplateViewSet, basename="email-templates")

urlpatterns = [
    path("", include(router.urls)),
]
