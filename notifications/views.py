from __future__ import annotations

from rest_framework import viewsets
from rest_framework.permissions import IsAdminUser

from .models import EmailAuditLog, EmailTemplate
from .serializers import EmailAuditLogSerializer, EmailTemplateSerializer


class EmailAuditLogViewSet(viewsets.ReadOnlyModelViewSet):
    """Append-only record of every email the system tried to send."""

    queryset = EmailAuditLog.objects.select_related("booking")
    serializer_class = EmailAuditLogSerializer
    permission_classes = [IsAdminUser]
    filterset_fields = ["email_type", "status", "recipient_type", "booking"]
    search_fields = ["recipient", "subject", "booking__booking_number"]
    ordering_fields = ["created_at"]


class EmailTemplateViewSet(viewsets.ModelViewSet):
    queryset = EmailTemplate.objects.all()
    serializer_class = EmailTemplateSerializer
    permission_classes = [IsAdminUser]
    filterset_fields = ["slug", "language", "is_active"]
    search_fields = ["slug", "subject"]
