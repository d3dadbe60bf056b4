from __future__ import annotations

import logging

from django.db import IntegrityError, transaction
from django.http import HttpResponse
from django.utils import timezone
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import AnonRateThrottle

from .models import RetreatFeedback
from .serializers import RetreatFeedbackSerializer, SubmitFeedbackSerializer
from .services import RATING_BANDS, filter_by_band, nps_summary, write_csv

logger = logging.getLogger(__name__)


class RetreatFeedbackViewSet(mixins.CreateModelMixin, mixins.ListModelMixin, viewsets.GenericViewSet):
    """
    POST is the public post-retreat survey (once per booking). Listing,
    the NPS summary and the CSV export are admin-only and accept
    ?rating=high|medium|low.
    """

    serializer_class = RetreatFeedbackSerializer
    filterset_fields = ["retreat", "allow_testimonial_use"]
    search_fields = ["email", "booking__first_name", "booking__last_name", "highlights", "improvements", "testimonial"]
    ordering_fields = ["created_at", "overall_rating", "recommend_score"]

    def get_permissions(self):
        if self.action == "create":
            return [AllowAny()]
        return [IsAdminUser()]

    def get_throttles(self):
        if self.action == "create":
            return [AnonRateThrottle()]
        return super().get_throttles()

    def get_queryset(self):
        qs = RetreatFeedback.objects.select_related("booking", "retreat")
        band = self.request.query_params.get("rating")
        if band and band != "all" and band not in RATING_BANDS:
            return qs.none()
        qs = filter_by_band(qs, band)
        date_from = self.request.query_params.get("date_from")
        date_to = self.request.query_params.get("date_to")
        if date_from:
            qs = qs.filter(created_at__date__gte=date_from)
        if date_to:
            qs = qs.filter(created_at__date__lte=date_to)
        return qs

    def create(self, request: Request, *args, **kwargs) -> Response:
        serializer = SubmitFeedbackSerializer(data=request.data, context=self.get_serializer_context())
        serializer.is_valid(raise_exception=True)
        try:
            with transaction.atomic():
                feedback = serializer.save()
        except IntegrityError:
            return Response({"error": "Feedback already submitted"}, status=status.HTTP_400_BAD_REQUEST)
        logger.info("Feedback received for booking %s", feedback.booking.booking_number)
        return Response({"success": True}, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["get"])
    def summary(self, request: Request) -> Response:
        return Response(nps_summary(self.filter_queryset(self.get_queryset())))

    @action(detail=False, methods=["get"])
    def export(self, request: Request) -> HttpResponse:
        response = HttpResponse(content_type="text/csv")
        response["Content-Disposition"] = f'attachment; filename="feedback-export-{timezone.localdate():%Y-%m-%d}.csv"'
        write_csv(self.filter_queryset(self.get_queryset()), response)
        return response
