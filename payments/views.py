from __future__ import annotations

import json
import logging

from django.http import HttpRequest, HttpResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response

from .models import PaymentScheduleEntry
from .refunds import cancel_scheduled_payment
from .serializers import CancelScheduleEntrySerializer, PaymentScheduleEntrySerializer
from .services import stripe_service

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Stripe webhook endpoint with signature verification and idempotency.

    Handles payment_intent.succeeded, payment_intent.payment_failed and
    charge.refunded; other event types are acknowledged and stored.
    """
    payload = request.body
    sig_header = request.META.get("HTTP_STRIPE_SIGNATURE", "")

    if not stripe_service.verify_webhook_signature(payload, sig_header):
        return HttpResponse("Invalid signature", status=400, content_type="text/plain")

    try:
        event_data = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error("Invalid JSON in webhook payload: %s", e)
        return HttpResponse("Invalid JSON payload", status=400, content_type="text/plain")

    logger.info("Processing Stripe webhook event: %s (ID: %s)", event_data.get("type"), event_data.get("id"))
    if stripe_service.process_webhook_event(event_data):
        return HttpResponse("Webhook processed successfully", status=200, content_type="text/plain")

    logger.error("Failed to process webhook event %s", event_data.get("id"))
    return HttpResponse("Webhook processing failed", status=500, content_type="text/plain")


@api_view(["POST"])
@permission_classes([IsAdminUser])
def cancel_schedule_entry(request, entry_id: int):
    """Stop one scheduled payment from being charged."""
    entry = get_object_or_404(PaymentScheduleEntry, pk=entry_id)
    serializer = CancelScheduleEntrySerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    entry = cancel_scheduled_payment(entry, reason=serializer.validated_data["reason"], by_user=request.user)
    return Response(PaymentScheduleEntrySerializer(entry).data)
