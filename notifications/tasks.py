from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from celery import shared_task

from core.exceptions import NotificationFailure

logger = logging.getLogger(__name__)


@shared_task(
    autoretry_for=(NotificationFailure,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def send_email_task(
    event_type: str,
    to: str,
    context: Dict[str, Any],
    language: str = "en",
    booking_id: Optional[int] = None,
    payment_id: Optional[int] = None,
    recipient_type: str = "customer",
    metadata: Optional[Dict[str, Any]] = None,
):
    """
    Deliver one email off the request path. Each attempt is audited; a
    provider failure is retried with backoff.
    """
    from .dispatcher import dispatcher

    entry = dispatcher.deliver(
        event_type=event_type,
        to=to,
        context=context,
        language=language,
        booking_id=booking_id,
        payment_id=payment_id,
        recipient_type=recipient_type,
        metadata=metadata,
        raise_on_failure=True,
    )
    return entry.pk
