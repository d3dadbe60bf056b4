from __future__ import annotations

import logging

from celery import shared_task

from .services import expire_offers

logger = logging.getLogger(__name__)


@shared_task
def expire_waitlist_offers(now=None) -> int:
    expired = expire_offers(now)
    if expired:
        logger.info("Expired %s waitlist offer(s)", expired)
    return expired
