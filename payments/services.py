from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import stripe
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from bookings.lifecycle import confirm_booking
from bookings.models import Booking, BookingStatusChange
from core.exceptions import ConfigurationMissing, DuplicateEvent, InvalidTransition
from core.site_settings import get_booking_config
from notifications import resolver as events
from notifications.contexts import format_amount, format_date, payment_context
from notifications.dispatcher import dispatcher

from . import gateway
from .models import Payment, PaymentScheduleEntry, StripeWebhookEvent
from .refunds import recalculate_booking_totals, record_external_refund
from .schedule import advance_on_success, handle_failure

logger = logging.getLogger(__name__)

NO_PAYMENT_METHOD = "No payment method on file"
REFUND_DEAD_STATUSES = ("failed", "canceled")


class StripePaymentService:
    """
    Stripe payments for bookings: deposit and installment charges plus
    idempotent webhook processing.
    """

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        """
        Verify Stripe webhook signature for security.

        Returns True if the signature is valid, False otherwise.
        """
        try:
            gateway.construct_event(payload, signature)
            return True
        except ConfigurationMissing:
            logger.warning("Stripe webhook secret not configured")
            return False
        except (stripe.SignatureVerificationError, ValueError) as e:
            logger.error("Webhook signature verification failed: %s", e)
            return False

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------
    def process_webhook_event(self, event_data: Dict[str, Any]) -> bool:
        """
        Process a Stripe event at most once. Returns True when the event is
        handled (or was already handled), False when it should be retried.
        """
        try:
            return self._process_webhook_event(event_data)
        except DuplicateEvent:
            logger.info("Webhook event %s already processed, skipping", event_data.get("id"))
            return True

    def _process_webhook_event(self, event_data: Dict[str, Any]) -> bool:
        event_id = event_data.get("id")
        event_type = event_data.get("type")
        if not event_id or not event_type:
            logger.error("Invalid webhook event data: missing id or type")
            return False

        with transaction.atomic():
            webhook_event, _ = StripeWebhookEvent.objects.select_for_update().get_or_create(
                stripe_event_id=event_id,
                defaults={"event_type": event_type, "event_data": event_data},
            )
            if webhook_event.processed:
                raise DuplicateEvent(event_id=event_id)

        handlers = {
            "payment_intent.succeeded": self._handle_payment_intent_succeeded,
            "payment_intent.payment_failed": self._handle_payment_intent_failed,
            "charge.refunded": self._handle_charge_refunded,
        }
        handler = handlers.get(event_type)
        obj = (event_data.get("data") or {}).get("object") or {}

        try:
            booking = handler(obj) if handler else None
        except Exception as e:
            logger.exception("Error processing webhook event %s (%s)", event_id, event_type)
            webhook_event.increment_attempts(f"{e.__class__.__name__}: {e}")
            return False

        if handler is None:
            logger.info("Unhandled webhook event type: %s", event_type)
        webhook_event.increment_attempts()
        webhook_event.booking = booking
        webhook_event.mark_processed()
        logger.info("Successfully processed webhook event %s (%s)", event_id, event_type)
        return True

    def _booking_from_intent(self, intent: Dict[str, Any]) -> Optional[Booking]:
        payment = Payment.objects.filter(stripe_payment_intent_id=intent.get("id")).select_related("booking").first() if intent.get("id") else None
        if payment is not None:
            return payment.booking
        booking_id = (intent.get("metadata") or {}).get("booking_id")
        if booking_id:
            return Booking.objects.filter(pk=booking_id).first()
        return None

    def _entry_from_intent(self, booking: Booking, intent: Dict[str, Any]) -> Optional[PaymentScheduleEntry]:
        entry = PaymentScheduleEntry.objects.filter(booking=booking, stripe_payment_intent_id=intent.get("id")).first()
        if entry is not None:
            return entry
        number = (intent.get("metadata") or {}).get("payment_number")
        if number:
            return PaymentScheduleEntry.objects.filter(booking=booking, number=int(number)).first()
        return None

    def _handle_payment_intent_succeeded(self, intent: Dict[str, Any]) -> Optional[Booking]:
        booking = self._booking_from_intent(intent)
        if booking is None:
            logger.warning("PaymentIntent %s does not belong to a booking", intent.get("id"))
            return None
        amount = gateway.cents_to_amount(intent.get("amount_received") or intent.get("amount"))
        return self.record_payment_success(
            booking,
            intent_id=intent["id"],
            amount=amount,
            entry=self._entry_from_intent(booking, intent),
            payment_method=intent.get("payment_method") or "",
            customer=intent.get("customer") or "",
        )

    def _handle_payment_intent_failed(self, intent: Dict[str, Any]) -> Optional[Booking]:
        booking = self._booking_from_intent(intent)
        if booking is None:
            logger.warning("PaymentIntent %s does not belong to a booking", intent.get("id"))
            return None
        error = intent.get("last_payment_error") or {}
        entry = self._entry_from_intent(booking, intent)
        amount = entry.amount if entry else gateway.cents_to_amount(intent.get("amount"))
        self.record_payment_failure(
            booking,
            intent_id=intent["id"],
            amount=amount,
            entry=entry,
            reason=error.get("message") or "Payment failed",
        )
        return booking

    def _handle_charge_refunded(self, charge: Dict[str, Any]) -> Optional[Booking]:
        intent_id = charge.get("payment_intent") or ""
        payment = (
            Payment.objects.filter(stripe_payment_intent_id=intent_id)
            .exclude(payment_type=Payment.TYPE_REFUND)
            .select_related("booking")
            .first()
        )
        if payment is None:
            logger.error("Original payment not found for refund: %s", intent_id)
            return None

        # Recent API versions leave charge.refunds unexpanded in events
        refunds = (charge.get("refunds") or {}).get("data")
        if refunds is None:
            refunds = gateway.list_refunds(intent_id)
        for refund in refunds:
            if refund.get("status") in REFUND_DEAD_STATUSES:
                continue
            record_external_refund(
                payment.booking,
                refund["id"],
                gateway.cents_to_amount(refund.get("amount")),
                payment_intent_id=intent_id,
            )
        return payment.booking

    # ------------------------------------------------------------------
    # Recording outcomes
    # ------------------------------------------------------------------
    def _locked_payment(self, intent_id: str) -> Optional[Payment]:
        if not intent_id:
            return None
        return (
            Payment.objects.select_for_update()
            .filter(stripe_payment_intent_id=intent_id)
            .exclude(payment_type=Payment.TYPE_REFUND)
            .first()
        )

    def record_payment_success(
        self,
        booking: Booking,
        intent_id: str,
        amount: Decimal,
        entry: Optional[PaymentScheduleEntry] = None,
        payment_method: str = "",
        customer: str = "",
    ) -> Booking:
        """
        Mark a payment succeeded, advance the schedule and recompute totals.
        Safe to call twice for the same intent.
        """
        now = timezone.now()
        with transaction.atomic():
            booking = Booking.objects.select_for_update().get(pk=booking.pk)
            payment = self._locked_payment(intent_id)
            if payment is not None and payment.status == Payment.STATUS_SUCCEEDED:
                logger.info("PaymentIntent %s already recorded as succeeded", intent_id)
                return booking

            if payment is None:
                payment = Payment(
                    booking=booking,
                    schedule_entry=entry,
                    currency=gateway.currency(),
                    payment_type=entry.payment_type if entry else Payment.TYPE_INSTALLMENT,
                    scheduled_due_date=entry.due_date if entry else None,
                    stripe_payment_intent_id=intent_id,
                )
            entry = entry or payment.schedule_entry
            payment.amount = amount
            payment.status = Payment.STATUS_SUCCEEDED
            payment.failure_reason = ""
            payment.save()

            next_entry = None
            if entry is not None:
                entries = list(PaymentScheduleEntry.objects.select_for_update().filter(booking=booking))
                next_entry = advance_on_success(entries, entry.number)
                paid = next(e for e in entries if e.number == entry.number)
                paid.paid_at = now
                paid.last_attempt_at = now
                paid.stripe_payment_intent_id = intent_id
                paid.failed_at = None
                paid.payment_deadline = None
                paid.reminder_stage = PaymentScheduleEntry.STAGE_NONE
                paid.failure_reason = ""
                paid.save()

            update_fields = []
            if payment_method and payment_method != booking.stripe_payment_method_id:
                booking.stripe_payment_method_id = payment_method
                update_fields.append("stripe_payment_method_id")
            if customer and customer != booking.stripe_customer_id:
                booking.stripe_customer_id = customer
                update_fields.append("stripe_customer_id")
            if update_fields:
                booking.save(update_fields=update_fields + ["updated_at"])

            old_payment_status = booking.payment_status
            recalculate_booking_totals(booking)
            BookingStatusChange.record(
                booking,
                old_payment_status=old_payment_status,
                action=BookingStatusChange.ACTION_PAYMENT_RECEIVED,
                metadata={"amount": str(amount), "payment_intent": intent_id, "schedule_entry": entry.number if entry else None},
            )

        logger.info("Recorded payment %s of %s on booking %s", intent_id, amount, booking.booking_number)

        if booking.status == Booking.STATUS_PENDING and get_booking_config().auto_confirm:
            booking = confirm_booking(booking).booking

        extra = {}
        if next_entry is not None:
            extra.update(
                next_payment_amount=format_amount(next_entry.amount),
                next_payment_date=format_date(next_entry.due_date),
            )
        ctx = payment_context(booking, amount, entry=entry, **extra)
        dispatcher.send(events.PAYMENT_RECEIVED, booking.email, ctx, language=booking.language, booking=booking, payment=payment)
        dispatcher.notify_admin(
            "payments",
            events.ADMIN_PAYMENT_RECEIVED,
            ctx,
            flag="notify_on_payment_received",
            booking=booking,
            payment=payment,
        )
        return booking

    def record_payment_failure(
        self,
        booking: Booking,
        intent_id: str,
        amount: Decimal,
        entry: Optional[PaymentScheduleEntry] = None,
        reason: str = "Payment failed",
    ) -> Optional[PaymentScheduleEntry]:
        """Mark a payment failed and start (or keep) the 14-day grace deadline."""
        now = timezone.now()
        with transaction.atomic():
            booking = Booking.objects.select_for_update().get(pk=booking.pk)
            payment = self._locked_payment(intent_id)
            if payment is not None and payment.status == Payment.STATUS_SUCCEEDED:
                logger.warning("Ignoring failure for already succeeded PaymentIntent %s", intent_id)
                return entry
            if payment is None:
                payment = Payment(
                    booking=booking,
                    schedule_entry=entry,
                    amount=amount,
                    currency=gateway.currency(),
                    payment_type=entry.payment_type if entry else Payment.TYPE_INSTALLMENT,
                    scheduled_due_date=entry.due_date if entry else None,
                    stripe_payment_intent_id=intent_id,
                )
            payment.status = Payment.STATUS_FAILED
            payment.failure_reason = reason
            payment.save()

            first_failure = False
            if entry is not None:
                entry = PaymentScheduleEntry.objects.select_for_update().get(pk=entry.pk)
                if entry.status == PaymentScheduleEntry.STATUS_PAID:
                    return entry
                first_failure = entry.failed_at is None
                handle_failure(entry, now, grace_days=getattr(settings, "PAYMENT_GRACE_DAYS", 14))
                entry.last_attempt_at = now
                entry.failure_reason = reason
                if intent_id:
                    entry.stripe_payment_intent_id = intent_id
                entry.save()

        logger.warning(
            "Payment %s failed on booking %s: %s (deadline %s)",
            intent_id or "(no intent)",
            booking.booking_number,
            reason,
            entry.payment_deadline if entry else None,
        )

        if entry is None or first_failure:
            ctx = payment_context(booking, amount, entry=entry, failure_reason=reason)
            dispatcher.send(events.PAYMENT_FAILED, booking.email, ctx, language=booking.language, booking=booking, payment=payment)
            dispatcher.notify_admin(
                "payments",
                events.ADMIN_PAYMENT_FAILED,
                ctx,
                flag="notify_on_payment_failed",
                booking=booking,
                payment=payment,
            )
        return entry

    # ------------------------------------------------------------------
    # Charges
    # ------------------------------------------------------------------
    def _metadata(self, booking: Booking, entry: PaymentScheduleEntry, off_session: bool) -> Dict[str, str]:
        return {
            "booking_id": str(booking.pk),
            "booking_number": booking.booking_number,
            "payment_number": str(entry.number),
            "off_session": "true" if off_session else "false",
            "language": booking.language,
        }

    def ensure_customer(self, booking: Booking) -> str:
        if booking.stripe_customer_id:
            return booking.stripe_customer_id
        customer = gateway.create_customer(
            email=booking.email,
            name=booking.full_name,
            metadata={"booking_number": booking.booking_number},
        )
        booking.stripe_customer_id = customer.id
        booking.save(update_fields=["stripe_customer_id", "updated_at"])
        return customer.id

    def create_entry_intent(self, booking: Booking, entry: PaymentScheduleEntry):
        """
        On-session PaymentIntent for one schedule entry that also saves the
        card for off-session installment charges. Returns (intent, payment).
        """
        if entry.status in (PaymentScheduleEntry.STATUS_PAID, PaymentScheduleEntry.STATUS_CANCELLED):
            raise InvalidTransition(entry.status, PaymentScheduleEntry.STATUS_PROCESSING, message=f"Scheduled payment is {entry.status}")
        customer = self.ensure_customer(booking)
        intent = gateway.create_payment_intent(
            entry.amount,
            metadata=self._metadata(booking, entry, off_session=False),
            customer=customer,
            idempotency_key=f"entry-{booking.pk}-{entry.pk}-{entry.attempts}",
            receipt_email=booking.email,
        )
        with transaction.atomic():
            payment, _ = Payment.objects.update_or_create(
                stripe_payment_intent_id=intent.id,
                defaults={
                    "booking": booking,
                    "schedule_entry": entry,
                    "amount": entry.amount,
                    "currency": gateway.currency(),
                    "status": Payment.STATUS_PENDING,
                    "payment_type": entry.payment_type,
                    "scheduled_due_date": entry.due_date,
                },
            )
            PaymentScheduleEntry.objects.filter(pk=entry.pk).update(stripe_payment_intent_id=intent.id, updated_at=timezone.now())
        return intent, payment

    def create_deposit_intent(self, booking: Booking):
        entry = booking.schedule.order_by("number").first()
        if entry is None:
            raise ValueError(f"Booking {booking.booking_number} has no payment schedule")
        return self.create_entry_intent(booking, entry)

    def create_next_payment_intent(self, booking: Booking):
        """Intent for the earliest open scheduled payment, for the guest's pay-now link."""
        entry = booking.schedule.open().order_by("number").first()
        if entry is None:
            raise InvalidTransition(booking.payment_status, "", message="Nothing left to pay on this booking")
        return self.create_entry_intent(booking, entry)

    def start_deposit_payment(self, booking: Booking) -> Optional[str]:
        """
        Best-effort deposit intent for bookings created outside checkout
        (waitlist acceptance). Returns the client secret, or None when Stripe
        is unavailable; the guest can still pay from the my-booking page.
        """
        if not gateway.is_configured():
            logger.info("Stripe not configured; deposit for %s left for manual collection", booking.booking_number)
            return None
        try:
            intent, _ = self.create_deposit_intent(booking)
        except stripe.StripeError:
            logger.exception("Could not create deposit PaymentIntent for booking %s", booking.booking_number)
            return None
        return intent.client_secret

    def charge_installment(self, entry: PaymentScheduleEntry) -> bool:
        """
        Charge a due installment off-session against the saved card.
        Returns True on success; failures are recorded and start the grace
        deadline.
        """
        booking = entry.booking
        with transaction.atomic():
            claimed = PaymentScheduleEntry.objects.filter(
                pk=entry.pk,
                status__in=[PaymentScheduleEntry.STATUS_PENDING, PaymentScheduleEntry.STATUS_FAILED],
            ).update(status=PaymentScheduleEntry.STATUS_PROCESSING, updated_at=timezone.now())
            if not claimed:
                logger.info("Schedule entry %s is already being processed", entry.pk)
                return False
            entry.refresh_from_db()
            entry.attempts += 1
            entry.last_attempt_at = timezone.now()
            entry.save(update_fields=["attempts", "last_attempt_at", "updated_at"])

        if not booking.stripe_customer_id or not booking.stripe_payment_method_id:
            self.record_payment_failure(booking, intent_id="", amount=entry.amount, entry=entry, reason=NO_PAYMENT_METHOD)
            return False

        try:
            intent = gateway.create_payment_intent(
                entry.amount,
                metadata=self._metadata(booking, entry, off_session=True),
                customer=booking.stripe_customer_id,
                payment_method=booking.stripe_payment_method_id,
                off_session=True,
                idempotency_key=f"installment-{entry.pk}-{entry.due_date.isoformat()}-{entry.attempts}",
            )
        except stripe.CardError as e:
            intent_id = getattr(getattr(e, "error", None), "payment_intent", None)
            intent_id = intent_id.get("id") if isinstance(intent_id, dict) else (getattr(intent_id, "id", "") or "")
            self.record_payment_failure(
                booking,
                intent_id=intent_id,
                amount=entry.amount,
                entry=entry,
                reason=getattr(e, "user_message", None) or str(e),
            )
            return False
        except stripe.StripeError as e:
            self.record_payment_failure(booking, intent_id="", amount=entry.amount, entry=entry, reason=str(e))
            return False

        if intent.status == "succeeded":
            self.record_payment_success(
                booking,
                intent_id=intent.id,
                amount=entry.amount,
                entry=entry,
            )
            return True

        # requires_action etc.: the webhook settles it
        PaymentScheduleEntry.objects.filter(pk=entry.pk).update(stripe_payment_intent_id=intent.id)
        logger.info("Installment %s on %s is %s", entry.number, booking.booking_number, intent.status)
        return False


stripe_service = StripePaymentService()
