from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

import stripe
from django.test import TestCase
from django.utils import timezone

from bookings.services import create_booking
from notifications.models import EmailAuditLog
from core.exceptions import PaymentProviderError
from payments import gateway
from payments.models import Payment, PaymentScheduleEntry
from payments.services import NO_PAYMENT_METHOD, stripe_service
from retreats.models import Retreat, Room


class ChargeInstallmentTestCase(TestCase):
    """Off-session installment charges against the saved card."""

    def setUp(self):
        start = timezone.localdate() + timedelta(days=120)
        retreat = Retreat.objects.create(
            title="Installment Retreat",
            slug="installment-retreat",
            destination="Ericeira",
            start_date=start,
            end_date=start + timedelta(days=5),
            early_bird_enabled=False,
        )
        room = Room.objects.create(retreat=retreat, name="Twin", price=Decimal("1000.00"), capacity=2, available=2)
        self.booking = create_booking(
            retreat, room, first_name="Ines", last_name="Costa", email="ines@example.com", guests_count=1
        )
        deposit = self.booking.schedule.get(number=1)
        self.booking = stripe_service.record_payment_success(
            self.booking,
            intent_id="pi_deposit",
            amount=deposit.amount,
            entry=deposit,
            payment_method="pm_saved",
            customer="cus_saved",
        )
        self.entry = self.booking.schedule.get(number=2)

    @patch("payments.gateway.create_payment_intent")
    def test_successful_charge_marks_entry_paid(self, mock_create):
        mock_create.return_value = SimpleNamespace(id="pi_installment", status="succeeded")

        self.assertTrue(stripe_service.charge_installment(self.entry))

        kwargs = mock_create.call_args.kwargs
        self.assertTrue(kwargs["off_session"])
        self.assertEqual(kwargs["customer"], "cus_saved")
        self.assertEqual(kwargs["payment_method"], "pm_saved")
        self.assertEqual(kwargs["metadata"]["payment_number"], "2")

        self.entry.refresh_from_db()
        self.assertEqual(self.entry.status, PaymentScheduleEntry.STATUS_PAID)
        self.assertEqual(self.entry.attempts, 1)
        payment = Payment.objects.get(stripe_payment_intent_id="pi_installment")
        self.assertEqual(payment.payment_type, Payment.TYPE_INSTALLMENT)
        self.assertEqual(payment.amount, self.entry.amount)

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.balance_due, Decimal("1000.00") - Decimal("100.00") - self.entry.amount)

    @patch("payments.gateway.create_payment_intent")
    def test_card_error_starts_grace_deadline(self, mock_create):
        mock_create.side_effect = stripe.CardError("Your card was declined.", None, "card_declined")

        self.assertFalse(stripe_service.charge_installment(self.entry))

        self.entry.refresh_from_db()
        self.assertEqual(self.entry.status, PaymentScheduleEntry.STATUS_FAILED)
        self.assertEqual(self.entry.attempts, 1)
        self.assertIn("declined", self.entry.failure_reason)
        self.assertIsNotNone(self.entry.payment_deadline)
        self.assertTrue(EmailAuditLog.objects.filter(email_type="payment_failed", booking=self.booking).exists())

    @patch("payments.gateway.create_payment_intent")
    def test_missing_payment_method_fails_without_calling_stripe(self, mock_create):
        self.booking.stripe_payment_method_id = ""
        self.booking.save(update_fields=["stripe_payment_method_id"])
        self.entry.refresh_from_db()

        self.assertFalse(stripe_service.charge_installment(self.entry))

        mock_create.assert_not_called()
        self.entry.refresh_from_db()
        self.assertEqual(self.entry.status, PaymentScheduleEntry.STATUS_FAILED)
        self.assertEqual(self.entry.failure_reason, NO_PAYMENT_METHOD)

    @patch("payments.gateway.create_payment_intent")
    def test_entry_already_processing_is_skipped(self, mock_create):
        PaymentScheduleEntry.objects.filter(pk=self.entry.pk).update(status=PaymentScheduleEntry.STATUS_PROCESSING)

        self.assertFalse(stripe_service.charge_installment(self.entry))
        mock_create.assert_not_called()

    @patch("payments.gateway.create_payment_intent")
    def test_intent_needing_action_waits_for_webhook(self, mock_create):
        mock_create.return_value = SimpleNamespace(id="pi_3ds", status="requires_action")

        self.assertFalse(stripe_service.charge_installment(self.entry))

        self.entry.refresh_from_db()
        self.assertEqual(self.entry.status, PaymentScheduleEntry.STATUS_PROCESSING)
        self.assertEqual(self.entry.stripe_payment_intent_id, "pi_3ds")

    def test_duplicate_success_is_recorded_once(self):
        deposit = self.booking.schedule.get(number=1)
        stripe_service.record_payment_success(self.booking, intent_id="pi_deposit", amount=deposit.amount, entry=deposit)

        self.assertEqual(Payment.objects.filter(stripe_payment_intent_id="pi_deposit").count(), 1)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.balance_due, Decimal("900.00"))


class DepositIntentTestCase(TestCase):
    def setUp(self):
        start = timezone.localdate() + timedelta(days=40)
        retreat = Retreat.objects.create(
            title="Late Retreat",
            slug="late-retreat",
            destination="Sagres",
            start_date=start,
            end_date=start + timedelta(days=5),
            early_bird_enabled=False,
        )
        room = Room.objects.create(retreat=retreat, name="Single", price=Decimal("600.00"), capacity=1, available=1)
        self.booking = create_booking(
            retreat, room, first_name="Rui", last_name="Lopes", email="rui@example.com", guests_count=1
        )

    @patch("payments.gateway.create_customer")
    @patch("payments.gateway.create_payment_intent")
    def test_deposit_intent_saves_card_and_records_pending_payment(self, mock_create, mock_customer):
        mock_customer.return_value = SimpleNamespace(id="cus_new")
        mock_create.return_value = SimpleNamespace(id="pi_dep", client_secret="pi_dep_secret", status="requires_payment_method")

        intent, payment = stripe_service.create_deposit_intent(self.booking)

        self.assertEqual(intent.client_secret, "pi_dep_secret")
        # less than two months out: half the total is due up front
        self.assertEqual(payment.amount, Decimal("300.00"))
        self.assertEqual(payment.status, Payment.STATUS_PENDING)
        self.assertEqual(mock_create.call_args.kwargs["customer"], "cus_new")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.stripe_customer_id, "cus_new")
        entry = self.booking.schedule.get(number=1)
        self.assertEqual(entry.status, PaymentScheduleEntry.STATUS_PENDING)
        self.assertEqual(entry.stripe_payment_intent_id, "pi_dep")

    @patch("payments.gateway.create_payment_intent")
    def test_start_deposit_payment_swallows_stripe_outage(self, mock_create):
        mock_create.side_effect = stripe.APIConnectionError("Network down")
        with patch("payments.gateway.create_customer", return_value=SimpleNamespace(id="cus_x")):
            self.assertIsNone(stripe_service.start_deposit_payment(self.booking))
        self.assertFalse(Payment.objects.filter(booking=self.booking).exists())


class RefundGatewayTestCase(TestCase):
    """Stripe refund errors become domain errors the API can answer."""

    @patch("stripe.Refund.create")
    def test_stripe_error_is_raised_as_provider_error(self, mock_refund):
        mock_refund.side_effect = stripe.InvalidRequestError(
            "Refund amount (€550.00) is greater than charge amount (€450.00)", "amount"
        )

        with self.assertRaises(PaymentProviderError) as ctx:
            gateway.create_refund("pi_install", Decimal("550.00"), metadata={})

        self.assertEqual(ctx.exception.status_code, 502)
        self.assertIn("greater than charge amount", ctx.exception.message)
        self.assertEqual(mock_refund.call_args.kwargs["amount"], 55000)
