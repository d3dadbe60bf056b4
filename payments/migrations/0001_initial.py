import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("bookings", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="PaymentScheduleEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("number", models.PositiveSmallIntegerField(help_text="1-based; the deposit is #1")),
                ("amount", models.DecimalField(decimal_places=2, max_digits=10)),
                ("due_date", models.DateField()),
                ("description", models.CharField(max_length=120)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("processing", "Processing"), ("paid", "Paid"), ("failed", "Failed"), ("cancelled", "Cancelled")], default="pending", max_length=12)),
                ("attempts", models.PositiveSmallIntegerField(default=0)),
                ("max_attempts", models.PositiveSmallIntegerField(default=3)),
                ("last_attempt_at", models.DateTimeField(blank=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("failure_reason", models.TextField(blank=True)),
                ("failed_at", models.DateTimeField(blank=True, help_text="First failure; starts the grace window", null=True)),
                ("payment_deadline", models.DateTimeField(blank=True, help_text="Auto-cancel after this moment", null=True)),
                ("reminder_stage", models.CharField(blank=True, choices=[("", "None"), ("initial", "Failure notice sent"), ("3_day", "3 days left reminder sent"), ("1_day", "1 day left reminder sent")], default="", max_length=10)),
                ("last_reminder_sent_at", models.DateTimeField(blank=True, null=True)),
                ("stripe_payment_intent_id", models.CharField(blank=True, db_index=True, max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("booking", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="schedule", to="bookings.booking")),
            ],
            options={
                "verbose_name_plural": "payment schedule entries",
                "ordering": ["booking_id", "number"],
                "indexes": [
                    models.Index(fields=["status", "due_date"], name="schedule_status_due_idx"),
                    models.Index(fields=["status", "payment_deadline"], name="schedule_status_deadline_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("booking", "number"), name="schedule_unique_booking_number"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("amount", models.DecimalField(decimal_places=2, help_text="Negative for refunds", max_digits=10)),
                ("currency", models.CharField(default="eur", max_length=3)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("succeeded", "Succeeded"), ("failed", "Failed")], default="pending", max_length=12)),
                ("payment_type", models.CharField(choices=[("deposit", "Deposit"), ("installment", "Installment"), ("full", "Full payment"), ("refund", "Refund")], max_length=12)),
                ("scheduled_due_date", models.DateField(blank=True, null=True)),
                ("stripe_payment_intent_id", models.CharField(blank=True, db_index=True, max_length=255)),
                ("stripe_refund_id", models.CharField(blank=True, help_text="Stripe refund ID (refund rows only)", max_length=255)),
                ("failure_reason", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("booking", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="payments", to="bookings.booking")),
                ("created_by", models.ForeignKey(blank=True, help_text="Admin who recorded the payment or issued the refund", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("schedule_entry", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="payments", to="payments.paymentscheduleentry")),
            ],
            options={
                "ordering": ["created_at", "id"],
                "indexes": [
                    models.Index(fields=["booking", "status"], name="payment_booking_status_idx"),
                    models.Index(fields=["payment_type"], name="payment_type_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(condition=models.Q(("stripe_refund_id", ""), _negated=True), fields=("stripe_refund_id",), name="payment_unique_stripe_refund"),
                ],
            },
        ),
        migrations.CreateModel(
            name="StripeWebhookEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("stripe_event_id", models.CharField(help_text="Stripe event ID", max_length=255, unique=True)),
                ("event_type", models.CharField(help_text="Stripe event type (e.g., payment_intent.succeeded)", max_length=100)),
                ("processed", models.BooleanField(default=False, help_text="Whether this event has been successfully processed")),
                ("processing_attempts", models.PositiveIntegerField(default=0, help_text="Number of processing attempts")),
                ("event_data", models.JSONField(help_text="Full Stripe event data")),
                ("last_error", models.TextField(blank=True, help_text="Last processing error if any")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("processed_at", models.DateTimeField(blank=True, help_text="When event was successfully processed", null=True)),
                ("booking", models.ForeignKey(blank=True, help_text="Booking the event was applied to, if any", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="webhook_events", to="bookings.booking")),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["event_type"], name="webhook_event_type_idx"),
                    models.Index(fields=["processed"], name="webhook_processed_idx"),
                    models.Index(fields=["-created_at"], name="webhook_created_idx"),
                ],
            },
        ),
    ]
