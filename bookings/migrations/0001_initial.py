import django.core.validators
import django.db.models.deletion
import uuid
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("retreats", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Booking",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("booking_number", models.CharField(blank=True, editable=False, max_length=20, unique=True)),
                ("access_token", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Secret for the guest-facing my-booking link", unique=True)),
                ("first_name", models.CharField(max_length=100)),
                ("last_name", models.CharField(max_length=100)),
                ("email", models.EmailField(db_index=True, max_length=254)),
                ("phone", models.CharField(blank=True, max_length=40)),
                ("language", models.CharField(default="en", max_length=8)),
                ("guests_count", models.PositiveSmallIntegerField(default=1, validators=[django.core.validators.MinValueValidator(1)])),
                ("seats_held", models.BooleanField(default=False, help_text="Whether guests_count seats are currently taken from the room")),
                ("status", models.CharField(choices=[("pending", "Pending"), ("confirmed", "Confirmed"), ("completed", "Completed"), ("cancelled", "Cancelled")], db_index=True, default="pending", max_length=12)),
                ("payment_status", models.CharField(choices=[("unpaid", "Unpaid"), ("deposit", "Deposit paid"), ("paid", "Paid in full"), ("partial_refund", "Partially refunded"), ("refunded", "Refunded")], db_index=True, default="unpaid", max_length=16)),
                ("payment_plan", models.CharField(choices=[("deposit", "Deposit + installments"), ("full", "Pay in full")], default="deposit", max_length=10)),
                ("total_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("deposit_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("balance_due", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("is_early_bird", models.BooleanField(default=False)),
                ("early_bird_discount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("check_in_date", models.DateField(blank=True, null=True)),
                ("check_out_date", models.DateField(blank=True, null=True)),
                ("stripe_customer_id", models.CharField(blank=True, max_length=255)),
                ("stripe_payment_method_id", models.CharField(blank=True, max_length=255)),
                ("internal_notes", models.TextField(blank=True)),
                ("cancellation_reason", models.TextField(blank=True)),
                ("confirmed_at", models.DateTimeField(blank=True, null=True)),
                ("confirmation_sent_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("restored_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("retreat", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="bookings", to="retreats.retreat")),
                ("room", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="bookings", to="retreats.room")),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["retreat", "status"], name="booking_retreat_status_idx"),
                    models.Index(fields=["room", "status"], name="booking_room_status_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="BookingStatusChange",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("old_status", models.CharField(blank=True, max_length=12)),
                ("new_status", models.CharField(blank=True, max_length=12)),
                ("old_payment_status", models.CharField(blank=True, max_length=16)),
                ("new_payment_status", models.CharField(blank=True, max_length=16)),
                ("action", models.CharField(choices=[("status_change", "Status change"), ("cancellation", "Cancellation"), ("refund", "Refund"), ("payment_received", "Payment received"), ("room_change", "Room change"), ("restore", "Restore")], default="status_change", max_length=20)),
                ("reason", models.TextField(blank=True)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("booking", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="status_changes", to="bookings.booking")),
                ("changed_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [models.Index(fields=["booking", "-created_at"], name="bookingchange_booking_idx")],
            },
        ),
    ]
