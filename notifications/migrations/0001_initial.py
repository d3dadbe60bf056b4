import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("bookings", "0001_initial"),
        ("payments", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="EmailTemplate",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("slug", models.SlugField(help_text="Event type, e.g. booking_confirmation", max_length=64)),
                ("language", models.CharField(default="en", max_length=8)),
                ("subject", models.CharField(max_length=255)),
                ("html_body", models.TextField()),
                ("is_active", models.BooleanField(default=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["slug", "language"],
                "constraints": [
                    models.UniqueConstraint(fields=("slug", "language"), name="email_template_unique_slug_language"),
                ],
            },
        ),
        migrations.CreateModel(
            name="EmailAuditLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("email_type", models.CharField(db_index=True, max_length=64)),
                ("recipient", models.CharField(blank=True, max_length=254)),
                ("recipient_type", models.CharField(choices=[("customer", "Customer"), ("admin", "Admin")], default="customer", max_length=10)),
                ("subject", models.CharField(blank=True, max_length=255)),
                ("status", models.CharField(choices=[("sent", "Sent"), ("failed", "Failed"), ("suppressed", "Suppressed")], max_length=12)),
                ("error_message", models.TextField(blank=True)),
                ("provider_message_id", models.CharField(blank=True, max_length=255)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("booking", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="email_logs", to="bookings.booking")),
                ("payment", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="email_logs", to="payments.payment")),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["status", "-created_at"], name="emaillog_status_created_idx"),
                    models.Index(fields=["recipient"], name="emaillog_recipient_idx"),
                ],
            },
        ),
    ]
