import django.core.validators
import django.db.models.deletion
import uuid
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("bookings", "0001_initial"),
        ("retreats", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="WaitlistEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("first_name", models.CharField(max_length=100)),
                ("last_name", models.CharField(blank=True, max_length=100)),
                ("email", models.EmailField(max_length=254)),
                ("phone", models.CharField(blank=True, max_length=40)),
                ("guests_count", models.PositiveSmallIntegerField(default=1, validators=[django.core.validators.MinValueValidator(1)])),
                ("language", models.CharField(default="en", max_length=8)),
                ("notes", models.TextField(blank=True)),
                ("position", models.PositiveIntegerField()),
                ("status", models.CharField(choices=[("waiting", "Waiting"), ("offered", "Offered"), ("accepted", "Accepted"), ("declined", "Declined"), ("expired", "Expired")], db_index=True, default="waiting", max_length=10)),
                ("response_token", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("offered_at", models.DateTimeField(blank=True, null=True)),
                ("offer_expires_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("responded_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("booking", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="waitlist_entries", to="bookings.booking")),
                ("offered_room", models.ForeignKey(blank=True, help_text="Room whose freed seats the current offer holds", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to="retreats.room")),
                ("retreat", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="waitlist_entries", to="retreats.retreat")),
                ("room", models.ForeignKey(blank=True, help_text="Empty means any room", null=True, on_delete=django.db.models.deletion.CASCADE, related_name="waitlist_entries", to="retreats.room")),
            ],
            options={
                "verbose_name_plural": "waitlist entries",
                "ordering": ["retreat_id", "position", "id"],
                "indexes": [
                    models.Index(fields=["retreat", "room", "status", "position"], name="waitlist_scope_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(condition=models.Q(("status__in", ["waiting", "offered"])), fields=("retreat", "email"), name="waitlist_one_open_entry_per_email"),
                ],
            },
        ),
    ]
