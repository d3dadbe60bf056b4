import django.core.validators
import django.db.models.deletion
from decimal import Decimal
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Retreat",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(max_length=200)),
                ("slug", models.SlugField(max_length=200, unique=True)),
                ("destination", models.CharField(max_length=200)),
                ("start_date", models.DateField()),
                ("end_date", models.DateField()),
                ("installment_count", models.PositiveSmallIntegerField(default=2, help_text="Installments after the deposit for bookings paid on the deposit plan")),
                ("early_bird_enabled", models.BooleanField(default=True)),
                ("is_published", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["start_date", "id"],
            },
        ),
        migrations.CreateModel(
            name="Room",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=120)),
                ("description", models.TextField(blank=True)),
                ("price", models.DecimalField(decimal_places=2, help_text="Price per guest", max_digits=10, validators=[django.core.validators.MinValueValidator(Decimal("0.00"))])),
                ("capacity", models.PositiveIntegerField(default=1)),
                ("available", models.PositiveIntegerField(default=1)),
                ("is_sold_out", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("retreat", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="rooms", to="retreats.retreat")),
            ],
            options={
                "ordering": ["retreat_id", "name"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("available__lte", models.F("capacity"))), name="room_available_lte_capacity"),
                ],
            },
        ),
    ]
