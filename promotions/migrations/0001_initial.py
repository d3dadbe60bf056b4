import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from decimal import Decimal
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("retreats", "0001_initial"),
        ("bookings", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="PromoCode",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.CharField(max_length=50, unique=True)),
                ("description", models.TextField(blank=True)),
                ("discount_type", models.CharField(choices=[("percentage", "Percentage"), ("fixed_amount", "Fixed amount")], default="percentage", max_length=16)),
                ("discount_value", models.DecimalField(decimal_places=2, help_text="Percent off for percentage codes, amount off for fixed codes", max_digits=10, validators=[django.core.validators.MinValueValidator(Decimal("0.01"))])),
                ("scope", models.CharField(choices=[("global", "All retreats"), ("retreat", "One retreat"), ("room", "One room")], default="global", max_length=10)),
                ("valid_from", models.DateField(default=django.utils.timezone.localdate)),
                ("valid_until", models.DateField(blank=True, null=True)),
                ("max_uses", models.PositiveIntegerField(blank=True, help_text="Empty means unlimited", null=True)),
                ("current_uses", models.PositiveIntegerField(default=0, editable=False)),
                ("min_order_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("retreat", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name="promo_codes", to="retreats.retreat")),
                ("room", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name="promo_codes", to="retreats.room")),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="PromoCodeRedemption",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("original_amount", models.DecimalField(decimal_places=2, max_digits=10)),
                ("discount_applied", models.DecimalField(decimal_places=2, max_digits=10)),
                ("final_amount", models.DecimalField(decimal_places=2, max_digits=10)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("booking", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="promo_redemption", to="bookings.booking")),
                ("promo_code", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="redemptions", to="promotions.promocode")),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
    ]
