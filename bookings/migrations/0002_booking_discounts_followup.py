import django.db.models.deletion
from decimal import Decimal
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("bookings", "0001_initial"),
        ("promotions", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="booking",
            name="discount_source",
            field=models.CharField(blank=True, choices=[("early_bird", "Early bird"), ("promo_code", "Promo code")], max_length=16),
        ),
        migrations.AddField(
            model_name="booking",
            name="promo_code",
            field=models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="bookings", to="promotions.promocode"),
        ),
        migrations.AddField(
            model_name="booking",
            name="promo_discount",
            field=models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10),
        ),
        migrations.AddField(
            model_name="booking",
            name="followup_sent_at",
            field=models.DateTimeField(blank=True, null=True),
        ),
    ]
