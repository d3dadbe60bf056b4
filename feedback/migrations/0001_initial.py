import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("bookings", "0001_initial"),
        ("retreats", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="RetreatFeedback",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("email", models.EmailField(max_length=254)),
                ("overall_rating", models.PositiveSmallIntegerField(blank=True, help_text="1-5", null=True, validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(5)])),
                ("surfing_rating", models.PositiveSmallIntegerField(blank=True, help_text="", null=True, validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(5)])),
                ("accommodation_rating", models.PositiveSmallIntegerField(blank=True, help_text="", null=True, validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(5)])),
                ("food_rating", models.PositiveSmallIntegerField(blank=True, help_text="", null=True, validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(5)])),
                ("staff_rating", models.PositiveSmallIntegerField(blank=True, help_text="", null=True, validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(5)])),
                ("recommend_score", models.PositiveSmallIntegerField(blank=True, help_text="0-10 likelihood to recommend (NPS)", null=True, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(10)])),
                ("highlights", models.TextField(blank=True)),
                ("improvements", models.TextField(blank=True)),
                ("testimonial", models.TextField(blank=True)),
                ("allow_testimonial_use", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("booking", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="feedback", to="bookings.booking")),
                ("retreat", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="feedback", to="retreats.retreat")),
            ],
            options={
                "verbose_name_plural": "retreat feedback",
                "ordering": ["-created_at"],
            },
        ),
    ]
