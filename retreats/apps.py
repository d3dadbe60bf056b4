from django.apps import AppConfig


class RetreatsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "retreats"
