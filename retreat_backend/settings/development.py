# retreat_backend/settings/development.py
from .base import *

# -----------------------------------------------------------------------------
# Development Settings
# -----------------------------------------------------------------------------
DEBUG = True

ALLOWED_HOSTS = ["*"]

# The booking frontend runs on its own dev server
CORS_ALLOW_ALL_ORIGINS = True
CSRF_TRUSTED_ORIGINS = [SITE_URL, "http://localhost:8000", "http://127.0.0.1:8000"]

SECURE_SSL_REDIRECT = False
SESSION_COOKIE_SECURE = False
CSRF_COOKIE_SECURE = False
SECURE_HSTS_SECONDS = 0
SECURE_HSTS_INCLUDE_SUBDOMAINS = False

# Guest and admin emails are printed instead of sent
EMAIL_BACKEND = os.getenv("EMAIL_BACKEND", "django.core.mail.backends.console.EmailBackend")

# Without a broker the periodic sweeps can be run as management commands
# (process_payments, send_reminders, expire_waitlist, complete_bookings)
CELERY_TASK_ALWAYS_EAGER = os.getenv("CELERY_TASK_ALWAYS_EAGER", "1") == "1"

# -----------------------------------------------------------------------------
# Logging (console only, payments at DEBUG)
# -----------------------------------------------------------------------------
LOGGING["root"]["level"] = "INFO"
for _name in ("django", "core", "bookings", "payments", "retreats", "waitlist", "notifications", "feedback"):
    LOGGING["loggers"][_name]["handlers"] = ["console"]
LOGGING["loggers"]["django.request"]["handlers"] = ["console"]
LOGGING["loggers"]["payments"]["level"] = os.getenv("PAYMENTS_LOG_LEVEL", "DEBUG")
LOGGING["loggers"]["django.db.backends"] = {
    "handlers": ["console"],
    "level": "DEBUG" if os.getenv("DEBUG_SQL", "0") == "1" else "INFO",
    "propagate": False,
}

STORAGES["staticfiles"] = {
    "BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage",
}

REST_FRAMEWORK["DEFAULT_RENDERER_CLASSES"] = [
    "rest_framework.renderers.JSONRenderer",
    "rest_framework.renderers.BrowsableAPIRenderer",
]
REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {
    "anon": "1000/hour",
    "user": "10000/hour",
}

SIMPLE_JWT["ACCESS_TOKEN_LIFETIME"] = timedelta(hours=1)
