# retreat_backend/settings/test.py
from .base import *

# -----------------------------------------------------------------------------
# Test Settings
# -----------------------------------------------------------------------------
DEBUG = False

ALLOWED_HOSTS = ["*"]

SECURE_SSL_REDIRECT = False
SESSION_COOKIE_SECURE = False
CSRF_COOKIE_SECURE = False

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
DEFAULT_FROM_EMAIL = "bookings@example.com"
ADMIN_NOTIFICATION_EMAIL = ""
NOTIFICATIONS_ASYNC = False
SITE_URL = "https://retreats.example.com"

STRIPE_SECRET_KEY = "sk_test_dummy"
STRIPE_WEBHOOK_SECRET = "whsec_test_secret"

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

STORAGES["staticfiles"] = {
    "BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage",
}

REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []

# Console only; no log files during test runs
for _name in ("django", "core", "bookings", "payments", "retreats", "waitlist", "notifications", "feedback"):
    LOGGING["loggers"][_name]["handlers"] = ["console"]
    LOGGING["loggers"][_name]["level"] = "WARNING"
LOGGING["loggers"]["django.request"]["handlers"] = ["console"]
LOGGING["loggers"]["django.request"]["level"] = "CRITICAL"
