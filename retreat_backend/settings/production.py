# retreat_backend/settings/production.py
from .base import *
from .base import _env_bool, _split_csv
import sentry_sdk
from sentry_sdk.integrations.celery import CeleryIntegration
from sentry_sdk.integrations.django import DjangoIntegration

# -----------------------------------------------------------------------------
# Production Settings
# -----------------------------------------------------------------------------
DEBUG = False

ALLOWED_HOSTS = _split_csv("DJANGO_ALLOWED_HOSTS")
if not ALLOWED_HOSTS:
    raise ValueError("DJANGO_ALLOWED_HOSTS must be set in production")

SECURE_SSL_REDIRECT = True
SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True
SECURE_HSTS_PRELOAD = True

# -----------------------------------------------------------------------------
# Database Configuration (Production)
# -----------------------------------------------------------------------------
if not os.getenv("DATABASE_URL"):
    raise ValueError("DATABASE_URL is required in production")

DATABASES["default"]["CONN_MAX_AGE"] = 600  # 10 minutes

# -----------------------------------------------------------------------------
# Third-party credentials
# -----------------------------------------------------------------------------
if not STRIPE_SECRET_KEY or not STRIPE_WEBHOOK_SECRET:
    raise ValueError("STRIPE_SECRET_KEY and STRIPE_WEBHOOK_SECRET must be set in production")

NOTIFICATIONS_ASYNC = _env_bool("NOTIFICATIONS_ASYNC", "1")

# -----------------------------------------------------------------------------
# Logging (Production)
# -----------------------------------------------------------------------------
LOG_DIR.mkdir(parents=True, exist_ok=True)
LOGGING["handlers"]["console"]["formatter"] = "json"

# -----------------------------------------------------------------------------
# Error Tracking
# -----------------------------------------------------------------------------
SENTRY_DSN = os.getenv("SENTRY_DSN", "")
if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        integrations=[
            DjangoIntegration(transaction_style="url"),
            CeleryIntegration(),
        ],
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1")),
        send_default_pii=False,
        environment=ENVIRONMENT,
        release=os.getenv("APP_VERSION", "unknown"),
    )
