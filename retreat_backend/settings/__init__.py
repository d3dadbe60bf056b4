# retreat_backend/settings/__init__.py
"""
Django settings package for the retreat booking backend.

Environment-specific modules:
- development: local work, console email, SQLite unless DATABASE_URL is set
- test: in-memory SQLite, locmem email, eager Celery
- production: hardened, requires DATABASE_URL and Stripe credentials

The module is chosen from the ENVIRONMENT variable (default: development).
"""

import os
import sys

ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()

VALID_ENVIRONMENTS = ["development", "test", "production"]
if ENVIRONMENT not in VALID_ENVIRONMENTS:
    raise ValueError(
        f"Invalid ENVIRONMENT '{ENVIRONMENT}'. "
        f"Must be one of: {', '.join(VALID_ENVIRONMENTS)}"
    )

if ENVIRONMENT == "production":
    from .production import *
elif ENVIRONMENT == "test":
    from .test import *
else:
    from .development import *


def validate_settings():
    """Validate critical settings are properly configured."""
    errors = []

    if not DATABASES.get("default"):
        errors.append("Database configuration is missing")

    if ENVIRONMENT == "production" and DEBUG:
        errors.append("DEBUG should be False in production")

    if ENVIRONMENT == "production" and globals().get("CORS_ALLOW_ALL_ORIGINS", False):
        errors.append("CORS_ALLOW_ALL_ORIGINS should not be True in production")

    if not DEFAULT_FROM_EMAIL:
        errors.append("DEFAULT_FROM_EMAIL must be set")

    if errors:
        error_msg = "\n".join([f"  - {error}" for error in errors])
        raise ValueError(f"Settings validation failed:\n{error_msg}")


if "migrate" not in sys.argv and "collectstatic" not in sys.argv:
    validate_settings()
