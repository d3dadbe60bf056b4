"""
Typed, per-operation views over core.SiteSetting rows.

Each resolver reads the stored JSON once, merges it over defaults and
returns a frozen dataclass, so a single operation sees one consistent
configuration even if an admin edits settings concurrently.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping

from django.conf import settings

from .exceptions import ConfigurationMissing
from .models import SiteSetting

ADMIN_CATEGORIES = ("bookings", "payments", "waitlist")

ADMIN_NOTIFICATION_DEFAULTS: Dict[str, Any] = {
    "general_email": "",
    "bookings_email": "",
    "payments_email": "",
    "waitlist_email": "",
    "notify_on_new_booking": True,
    "notify_on_payment_received": True,
    "notify_on_payment_failed": True,
    "notify_on_waitlist_join": True,
    "notify_on_waitlist_response": True,
}

BOOKING_DEFAULTS: Dict[str, Any] = {
    "auto_confirm": False,
}


def _load(key: str, defaults: Mapping[str, Any]) -> Dict[str, Any]:
    row = SiteSetting.objects.filter(key=key).only("value").first()
    merged = dict(defaults)
    if row and isinstance(row.value, dict):
        merged.update({k: v for k, v in row.value.items() if k in defaults})
    return merged


@dataclass(frozen=True)
class AdminNotificationConfig:
    general_email: str = ""
    env_default: str = ""
    category_emails: Mapping[str, str] = field(default_factory=dict)
    flags: Mapping[str, bool] = field(default_factory=dict)

    def is_enabled(self, flag: str | None) -> bool:
        if not flag:
            return True
        return bool(self.flags.get(flag, True))

    def recipient_for(self, category: str) -> str:
        """Category-specific, then general, then the environment default."""
        for candidate in (self.category_emails.get(category, ""), self.general_email, self.env_default):
            candidate = (candidate or "").strip()
            if candidate:
                return candidate
        raise ConfigurationMissing(f"No admin email configured for category '{category}'", category=category)


@dataclass(frozen=True)
class BookingConfig:
    auto_confirm: bool = False


def get_admin_notification_config() -> AdminNotificationConfig:
    data = _load(SiteSetting.KEY_ADMIN_NOTIFICATIONS, ADMIN_NOTIFICATION_DEFAULTS)
    return AdminNotificationConfig(
        general_email=str(data.get("general_email") or ""),
        env_default=getattr(settings, "ADMIN_NOTIFICATION_EMAIL", "") or "",
        category_emails={c: str(data.get(f"{c}_email") or "") for c in ADMIN_CATEGORIES},
        flags={k: bool(v) for k, v in data.items() if k.startswith("notify_on_")},
    )


def get_booking_config() -> BookingConfig:
    data = _load(SiteSetting.KEY_BOOKING, BOOKING_DEFAULTS)
    return BookingConfig(auto_confirm=bool(data.get("auto_confirm")))

