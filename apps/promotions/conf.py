"""
Engine settings with defaults, overridable through settings.PROMOTIONS.
"""

from __future__ import annotations

from typing import Any

from django.conf import settings

DEFAULTS: dict[str, Any] = {
    "COMMIT_MAX_ATTEMPTS": 5,
    "COIN_EXPIRY_DAYS": 365,
    "MIN_COIN_REDEMPTION": 100,
    "REFERRAL_WELCOME_BONUS": 100,
    "REFERRAL_REWARD": 100,
    "REFERRAL_MONTHLY_LIMIT": 10,
    "CUSTOMER_DIRECTORY": "apps.promotions.directory.HttpCustomerDirectory",
    "CUSTOMER_SERVICE_URL": "http://localhost:5000/api",
    "CUSTOMER_SERVICE_TIMEOUT": 5,
}


def promotions_setting(name: str) -> Any:
    """Read one engine setting, falling back to the default."""
    configured = getattr(settings, "PROMOTIONS", {})
    if name in configured:
        return configured[name]
    return DEFAULTS[name]
