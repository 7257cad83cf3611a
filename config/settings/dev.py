"""
Development settings for the Aggrekart promotion engine
Fast iteration with SQLite and colored request-traced logs.
"""

import logging
import os

from .base import *  # noqa: F403

# ===============================================================================
# DEVELOPMENT FLAGS
# ===============================================================================

DEBUG = True

ALLOWED_HOSTS = ["*"]
CSRF_TRUSTED_ORIGINS = [
    "http://localhost:8000",
    "http://127.0.0.1:8000",
]

SECRET_KEY = "django-insecure-dev-key-change-for-production"

# ===============================================================================
# DATABASE FOR DEVELOPMENT (SQLite for speed)
# ===============================================================================

if os.environ.get("USE_POSTGRES") != "true":
    # Override DATABASES for development with SQLite
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": str(BASE_DIR / "db.sqlite3"),  # noqa: F405
        }
    }

# ===============================================================================
# DRF (browsable API in development)
# ===============================================================================

REST_FRAMEWORK["DEFAULT_RENDERER_CLASSES"] = [  # noqa: F405
    "rest_framework.renderers.JSONRenderer",
    "rest_framework.renderers.BrowsableAPIRenderer",
]

# ===============================================================================
# LOGGING CONFIGURATION - Enhanced with Request ID Tracing
# ===============================================================================


class _ServiceNameFilter(logging.Filter):
    """Inject a fixed service tag into every log record (dev-only)."""

    def __init__(self, service_name: str = "PROMO") -> None:
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        setattr(record, "service_name", self.service_name)  # noqa: B010
        return True


LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "unified": {
            "()": "colorlog.ColoredFormatter",
            "format": "{asctime} {log_color}{levelname:<8}{reset} {service_name} {name:<32} {message} [{request_id}]",
            "datefmt": "%Y-%m-%d %H:%M:%S",
            "style": "{",
            "log_colors": {
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "bold_red",
            },
        },
    },
    "filters": {
        "add_request_id": {
            "()": "apps.common.logging.RequestIDFilter",
        },
        "add_service_name": {
            "()": _ServiceNameFilter,
            "service_name": "PROMO",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "unified",
            "filters": ["add_request_id", "add_service_name"],
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "INFO",
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
        "apps": {
            "handlers": ["console"],
            "level": "DEBUG",
            "propagate": False,
        },
    },
}
