"""
Django settings for the Aggrekart promotion engine - Base Configuration
Promotions, coupons and Aggre Coin loyalty for construction-materials orders.
"""

import os
from pathlib import Path
from typing import Any

# ===============================================================================
# CORE DJANGO SETTINGS
# ===============================================================================

BASE_DIR = Path(__file__).resolve().parent.parent.parent

# Application definition
DJANGO_APPS: list[str] = [
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
]

THIRD_PARTY_APPS: list[str] = [
    'rest_framework',
]

LOCAL_APPS: list[str] = [
    'apps.promotions',  # 🎟️ Benefits, redemption ledger & Aggre Coins
]

INSTALLED_APPS: list[str] = DJANGO_APPS + THIRD_PARTY_APPS + LOCAL_APPS

MIDDLEWARE: list[str] = [
    'apps.common.middleware.RequestIDMiddleware',
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
            ],
        },
    },
]

WSGI_APPLICATION = 'config.wsgi.application'
ASGI_APPLICATION = 'config.asgi.application'

# ===============================================================================
# DATABASE CONFIGURATION
# ===============================================================================

DATABASES: dict[str, dict[str, Any]] = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': os.environ.get('DB_NAME', 'aggrekart'),
        'USER': os.environ.get('DB_USER', 'aggrekart'),
        'PASSWORD': os.environ.get('DB_PASSWORD', 'development_password'),
        'HOST': os.environ.get('DB_HOST', 'localhost'),
        'PORT': os.environ.get('DB_PORT', '5432'),
        'CONN_MAX_AGE': 60,  # Database connection pooling
        'OPTIONS': {
            'application_name': 'aggrekart_promotions',
            'connect_timeout': int(os.environ.get('DB_CONNECT_TIMEOUT', '5')),
        },
    }
}

# ===============================================================================
# INTERNATIONALIZATION & LOCALIZATION
# ===============================================================================

LANGUAGE_CODE = 'en-in'
TIME_ZONE = 'Asia/Kolkata'  # Daily caps and valid hours use Indian local time
USE_I18N = True
USE_TZ = True

# ===============================================================================
# STATIC FILES
# ===============================================================================

STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

# ===============================================================================
# SESSION & COOKIE SETTINGS
# ===============================================================================

SESSION_COOKIE_AGE = 86400  # 24 hours
SESSION_COOKIE_HTTPONLY = True
CSRF_COOKIE_HTTPONLY = True
CSRF_TRUSTED_ORIGINS: list[str] = []

SECURE_CONTENT_TYPE_NOSNIFF = True
X_FRAME_OPTIONS = 'DENY'

# ===============================================================================
# DJANGO REST FRAMEWORK
# ===============================================================================

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework.authentication.SessionAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
    'DEFAULT_THROTTLE_RATES': {
        'promotions_apply': os.environ.get('PROMOTIONS_APPLY_RATE', '60/min'),
        'promotions_evaluate': os.environ.get('PROMOTIONS_EVALUATE_RATE', '120/min'),
    },
}

# ===============================================================================
# PROMOTION ENGINE CONFIGURATION
# ===============================================================================

PROMOTIONS: dict[str, Any] = {
    # Optimistic commit retries before ContentionError
    'COMMIT_MAX_ATTEMPTS': int(os.environ.get('PROMOTIONS_COMMIT_MAX_ATTEMPTS', '5')),
    # Aggre Coins
    'COIN_EXPIRY_DAYS': int(os.environ.get('PROMOTIONS_COIN_EXPIRY_DAYS', '365')),
    'MIN_COIN_REDEMPTION': int(os.environ.get('PROMOTIONS_MIN_COIN_REDEMPTION', '100')),
    # Referrals
    'REFERRAL_WELCOME_BONUS': 100,
    'REFERRAL_REWARD': 100,
    'REFERRAL_MONTHLY_LIMIT': 10,
    # Customer attributes come from the user-account service
    'CUSTOMER_DIRECTORY': os.environ.get(
        'PROMOTIONS_CUSTOMER_DIRECTORY', 'apps.promotions.directory.HttpCustomerDirectory'
    ),
    'CUSTOMER_SERVICE_URL': os.environ.get('CUSTOMER_SERVICE_URL', 'http://localhost:5000/api'),
    'CUSTOMER_SERVICE_TIMEOUT': int(os.environ.get('CUSTOMER_SERVICE_TIMEOUT', '5')),
}

# ===============================================================================
# DEFAULT AUTO FIELD
# ===============================================================================

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# ===============================================================================
# SECURITY SETTINGS (Base - override in prod.py)
# ===============================================================================

# SECRET_KEY validation for production security
SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY')
if not SECRET_KEY:
    # Development fallback - never use this in production
    import warnings
    warnings.warn(
        "🚨 SECURITY WARNING: Using default SECRET_KEY. "
        "Set DJANGO_SECRET_KEY environment variable for production!",
        UserWarning,
        stacklevel=2
    )
    SECRET_KEY = 'django-insecure-dev-key-only-change-in-production-or-tests'  # noqa: S105


def validate_production_secret_key() -> None:
    """Validate SECRET_KEY meets production security requirements"""
    if SECRET_KEY and SECRET_KEY.startswith('django-insecure-'):
        raise ValueError(
            "🔥 CRITICAL SECURITY ERROR: Cannot use insecure SECRET_KEY in production! "
            "Set DJANGO_SECRET_KEY to a freshly generated key."
        )
