"""
Test settings for the Aggrekart promotion engine
Fast, isolated testing environment.
"""

from .base import *  # noqa: F403

# ===============================================================================
# TEST FLAGS
# ===============================================================================

DEBUG = False

# ===============================================================================
# TEST DATABASE (In-memory for speed)
# ===============================================================================

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
        'OPTIONS': {
            'timeout': 20,
        }
    }
}

# ===============================================================================
# DISABLE MIGRATIONS FOR FASTER TESTS
# ===============================================================================

class DisableMigrations:
    def __contains__(self, item: str) -> bool:
        return True

    def __getitem__(self, item: str) -> None:
        return None

MIGRATION_MODULES = DisableMigrations()

# ===============================================================================
# PASSWORD HASHER (Fast for tests)
# ===============================================================================

PASSWORD_HASHERS = [
    'django.contrib.auth.hashers.MD5PasswordHasher',  # Fast but insecure (test only)
]

# ===============================================================================
# LOGGING (Minimal for tests)
# ===============================================================================

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {
        'null': {
            'class': 'logging.NullHandler',
        },
    },
    'root': {
        'handlers': ['null'],
        'level': 'CRITICAL',
    },
}

# ===============================================================================
# PROMOTION ENGINE (In-process customer directory)
# ===============================================================================

PROMOTIONS = {
    **PROMOTIONS,  # noqa: F405
    'COMMIT_MAX_ATTEMPTS': 5,
    'CUSTOMER_DIRECTORY': 'apps.promotions.directory.StaticCustomerDirectory',
}

# ===============================================================================
# SECURITY (Relaxed for tests)
# ===============================================================================

SECRET_KEY = 'django-test-key-not-secure'
ALLOWED_HOSTS = ['testserver', 'localhost', '127.0.0.1']

# Explicit test flag so views can soften behaviors
TESTING = True
