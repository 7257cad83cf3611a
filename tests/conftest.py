# ===============================================================================
# PYTEST CONFIGURATION FOR AGGREKART PROMOTIONS
# ===============================================================================
"""
Global test configuration for the promotion engine.

Test Structure:
- tests/promotions/ holds engine, account and API tests
- tests/factories/ holds shared object builders
- Naming convention: test_{area}.py

Run all tests: pytest tests/
"""

import os

import django
import pytest


def pytest_configure():
    """Configure Django settings for pytest"""
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.test')

    # Configure Django
    django.setup()


@pytest.fixture(autouse=True)
def clear_throttle_cache():
    """Throttle counters live in the cache; start every test with a clean slate"""
    from django.core.cache import cache  # noqa: PLC0415

    cache.clear()
    yield
    cache.clear()
