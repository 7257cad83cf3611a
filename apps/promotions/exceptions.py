"""
Exceptions raised by the promotion engine.

Business ineligibility is reported as a denial result, never raised.
Malformed input raises django.core.exceptions.ValidationError.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from django.db import InterfaceError, OperationalError


class PromotionsError(Exception):
    """Base class for promotion engine failures."""

    default_message = "Promotion engine error"

    def __init__(self, message: str | None = None, **detail: Any) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class ContentionError(PromotionsError):
    """Optimistic commit kept losing to concurrent writers."""

    default_message = "Too many concurrent updates, please retry"


class InsufficientBalanceError(PromotionsError):
    default_message = "Insufficient coin balance"


class CouponAlreadyUsedError(PromotionsError):
    default_message = "Coupon has already been used"


class NotFoundError(PromotionsError):
    default_message = "Not found"


class StorageUnavailableError(PromotionsError):
    """Storage failed before anything was written; safe to retry."""

    default_message = "Storage temporarily unavailable"


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """Surface database connectivity failures as StorageUnavailableError."""
    try:
        yield
    except (OperationalError, InterfaceError) as e:
        raise StorageUnavailableError(operation=operation, error=str(e)) from e
