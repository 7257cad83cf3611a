"""
Logging infrastructure for the Aggrekart engine.

- RequestIDFilter: structured logging with request correlation

Request context is set by apps.common.middleware.RequestIDMiddleware and
attached to every record passing through the filter, so handlers can format
%(request_id)s alongside the usual fields.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

# Thread-local storage for request context
_request_context = threading.local()

_CONTEXT_ATTRS = ("request_id", "user_id", "ip_address")


# =============================================================================
# REQUEST CONTEXT FUNCTIONS
# =============================================================================


def set_request_context(**kwargs: Any) -> None:
    """Set request context for the current thread"""
    for key, value in kwargs.items():
        setattr(_request_context, key, value)


def clear_request_context() -> None:
    """Clear request context for the current thread"""
    for attr in _CONTEXT_ATTRS:
        if hasattr(_request_context, attr):
            delattr(_request_context, attr)


# =============================================================================
# REQUEST ID FILTER - Structured Logging with Request Correlation
# =============================================================================


class RequestIDFilter(logging.Filter):
    """
    Add request ID and context to log records.

    This filter injects the request ID from thread-local storage
    into every log record, enabling request tracing across logs.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """Add request_id attribute to log record"""
        if not hasattr(record, "request_id"):
            record.request_id = getattr(_request_context, "request_id", "-")  # type: ignore[attr-defined]
        if not hasattr(record, "user_id"):
            record.user_id = getattr(_request_context, "user_id", None)  # type: ignore[attr-defined]
        if not hasattr(record, "ip_address"):
            record.ip_address = getattr(_request_context, "ip_address", None)  # type: ignore[attr-defined]
        return True
