"""
Collaborator ports for the promotion engine.

The engine never owns customer or order data. Customer attributes come from a
CustomerDirectory (the user-account service in production); order composition
arrives with each call as an OrderContext.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

import requests
from django.core.exceptions import ValidationError
from django.utils.module_loading import import_string

from .conf import promotions_setting
from .exceptions import NotFoundError, StorageUnavailableError

logger = logging.getLogger(__name__)

HTTP_NOT_FOUND = 404
HTTP_SUCCESS_THRESHOLD = 400


@dataclass(frozen=True)
class ActorProfile:
    """Customer attributes that targeting and coin earning depend on."""

    customer_id: str
    customer_type: str = "others"
    membership_tier: str = "silver"
    state: str = ""
    city: str = ""
    order_count: int = 0
    total_order_value: Decimal = Decimal("0")


@dataclass(frozen=True)
class OrderContext:
    """
    The order a benefit is evaluated against.

    delivery_state/delivery_city override the customer's home location when
    the order ships elsewhere.
    """

    value: Decimal
    order_id: str | None = None
    categories: frozenset[str] = field(default_factory=frozenset)
    quantity: int = 1
    supplier_id: str | None = None
    placed_at: datetime | None = None
    delivery_state: str | None = None
    delivery_city: str | None = None

    def __post_init__(self) -> None:
        try:
            value = Decimal(str(self.value))
        except InvalidOperation as e:
            raise ValidationError(f"Invalid order value: {self.value!r}") from e
        if value < 0:
            raise ValidationError("Order value must not be negative")
        if self.quantity < 0:
            raise ValidationError("Order quantity must not be negative")
        object.__setattr__(self, "value", value)
        object.__setattr__(self, "categories", frozenset(self.categories))


class CustomerDirectory(Protocol):
    def get_profile(self, customer_id: str) -> ActorProfile: ...


# ===============================================================================
# Implementations
# ===============================================================================


class StaticCustomerDirectory:
    """In-process directory, used by tests and local development."""

    def __init__(self, profiles: list[ActorProfile] | None = None) -> None:
        self._profiles: dict[str, ActorProfile] = {}
        for profile in profiles or []:
            self.register(profile)

    def register(self, profile: ActorProfile) -> None:
        self._profiles[profile.customer_id] = profile

    def get_profile(self, customer_id: str) -> ActorProfile:
        try:
            return self._profiles[customer_id]
        except KeyError:
            raise NotFoundError("Customer not found", customer_id=customer_id) from None


class HttpCustomerDirectory:
    """Reads customer profiles from the user-account service."""

    def __init__(self, base_url: str | None = None, timeout: int | None = None) -> None:
        self.base_url = (base_url or promotions_setting("CUSTOMER_SERVICE_URL")).rstrip("/")
        self.timeout = timeout or promotions_setting("CUSTOMER_SERVICE_TIMEOUT")

    def get_profile(self, customer_id: str) -> ActorProfile:
        url = f"{self.base_url}/customers/{customer_id}/profile"
        try:
            response = requests.get(url, timeout=self.timeout, headers={"Accept": "application/json"})
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            logger.warning("⚠️ [Directory] Customer service unreachable: %s", e, extra={"customer_id": customer_id})
            raise StorageUnavailableError(operation="get_profile", error=str(e)) from e

        if response.status_code == HTTP_NOT_FOUND:
            raise NotFoundError("Customer not found", customer_id=customer_id)
        if response.status_code >= HTTP_SUCCESS_THRESHOLD:
            logger.warning(
                "⚠️ [Directory] Customer service returned HTTP %s",
                response.status_code,
                extra={"customer_id": customer_id},
            )
            raise StorageUnavailableError(operation="get_profile", status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError as e:
            logger.warning(
                "⚠️ [Directory] Customer service sent a malformed profile", extra={"customer_id": customer_id}
            )
            raise StorageUnavailableError(operation="get_profile", error="malformed response") from e

        return self._parse_profile(customer_id, payload)

    @staticmethod
    def _parse_profile(customer_id: str, payload: dict[str, Any]) -> ActorProfile:
        address = payload.get("address") or {}
        stats = payload.get("orderStats") or {}
        return ActorProfile(
            customer_id=customer_id,
            customer_type=payload.get("customerType") or "others",
            membership_tier=payload.get("membershipTier") or "silver",
            state=address.get("state") or "",
            city=address.get("city") or "",
            order_count=int(stats.get("totalOrders") or 0),
            total_order_value=Decimal(str(stats.get("totalValue") or 0)),
        )


def get_customer_directory() -> CustomerDirectory:
    """Instantiate the directory configured in PROMOTIONS["CUSTOMER_DIRECTORY"]."""
    directory_class = import_string(promotions_setting("CUSTOMER_DIRECTORY"))
    return directory_class()
