"""
Eligibility evaluation for benefits.

Pure functions: every input (including usage counts) is passed in, nothing is
read from or written to storage. Checks run in a fixed order and the first
failure wins:

1. lifecycle and time window
2. usage caps
3. order value bounds
4. targeting
5. category and quantity conditions
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Any

from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from .directory import ActorProfile, OrderContext
from .models import WEEKDAYS, Benefit


class DenialReason(models.TextChoices):
    EXPIRED_OR_INACTIVE = "expired_or_inactive", _("Benefit is expired or inactive")
    USAGE_CAP_EXCEEDED = "usage_cap_exceeded", _("Usage limit reached")
    ORDER_VALUE_OUT_OF_RANGE = "order_value_out_of_range", _("Order value outside the allowed range")
    TARGETING_MISMATCH = "targeting_mismatch", _("Benefit is not available for this customer")
    CATEGORY_MISMATCH = "category_mismatch", _("Order does not meet product conditions")
    BUDGET_EXHAUSTED = "budget_exhausted", _("Promotion budget exhausted")


@dataclass(frozen=True)
class UsageSnapshot:
    """Redemption counts for one benefit at evaluation time."""

    total: int = 0
    by_customer: int = 0
    today: int = 0


@dataclass(frozen=True)
class EligibilityResult:
    eligible: bool
    reason: DenialReason | None = None
    detail: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def allow(cls) -> EligibilityResult:
        return cls(eligible=True)

    @classmethod
    def deny(cls, reason: DenialReason, **detail: Any) -> EligibilityResult:
        return cls(eligible=False, reason=reason, detail=detail)

    @property
    def message(self) -> str:
        return "" if self.reason is None else str(self.reason.label)


def evaluate(
    benefit: Benefit,
    actor: ActorProfile,
    order: OrderContext,
    usage: UsageSnapshot,
    now: datetime | None = None,
) -> EligibilityResult:
    """Decide whether benefit may be applied by actor to order."""
    if order.value < 0:
        raise ValidationError("Order value must not be negative")
    now = now or timezone.now()

    for denial in (
        check_lifecycle(benefit, now, placed_at=order.placed_at),
        check_usage_caps(benefit, usage),
        check_order_value(benefit, order),
        check_targeting(benefit, actor, order),
        check_conditions(benefit, order),
    ):
        if denial is not None:
            return denial
    return EligibilityResult.allow()


def check_lifecycle(
    benefit: Benefit, now: datetime, placed_at: datetime | None = None
) -> EligibilityResult | None:
    """Status must be active, now inside validity and the order inside day/hour windows."""
    if benefit.status != Benefit.STATUS_ACTIVE:
        return EligibilityResult.deny(DenialReason.EXPIRED_OR_INACTIVE, status=benefit.status)
    if now < benefit.valid_from:
        return EligibilityResult.deny(
            DenialReason.EXPIRED_OR_INACTIVE, status="not_started", valid_from=benefit.valid_from.isoformat()
        )
    if now > benefit.valid_until:
        return EligibilityResult.deny(
            DenialReason.EXPIRED_OR_INACTIVE, status=Benefit.STATUS_EXPIRED, valid_until=benefit.valid_until.isoformat()
        )

    conditions = benefit.conditions
    local_moment = timezone.localtime(placed_at or now)
    if conditions.valid_days:
        weekday = WEEKDAYS[local_moment.weekday()]
        if weekday not in conditions.valid_days:
            return EligibilityResult.deny(
                DenialReason.EXPIRED_OR_INACTIVE, window="day", day=weekday, valid_days=sorted(conditions.valid_days)
            )
    if conditions.valid_hours_start is not None and conditions.valid_hours_end is not None:
        if not _within_hours(local_moment.time(), conditions.valid_hours_start, conditions.valid_hours_end):
            return EligibilityResult.deny(
                DenialReason.EXPIRED_OR_INACTIVE,
                window="hours",
                start=conditions.valid_hours_start.isoformat(),
                end=conditions.valid_hours_end.isoformat(),
            )
    return None


def _within_hours(moment: time, start: time, end: time) -> bool:
    if start <= end:
        return start <= moment <= end
    # Window wraps past midnight
    return moment >= start or moment <= end


def check_usage_caps(benefit: Benefit, usage: UsageSnapshot) -> EligibilityResult | None:
    if benefit.total_cap is not None and usage.total >= benefit.total_cap:
        return EligibilityResult.deny(
            DenialReason.USAGE_CAP_EXCEEDED, cap="total", limit=benefit.total_cap, used=usage.total
        )
    if usage.by_customer >= benefit.per_user_cap:
        return EligibilityResult.deny(
            DenialReason.USAGE_CAP_EXCEEDED, cap="per_user", limit=benefit.per_user_cap, used=usage.by_customer
        )
    if benefit.daily_cap is not None and usage.today >= benefit.daily_cap:
        return EligibilityResult.deny(
            DenialReason.USAGE_CAP_EXCEEDED, cap="daily", limit=benefit.daily_cap, used=usage.today
        )
    return None


def check_order_value(benefit: Benefit, order: OrderContext) -> EligibilityResult | None:
    conditions = benefit.conditions
    if order.value < conditions.min_order_value:
        return EligibilityResult.deny(
            DenialReason.ORDER_VALUE_OUT_OF_RANGE,
            bound="min",
            min_order_value=str(conditions.min_order_value),
            order_value=str(order.value),
        )
    if conditions.max_order_value is not None and order.value > conditions.max_order_value:
        return EligibilityResult.deny(
            DenialReason.ORDER_VALUE_OUT_OF_RANGE,
            bound="max",
            max_order_value=str(conditions.max_order_value),
            order_value=str(order.value),
        )
    return None


def check_targeting(benefit: Benefit, actor: ActorProfile, order: OrderContext) -> EligibilityResult | None:
    targeting = benefit.targeting

    if not targeting.admits(targeting.customer_types, actor.customer_type):
        return EligibilityResult.deny(DenialReason.TARGETING_MISMATCH, axis="customer_type", value=actor.customer_type)
    if not targeting.admits(targeting.membership_tiers, actor.membership_tier):
        return EligibilityResult.deny(
            DenialReason.TARGETING_MISMATCH, axis="membership_tier", value=actor.membership_tier
        )

    state = order.delivery_state or actor.state
    if not targeting.admits_state(state):
        return EligibilityResult.deny(DenialReason.TARGETING_MISMATCH, axis="state", value=state)
    city = order.delivery_city or actor.city
    if not targeting.admits_city(city):
        return EligibilityResult.deny(DenialReason.TARGETING_MISMATCH, axis="city", value=city)

    if targeting.new_customers_only and actor.order_count > 0:
        return EligibilityResult.deny(
            DenialReason.TARGETING_MISMATCH, axis="new_customers_only", order_count=actor.order_count
        )
    if targeting.returning_customers_only and actor.order_count == 0:
        return EligibilityResult.deny(
            DenialReason.TARGETING_MISMATCH, axis="returning_customers_only", order_count=actor.order_count
        )

    if benefit.is_supplier_scoped and order.supplier_id != benefit.supplier_id:
        return EligibilityResult.deny(DenialReason.TARGETING_MISMATCH, axis="supplier", value=order.supplier_id)
    return None


def check_conditions(benefit: Benefit, order: OrderContext) -> EligibilityResult | None:
    conditions = benefit.conditions
    if conditions.eligible_categories and not (conditions.eligible_categories & order.categories):
        return EligibilityResult.deny(
            DenialReason.CATEGORY_MISMATCH,
            eligible_categories=sorted(conditions.eligible_categories),
            order_categories=sorted(order.categories),
        )
    if order.quantity < conditions.min_quantity:
        return EligibilityResult.deny(
            DenialReason.CATEGORY_MISMATCH, min_quantity=conditions.min_quantity, quantity=order.quantity
        )
    return None
