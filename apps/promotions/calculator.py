"""
Discount and coin calculations. Pure and deterministic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Any

from django.core.exceptions import ValidationError

from .models import Benefit, Reward

ONE = Decimal("1")
HUNDRED = Decimal("100")

# Aggre Coin earning: 1% of order value, scaled by tier and customer type
COIN_EARNING_RATE = Decimal("0.01")
TIER_COIN_MULTIPLIERS: dict[str, Decimal] = {
    "silver": Decimal("1.0"),
    "gold": Decimal("1.5"),
    "platinum": Decimal("2.0"),
}
CUSTOMER_TYPE_COIN_MULTIPLIERS: dict[str, Decimal] = {
    "house_owner": Decimal("1.0"),
    "mason": Decimal("1.2"),
    "builder_contractor": Decimal("1.3"),
    "others": Decimal("1.1"),
}


def round_half_up(value: Decimal) -> int:
    """Round to whole currency units, halves away from zero."""
    return int(value.quantize(ONE, rounding=ROUND_HALF_UP))


def floor_units(value: Decimal) -> int:
    return int(value.quantize(ONE, rounding=ROUND_DOWN))


@dataclass(frozen=True)
class DiscountResult:
    """
    Result of discount calculation.

    Attributes:
        amount: Discount in whole currency units.
        free_delivery: Whether delivery charges are waived.
        coins_multiplier: Multiplier for coins earned on the order (1 = none).
        breakdown: Intermediate values for display and audit.
    """

    amount: int = 0
    free_delivery: bool = False
    coins_multiplier: Decimal = ONE
    description: str = ""
    breakdown: dict[str, Any] = field(default_factory=dict)


def compute(benefit: Benefit | Reward, order_value: Decimal) -> DiscountResult:
    """Compute the discount a benefit's reward gives on order_value."""
    order_value = Decimal(str(order_value))
    if order_value < 0:
        raise ValidationError("Order value must not be negative")
    reward = benefit.reward if isinstance(benefit, Benefit) else benefit

    if reward.kind == Benefit.REWARD_PERCENTAGE:
        exact = order_value * reward.value / HUNDRED
        capped = reward.cap_amount is not None and exact > reward.cap_amount
        if capped:
            exact = reward.cap_amount
        amount = round_half_up(exact)
        return DiscountResult(
            amount=amount,
            description=f"{reward.value.normalize():f}% off",
            breakdown={"percent": str(reward.value), "capped": capped, "cap_amount": _str_or_none(reward.cap_amount)},
        )

    if reward.kind == Benefit.REWARD_FIXED_AMOUNT:
        amount = round_half_up(min(reward.value, order_value))
        return DiscountResult(
            amount=amount,
            description=f"₹{amount} off",
            breakdown={"fixed_value": str(reward.value)},
        )

    if reward.kind == Benefit.REWARD_FREE_DELIVERY:
        return DiscountResult(free_delivery=True, description="Free delivery")

    if reward.kind == Benefit.REWARD_COINS_MULTIPLIER:
        return DiscountResult(
            coins_multiplier=reward.value,
            description=f"{reward.value.normalize():f}x Aggre Coins",
        )

    raise ValidationError(f"Unknown reward kind: {reward.kind}")


def _str_or_none(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


# ===============================================================================
# Coin earning
# ===============================================================================


@dataclass(frozen=True)
class CoinEarning:
    coins: int
    breakdown: dict[str, str]


def calculate_order_coins(
    order_value: Decimal,
    membership_tier: str,
    customer_type: str,
    promo_multiplier: Decimal = ONE,
) -> CoinEarning:
    """Coins earned for a completed order, rounded down to whole coins."""
    order_value = Decimal(str(order_value))
    if order_value < 0:
        raise ValidationError("Order value must not be negative")
    tier_multiplier = TIER_COIN_MULTIPLIERS.get(membership_tier, ONE)
    type_multiplier = CUSTOMER_TYPE_COIN_MULTIPLIERS.get(customer_type, ONE)

    coins = floor_units(order_value * COIN_EARNING_RATE * tier_multiplier * type_multiplier * promo_multiplier)
    return CoinEarning(
        coins=coins,
        breakdown={
            "order_value": str(order_value),
            "earning_rate": str(COIN_EARNING_RATE),
            "tier_multiplier": str(tier_multiplier),
            "customer_type_multiplier": str(type_multiplier),
            "promo_multiplier": str(promo_multiplier),
        },
    )
