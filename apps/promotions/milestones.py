"""
Order milestones and their one-time coin rewards.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from decimal import Decimal

from django.db import IntegrityError, transaction

from apps.common.types import CustomerId

from .accounts import CoinAccountService
from .models import CoinTransaction, Milestone, MilestoneAchievement

logger = logging.getLogger(__name__)

ORDER_COUNT_MILESTONES: tuple[tuple[Milestone, int], ...] = (
    (Milestone.FIRST_ORDER, 1),
    (Milestone.ORDERS_5, 5),
    (Milestone.ORDERS_20, 20),
    (Milestone.ORDERS_50, 50),
    (Milestone.ORDERS_100, 100),
)

ORDER_VALUE_MILESTONES: tuple[tuple[Milestone, Decimal], ...] = (
    (Milestone.VALUE_10K, Decimal("10000")),
    (Milestone.VALUE_50K, Decimal("50000")),
    (Milestone.VALUE_100K, Decimal("100000")),
)

MILESTONE_REWARDS: dict[str, int] = {
    Milestone.FIRST_ORDER: 100,
    Milestone.ORDERS_5: 250,
    Milestone.ORDERS_20: 500,
    Milestone.ORDERS_50: 1000,
    Milestone.ORDERS_100: 2000,
    Milestone.VALUE_10K: 300,
    Milestone.VALUE_50K: 1500,
    Milestone.VALUE_100K: 3000,
}


def evaluate_milestones(order_count: int, total_order_value: Decimal, existing: Iterable[str]) -> list[Milestone]:
    """Milestones crossed by these totals and not yet achieved, in threshold order."""
    achieved = set(existing)
    crossed = [m for m, threshold in ORDER_COUNT_MILESTONES if order_count >= threshold]
    crossed += [m for m, threshold in ORDER_VALUE_MILESTONES if total_order_value >= threshold]
    return [m for m in crossed if m not in achieved]


def award_milestones(
    customer_id: CustomerId, order_count: int, total_order_value: Decimal
) -> list[MilestoneAchievement]:
    """Record and reward each newly crossed milestone exactly once."""
    account = CoinAccountService.get_or_create_account(customer_id)
    existing = account.milestones.values_list("milestone", flat=True)
    awarded: list[MilestoneAchievement] = []

    for milestone in evaluate_milestones(order_count, Decimal(str(total_order_value)), existing):
        reward = MILESTONE_REWARDS[milestone]
        try:
            with transaction.atomic():
                achievement = MilestoneAchievement.objects.create(account=account, milestone=milestone, reward=reward)
                CoinAccountService.add_coins(
                    customer_id,
                    reward,
                    CoinTransaction.BONUS,
                    description=f"Milestone reward: {milestone.label}",
                    idempotency_key=f"milestone:{milestone.value}",
                    metadata={"milestone": milestone.value},
                )
        except IntegrityError:
            # Recorded by a concurrent call
            continue
        awarded.append(achievement)
        logger.info(
            "Milestone %s achieved by %s (+%d coins)",
            milestone.value,
            customer_id,
            reward,
            extra={"customer_id": customer_id, "milestone": milestone.value},
        )
    return awarded
