"""
Promotion engine services for the Aggrekart marketplace.
Entry points used by checkout, order completion and the admin API.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any

from apps.common.types import ActorId, CustomerId, OrderId

from .accounts import AccountSummary, CoinAccountService
from .calculator import ONE, DiscountResult, calculate_order_coins, compute
from .catalog import BenefitCatalogService
from .directory import ActorProfile, CustomerDirectory, OrderContext, get_customer_directory
from .eligibility import DenialReason, EligibilityResult, evaluate
from .exceptions import storage_errors
from .ledger import RedemptionLedger, RedemptionOutcome
from .milestones import award_milestones
from .models import Benefit, CoinTransaction, CouponGrant, MilestoneAchievement, Referral, RedemptionRecord
from .referrals import ReferralService

logger = logging.getLogger(__name__)


# ===============================================================================
# Data Classes for Results
# ===============================================================================


@dataclass(frozen=True)
class ApplyResult:
    """
    Result of applying a benefit to an order.

    Attributes:
        committed: Whether the redemption is durably recorded.
        discount: Discount in whole currency units.
        free_delivery: Whether delivery charges are waived.
        coins_multiplier: Multiplier for coins earned on the order.
        reason: Denial reason when not committed.
        detail: Numbers behind the denial (cap hit, bound, axis).
        redemption_id: UUID of the RedemptionRecord.
        coins_awarded: Bonus coins credited by a coins multiplier benefit.
        replayed: True when an earlier commit with the same key was returned.
    """

    committed: bool
    discount: int = 0
    free_delivery: bool = False
    coins_multiplier: Decimal = ONE
    reason: DenialReason | None = None
    detail: dict[str, Any] = field(default_factory=dict)
    redemption_id: str | None = None
    coins_awarded: int = 0
    replayed: bool = False

    @classmethod
    def denied(cls, reason: DenialReason | None, detail: dict[str, Any]) -> ApplyResult:
        return cls(committed=False, reason=reason, detail=detail)

    @classmethod
    def from_record(cls, record: RedemptionRecord, outcome: RedemptionOutcome) -> ApplyResult:
        return cls(
            committed=True,
            discount=record.discount_applied,
            free_delivery=record.free_delivery,
            coins_multiplier=record.coins_multiplier,
            redemption_id=str(record.pk),
            coins_awarded=outcome.coin_transaction.amount if outcome.coin_transaction else 0,
            replayed=outcome.replayed,
        )


@dataclass(frozen=True)
class AvailableBenefit:
    benefit: Benefit
    discount: DiscountResult


@dataclass(frozen=True)
class OrderRewards:
    """Everything credited when an order completes."""

    coins: CoinTransaction | None = None
    milestones: list[MilestoneAchievement] = field(default_factory=list)
    referral: Referral | None = None


# ===============================================================================
# Promotion Engine
# ===============================================================================


class PromotionEngine:
    """
    Facade over the catalog, evaluator, calculator, ledger and accounts.

    Customer attributes are read from the configured CustomerDirectory.
    """

    def __init__(self, directory: CustomerDirectory | None = None) -> None:
        self.directory = directory or get_customer_directory()

    @staticmethod
    def _order_context(
        order_value: Decimal, order_id: OrderId | None, order_context: OrderContext | None
    ) -> OrderContext:
        if order_context is None:
            return OrderContext(value=order_value, order_id=order_id)
        return replace(order_context, value=order_value, order_id=order_id or order_context.order_id)

    def evaluate_benefit(
        self,
        benefit_id_or_code: Any,
        customer_id: CustomerId,
        order_value: Decimal,
        order_context: OrderContext | None = None,
        now: datetime | None = None,
    ) -> EligibilityResult:
        """Decide, without writing anything, whether the benefit applies."""
        benefit = BenefitCatalogService.get_benefit(benefit_id_or_code)
        actor = self.directory.get_profile(customer_id)
        order = self._order_context(order_value, None, order_context)
        with storage_errors("evaluate_benefit"):
            usage = RedemptionLedger.usage_snapshot(benefit, customer_id, now)
        return evaluate(benefit, actor, order, usage, now)

    def apply_benefit(  # noqa: PLR0913
        self,
        benefit_id_or_code: Any,
        customer_id: CustomerId,
        order_id: OrderId,
        order_value: Decimal,
        order_context: OrderContext | None = None,
        idempotency_key: str | None = None,
        now: datetime | None = None,
    ) -> ApplyResult:
        """
        Evaluate, compute and durably record one redemption.

        Calling again with the same order (or idempotency key) returns the
        original result instead of redeeming twice.
        """
        benefit = BenefitCatalogService.get_benefit(benefit_id_or_code)
        key = idempotency_key or order_id

        replay = RedemptionLedger.find_replay(benefit.pk, customer_id, key)
        if replay is not None:
            return ApplyResult.from_record(replay, RedemptionLedger.replay_outcome(replay))

        actor = self.directory.get_profile(customer_id)
        order = self._order_context(order_value, order_id, order_context)
        with storage_errors("apply_benefit"):
            usage = RedemptionLedger.usage_snapshot(benefit, customer_id, now)
        eligibility = evaluate(benefit, actor, order, usage, now)
        if not eligibility.eligible:
            logger.info(
                "Benefit %s denied for %s: %s",
                benefit.pk,
                customer_id,
                eligibility.reason,
                extra={"order_id": order_id, "detail": eligibility.detail},
            )
            return ApplyResult.denied(eligibility.reason, eligibility.detail)

        discount = compute(benefit, order.value)
        outcome = RedemptionLedger.redeem(
            benefit.pk,
            customer_id,
            discount,
            order_id=order_id,
            idempotency_key=key,
            order_value=order.value,
            coin_bonus=self._coin_bonus(actor, order.value, discount),
            now=now,
            placed_at=order.placed_at,
        )
        if not outcome.committed or outcome.record is None:
            return ApplyResult.denied(outcome.reason, outcome.detail)
        return ApplyResult.from_record(outcome.record, outcome)

    @staticmethod
    def _coin_bonus(actor: ActorProfile, order_value: Decimal, discount: DiscountResult) -> int:
        """Extra coins a multiplier adds on top of the order's base earning."""
        if discount.coins_multiplier <= ONE:
            return 0
        boosted = calculate_order_coins(
            order_value, actor.membership_tier, actor.customer_type, discount.coins_multiplier
        )
        base = calculate_order_coins(order_value, actor.membership_tier, actor.customer_type)
        return boosted.coins - base.coins

    def list_available_benefits(
        self,
        customer_id: CustomerId,
        order_value: Decimal,
        order_context: OrderContext | None = None,
        now: datetime | None = None,
    ) -> list[AvailableBenefit]:
        """Benefits the customer could use on this order, largest discount first."""
        actor = self.directory.get_profile(customer_id)
        order = self._order_context(order_value, None, order_context)
        available: list[AvailableBenefit] = []
        with storage_errors("list_available_benefits"):
            for benefit in BenefitCatalogService.list_active(now):
                usage = RedemptionLedger.usage_snapshot(benefit, customer_id, now)
                if evaluate(benefit, actor, order, usage, now).eligible:
                    available.append(AvailableBenefit(benefit=benefit, discount=compute(benefit, order.value)))
        available.sort(key=lambda item: (item.discount.amount, item.discount.free_delivery), reverse=True)
        return available

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    def award_coins(
        self,
        customer_id: CustomerId,
        amount: int,
        transaction_type: str = CoinTransaction.ADMIN_AWARD,
        reason: str = "",
        awarded_by: ActorId = "",
    ) -> CoinTransaction:
        return CoinAccountService.add_coins(
            customer_id,
            amount,
            transaction_type,
            description=reason,
            created_by=awarded_by,
        )

    def award_coupon(
        self,
        customer_id: CustomerId,
        benefit_id_or_code: Any,
        reason: str = "",
        awarded_by: ActorId = "",
        award_key: str | None = None,
    ) -> CouponGrant:
        benefit = BenefitCatalogService.get_benefit(benefit_id_or_code)
        return CoinAccountService.grant_coupon(customer_id, benefit.pk, reason, awarded_by, award_key)

    def get_account_summary(self, customer_id: CustomerId) -> AccountSummary:
        return CoinAccountService.summary(customer_id)

    def record_order_completion(
        self,
        customer_id: CustomerId,
        order_id: OrderId,
        order_value: Decimal,
    ) -> OrderRewards:
        """
        Credit order coins, milestone rewards and any pending referral.

        The directory profile is expected to already count this order.
        """
        actor = self.directory.get_profile(customer_id)
        coins = CoinAccountService.award_order_coins(actor, order_id, order_value)
        milestones = award_milestones(customer_id, actor.order_count, actor.total_order_value)
        referral = ReferralService.complete_referral(customer_id)
        return OrderRewards(coins=coins, milestones=milestones, referral=referral)
