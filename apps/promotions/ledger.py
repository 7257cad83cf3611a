"""
Redemption ledger: the only writer of benefit usage counters and budgets.

Commit protocol, per attempt:
1. return the original record if the idempotency key was already committed
2. read the benefit snapshot (counters, budget, version)
3. re-run lifecycle, cap and budget checks against that snapshot
4. inside transaction.atomic:
   UPDATE benefit SET counters, version = version + 1 WHERE version = read
   and, if one row changed, insert the record, consume the customer's
   coupon grant and append any coin bonus
A lost compare-and-swap retries from step 1, up to COMMIT_MAX_ATTEMPTS.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from django.db import IntegrityError, transaction
from django.db.models import Count, Sum
from django.utils import timezone

from apps.common.types import CustomerId, OrderId

from .accounts import CoinAccountService
from .calculator import DiscountResult
from .conf import promotions_setting
from .eligibility import DenialReason, EligibilityResult, UsageSnapshot, check_lifecycle, check_usage_caps
from .exceptions import ContentionError, NotFoundError, storage_errors
from .models import Benefit, CoinTransaction, RedemptionRecord
from .signals import redemption_committed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RedemptionOutcome:
    committed: bool
    record: RedemptionRecord | None = None
    reason: DenialReason | None = None
    detail: dict[str, Any] = field(default_factory=dict)
    replayed: bool = False
    coin_transaction: CoinTransaction | None = None


@dataclass(frozen=True)
class ReconciliationReport:
    benefit_id: str
    recorded_count: int
    recorded_budget_used: int
    stored_count: int
    stored_budget_used: int
    repaired: bool = False

    @property
    def in_sync(self) -> bool:
        return self.recorded_count == self.stored_count and self.recorded_budget_used == self.stored_budget_used


class RedemptionLedger:
    """Records redemptions and enforces caps and budgets at commit time."""

    @staticmethod
    def usage_snapshot(benefit: Benefit, customer_id: CustomerId, now: datetime | None = None) -> UsageSnapshot:
        """Current usage counts for benefit, read without locks."""
        now = now or timezone.now()
        records = RedemptionRecord.objects.filter(benefit_id=benefit.pk)
        return UsageSnapshot(
            total=benefit.redemption_count,
            by_customer=records.filter(customer_id=customer_id).count(),
            today=records.filter(occurred_at__date=timezone.localdate(now)).count(),
        )

    @staticmethod
    def find_replay(benefit_id: Any, customer_id: CustomerId, idempotency_key: str | None) -> RedemptionRecord | None:
        if not idempotency_key:
            return None
        return RedemptionRecord.objects.filter(
            benefit_id=benefit_id, customer_id=customer_id, idempotency_key=idempotency_key
        ).first()

    @staticmethod
    def _load_benefit(benefit_id: Any) -> Benefit:
        benefit = Benefit.objects.filter(pk=benefit_id).first()
        if benefit is None:
            raise NotFoundError("Benefit not found", benefit_id=str(benefit_id))
        return benefit

    @classmethod
    def _commit_checks(
        cls,
        benefit: Benefit,
        customer_id: CustomerId,
        amount: int,
        now: datetime,
        placed_at: datetime | None = None,
    ) -> EligibilityResult | None:
        usage = cls.usage_snapshot(benefit, customer_id, now)
        denial = check_lifecycle(benefit, now, placed_at=placed_at) or check_usage_caps(benefit, usage)
        if denial is not None:
            return denial
        if benefit.budget_total is not None and benefit.budget_used + amount > benefit.budget_total:
            return EligibilityResult.deny(
                DenialReason.BUDGET_EXHAUSTED,
                budget_total=benefit.budget_total,
                budget_used=benefit.budget_used,
                requested=amount,
            )
        return None

    @staticmethod
    def _advance_benefit(benefit: Benefit, amount: int) -> bool:
        """Compare-and-swap the benefit counters on the version read."""
        updated = Benefit.objects.filter(pk=benefit.pk, version=benefit.version).update(
            redemption_count=benefit.redemption_count + 1,
            budget_used=benefit.budget_used + amount,
            version=benefit.version + 1,
            updated_at=timezone.now(),
        )
        return updated == 1

    @classmethod
    def redeem(  # noqa: PLR0913
        cls,
        benefit_id: Any,
        customer_id: CustomerId,
        discount: DiscountResult,
        order_id: OrderId | None = None,
        idempotency_key: str | None = None,
        order_value: Decimal = Decimal("0"),
        coin_bonus: int = 0,
        now: datetime | None = None,
        placed_at: datetime | None = None,
    ) -> RedemptionOutcome:
        """
        Durably record one redemption, or deny it without writing anything.

        The order_id doubles as the idempotency key when no key is given.
        coin_bonus is credited to the customer in the same atomic unit. Day and
        hour windows are judged at placed_at when the order carries one.

        Raises:
            NotFoundError: If the benefit does not exist.
            ContentionError: If every attempt lost its compare-and-swap.
            StorageUnavailableError: If the database is unreachable.
        """
        key = idempotency_key or order_id
        max_attempts = promotions_setting("COMMIT_MAX_ATTEMPTS")

        with storage_errors("redeem"):
            for attempt in range(1, max_attempts + 1):
                replay = cls.find_replay(benefit_id, customer_id, key)
                if replay is not None:
                    return cls.replay_outcome(replay)

                benefit = cls._load_benefit(benefit_id)
                moment = now or timezone.now()
                denial = cls._commit_checks(benefit, customer_id, discount.amount, moment, placed_at)
                if denial is not None:
                    logger.info(
                        "Redemption denied at commit: %s for benefit %s",
                        denial.reason,
                        benefit.pk,
                        extra={"customer_id": customer_id, "order_id": order_id, "detail": denial.detail},
                    )
                    return RedemptionOutcome(committed=False, reason=denial.reason, detail=denial.detail)

                record: RedemptionRecord | None = None
                coin_entry: CoinTransaction | None = None
                try:
                    with transaction.atomic():
                        if cls._advance_benefit(benefit, discount.amount):
                            record = RedemptionRecord.objects.create(
                                benefit=benefit,
                                customer_id=customer_id,
                                order_id=order_id,
                                idempotency_key=key,
                                discount_applied=discount.amount,
                                free_delivery=discount.free_delivery,
                                coins_multiplier=discount.coins_multiplier,
                                order_value=order_value,
                                occurred_at=moment,
                            )
                            if benefit.benefit_type == Benefit.TYPE_COUPON:
                                CoinAccountService.consume_unused_grant(
                                    benefit, customer_id, order_id, discount.amount
                                )
                            if coin_bonus > 0:
                                coin_entry = CoinAccountService.add_coins(
                                    customer_id,
                                    coin_bonus,
                                    CoinTransaction.BONUS,
                                    description=f"{discount.coins_multiplier:f}x coins promotion: {benefit.title}",
                                    order_id=order_id,
                                    benefit=benefit,
                                    idempotency_key=f"multiplier:{benefit.pk}:{key}" if key else None,
                                )
                except IntegrityError:
                    # Same key committed concurrently
                    replay = cls.find_replay(benefit_id, customer_id, key)
                    if replay is None:
                        raise
                    return cls.replay_outcome(replay)

                if record is None:
                    logger.debug(
                        "Benefit %s version conflict (attempt %d/%d)",
                        benefit.pk,
                        attempt,
                        max_attempts,
                    )
                    continue

                transaction.on_commit(
                    lambda record=record: redemption_committed.send(
                        sender=RedemptionRecord, record=record, replayed=False
                    )
                )
                logger.info(
                    "Redemption committed: benefit %s by %s for %d",
                    benefit.pk,
                    customer_id,
                    discount.amount,
                    extra={
                        "benefit_id": str(benefit.pk),
                        "customer_id": customer_id,
                        "order_id": order_id,
                        "redemption_id": str(record.pk),
                        "attempt": attempt,
                    },
                )
                return RedemptionOutcome(committed=True, record=record, coin_transaction=coin_entry)

        logger.warning(
            "Redemption of benefit %s abandoned after %d conflicting attempts",
            benefit_id,
            max_attempts,
            extra={"customer_id": customer_id, "order_id": order_id},
        )
        raise ContentionError(benefit_id=str(benefit_id), attempts=max_attempts)

    @staticmethod
    def replay_outcome(record: RedemptionRecord) -> RedemptionOutcome:
        logger.info(
            "Redemption replayed for key %s",
            record.idempotency_key,
            extra={"redemption_id": str(record.pk), "customer_id": record.customer_id},
        )
        coin_entry = CoinTransaction.objects.filter(
            account__customer_id=record.customer_id,
            idempotency_key=f"multiplier:{record.benefit_id}:{record.idempotency_key}",
        ).first()
        return RedemptionOutcome(committed=True, record=record, replayed=True, coin_transaction=coin_entry)

    @classmethod
    def reconcile(cls, benefit_id: Any, repair: bool = False) -> ReconciliationReport:
        """Compare the stored counters with the redemption records, optionally fixing drift."""
        with storage_errors("reconcile"):
            benefit = cls._load_benefit(benefit_id)
            totals = RedemptionRecord.objects.filter(benefit_id=benefit.pk).aggregate(
                count=Count("id"), used=Sum("discount_applied")
            )
            report = ReconciliationReport(
                benefit_id=str(benefit.pk),
                recorded_count=totals["count"] or 0,
                recorded_budget_used=totals["used"] or 0,
                stored_count=benefit.redemption_count,
                stored_budget_used=benefit.budget_used,
            )
            if report.in_sync or not repair:
                return report

            updated = Benefit.objects.filter(pk=benefit.pk, version=benefit.version).update(
                redemption_count=report.recorded_count,
                budget_used=report.recorded_budget_used,
                version=benefit.version + 1,
                updated_at=timezone.now(),
            )
            if not updated:
                raise ContentionError(benefit_id=str(benefit.pk), attempts=1)

        logger.warning(
            "Benefit %s counters repaired: count %d -> %d, budget_used %d -> %d",
            benefit.pk,
            report.stored_count,
            report.recorded_count,
            report.stored_budget_used,
            report.recorded_budget_used,
        )
        return ReconciliationReport(
            benefit_id=report.benefit_id,
            recorded_count=report.recorded_count,
            recorded_budget_used=report.recorded_budget_used,
            stored_count=report.stored_count,
            stored_budget_used=report.stored_budget_used,
            repaired=True,
        )
