"""
Aggre Coin and coupon grant accounts.

Every balance change appends exactly one CoinTransaction and updates the
CoinAccount in the same atomic step, guarded by a compare-and-swap on
CoinAccount.version. Conflicts retry the whole step up to
PROMOTIONS["COMMIT_MAX_ATTEMPTS"] times.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.common.types import ActorId, CustomerId, OrderId

from .calculator import ONE, calculate_order_coins, floor_units
from .conf import promotions_setting
from .directory import ActorProfile
from .exceptions import (
    ContentionError,
    CouponAlreadyUsedError,
    InsufficientBalanceError,
    NotFoundError,
    storage_errors,
)
from .models import Benefit, CoinAccount, CoinTransaction, CouponGrant
from .signals import coin_transaction_recorded

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActiveCoupon:
    grant_id: str
    benefit_id: str
    code: str | None
    title: str
    awarded_at: datetime
    valid_until: datetime


@dataclass(frozen=True)
class AccountSummary:
    customer_id: CustomerId
    balance: int
    total_earned: int
    total_redeemed: int
    total_expired: int
    referral_code: str | None = None
    active_coupons: list[ActiveCoupon] = field(default_factory=list)


@dataclass(frozen=True)
class CoinRedemption:
    """Coins applied against an order: 1 coin = ₹1."""

    coins_used: int
    discount: int
    transaction: CoinTransaction


def _require_positive_int(amount: Any, label: str = "amount") -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError(f"{label} must be a positive whole number of coins")


class CoinAccountService:
    """Service for coin balances, coupon grants and coin expiry."""

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    @classmethod
    def get_or_create_account(cls, customer_id: CustomerId) -> CoinAccount:
        """Get the customer's account, creating it on first use."""
        if not customer_id:
            raise ValidationError("customer_id is required")
        account = CoinAccount.objects.filter(customer_id=customer_id).first()
        if account is not None:
            return account
        try:
            with transaction.atomic():
                account = CoinAccount.objects.create(
                    customer_id=customer_id,
                    referral_code=CoinAccount.generate_referral_code(),
                )
        except IntegrityError:
            # Created concurrently
            return CoinAccount.objects.get(customer_id=customer_id)
        logger.info("Coin account created for %s", customer_id, extra={"customer_id": customer_id})
        return account

    @classmethod
    def get_account(cls, customer_id: CustomerId) -> CoinAccount:
        account = CoinAccount.objects.filter(customer_id=customer_id).first()
        if account is None:
            raise NotFoundError("Coin account not found", customer_id=customer_id)
        return account

    # -------------------------------------------------------------------------
    # Ledger primitive
    # -------------------------------------------------------------------------

    @classmethod
    def append_transaction(  # noqa: PLR0913
        cls,
        customer_id: CustomerId,
        transaction_type: str,
        amount: int,
        *,
        description: str = "",
        order_id: OrderId | None = None,
        benefit: Benefit | None = None,
        coupon_grant: CouponGrant | None = None,
        source_transaction: CoinTransaction | None = None,
        expires_at: datetime | None = None,
        idempotency_key: str | None = None,
        metadata: dict[str, Any] | None = None,
        created_by: ActorId = "",
    ) -> CoinTransaction:
        """
        Append one transaction and move the balance by amount.

        A transaction whose idempotency_key already exists on the account is
        returned as is, without a second balance change.

        Raises:
            InsufficientBalanceError: If the balance would go negative.
            ContentionError: If the account kept changing underneath us.
        """
        cls._validate_sign(transaction_type, amount)
        max_attempts = promotions_setting("COMMIT_MAX_ATTEMPTS")

        with storage_errors("append_transaction"):
            for attempt in range(1, max_attempts + 1):
                account = cls._load_for_write(customer_id, amount)
                if idempotency_key:
                    existing = cls._find_by_key(account, idempotency_key)
                    if existing is not None:
                        logger.info(
                            "Coin transaction replayed for key %s",
                            idempotency_key,
                            extra={"customer_id": customer_id, "transaction_id": str(existing.pk)},
                        )
                        return existing

                new_balance = account.balance + amount
                if new_balance < 0:
                    raise InsufficientBalanceError(balance=account.balance, requested=-amount)

                entry: CoinTransaction | None = None
                try:
                    with transaction.atomic():
                        updated = CoinAccount.objects.filter(pk=account.pk, version=account.version).update(
                            balance=new_balance,
                            version=account.version + 1,
                            updated_at=timezone.now(),
                            **cls._totals_after(account, transaction_type, amount),
                        )
                        if updated:
                            entry = CoinTransaction.objects.create(
                                account=account,
                                sequence=account.version + 1,
                                transaction_type=transaction_type,
                                amount=amount,
                                balance_after=new_balance,
                                description=description,
                                order_id=order_id,
                                benefit=benefit,
                                coupon_grant=coupon_grant,
                                source_transaction=source_transaction,
                                expires_at=expires_at,
                                idempotency_key=idempotency_key,
                                metadata=metadata or {},
                                created_by=created_by,
                            )
                except IntegrityError:
                    if idempotency_key:
                        existing = cls._find_by_key(account, idempotency_key)
                        if existing is not None:
                            return existing
                    raise

                if entry is None:
                    logger.debug(
                        "Coin account %s version conflict (attempt %d/%d)",
                        customer_id,
                        attempt,
                        max_attempts,
                    )
                    continue

                transaction.on_commit(
                    lambda entry=entry: coin_transaction_recorded.send(sender=CoinTransaction, transaction=entry)
                )
                return entry

        logger.warning(
            "Coin account %s: giving up after %d conflicting attempts",
            customer_id,
            max_attempts,
            extra={"customer_id": customer_id, "transaction_type": transaction_type},
        )
        raise ContentionError(customer_id=customer_id, attempts=max_attempts)

    @classmethod
    def _load_for_write(cls, customer_id: CustomerId, amount: int) -> CoinAccount:
        if amount >= 0:
            return cls.get_or_create_account(customer_id)
        account = CoinAccount.objects.filter(customer_id=customer_id).first()
        if account is None:
            raise InsufficientBalanceError(balance=0, requested=-amount)
        return account

    @staticmethod
    def _find_by_key(account: CoinAccount, idempotency_key: str) -> CoinTransaction | None:
        return CoinTransaction.objects.filter(account=account, idempotency_key=idempotency_key).first()

    @staticmethod
    def _validate_sign(transaction_type: str, amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValidationError("Coin amounts must be whole numbers")
        if transaction_type in CoinTransaction.CREDIT_TYPES:
            valid = amount > 0
        elif transaction_type == CoinTransaction.REDEEMED:
            valid = amount < 0
        elif transaction_type == CoinTransaction.EXPIRED:
            valid = amount <= 0
        elif transaction_type in CoinTransaction.MARKER_TYPES:
            valid = amount == 0
        else:
            raise ValidationError(f"Unknown transaction type: {transaction_type}")
        if not valid:
            raise ValidationError(f"Invalid amount {amount} for {transaction_type} transaction")

    @staticmethod
    def _totals_after(account: CoinAccount, transaction_type: str, amount: int) -> dict[str, int]:
        if transaction_type in CoinTransaction.CREDIT_TYPES:
            return {"total_earned": account.total_earned + amount}
        if transaction_type == CoinTransaction.REDEEMED:
            return {"total_redeemed": account.total_redeemed - amount}
        if transaction_type == CoinTransaction.EXPIRED:
            return {"total_expired": account.total_expired - amount}
        return {}

    # -------------------------------------------------------------------------
    # Coins
    # -------------------------------------------------------------------------

    @classmethod
    def add_coins(  # noqa: PLR0913
        cls,
        customer_id: CustomerId,
        amount: int,
        transaction_type: str = CoinTransaction.EARNED,
        description: str = "",
        expires_at: datetime | None = None,
        order_id: OrderId | None = None,
        idempotency_key: str | None = None,
        benefit: Benefit | None = None,
        metadata: dict[str, Any] | None = None,
        created_by: ActorId = "",
    ) -> CoinTransaction:
        """Credit coins. Earned coins expire after COIN_EXPIRY_DAYS unless expires_at is given."""
        _require_positive_int(amount)
        if transaction_type not in CoinTransaction.CREDIT_TYPES:
            raise ValidationError(f"{transaction_type} is not a credit transaction type")
        if expires_at is None and transaction_type == CoinTransaction.EARNED:
            expires_at = timezone.now() + timedelta(days=promotions_setting("COIN_EXPIRY_DAYS"))

        entry = cls.append_transaction(
            customer_id,
            transaction_type,
            amount,
            description=description,
            order_id=order_id,
            benefit=benefit,
            expires_at=expires_at,
            idempotency_key=idempotency_key,
            metadata=metadata,
            created_by=created_by,
        )
        logger.info(
            "Added %d coins (%s) to %s",
            amount,
            transaction_type,
            customer_id,
            extra={"customer_id": customer_id, "transaction_id": str(entry.pk)},
        )
        return entry

    @classmethod
    def redeem_coins(
        cls,
        customer_id: CustomerId,
        amount: int,
        description: str = "",
        order_id: OrderId | None = None,
        idempotency_key: str | None = None,
    ) -> CoinTransaction:
        """
        Debit coins.

        Raises:
            InsufficientBalanceError: If balance < amount. Nothing is written.
        """
        _require_positive_int(amount)
        entry = cls.append_transaction(
            customer_id,
            CoinTransaction.REDEEMED,
            -amount,
            description=description,
            order_id=order_id,
            idempotency_key=idempotency_key,
        )
        logger.info(
            "Redeemed %d coins from %s",
            amount,
            customer_id,
            extra={"customer_id": customer_id, "order_id": order_id, "transaction_id": str(entry.pk)},
        )
        return entry

    @classmethod
    def redeem_coins_for_order(
        cls,
        customer_id: CustomerId,
        coins: int,
        order_value: Decimal,
        order_id: OrderId,
    ) -> CoinRedemption:
        """Spend coins against an order, capped at the whole-rupee order value."""
        _require_positive_int(coins, "coins")
        minimum = promotions_setting("MIN_COIN_REDEMPTION")
        if coins < minimum:
            raise ValidationError(f"Minimum {minimum} coins required for redemption")
        if not order_id:
            raise ValidationError("order_id is required")

        order_value = Decimal(str(order_value))
        if order_value < 0:
            raise ValidationError("Order value must not be negative")
        coins_to_apply = min(coins, floor_units(order_value))
        if coins_to_apply <= 0:
            raise ValidationError("No coins can be applied to this order")

        entry = cls.redeem_coins(
            customer_id,
            coins_to_apply,
            description=f"Coins redeemed for order {order_id}",
            order_id=order_id,
            idempotency_key=f"order-redeem:{order_id}",
        )
        return CoinRedemption(coins_used=-entry.amount, discount=-entry.amount, transaction=entry)

    @classmethod
    def award_order_coins(
        cls,
        actor: ActorProfile,
        order_id: OrderId,
        order_value: Decimal,
        promo_multiplier: Decimal = ONE,
    ) -> CoinTransaction | None:
        """Credit coins for a completed order, at most once per order."""
        if not order_id:
            raise ValidationError("order_id is required")
        earning = calculate_order_coins(order_value, actor.membership_tier, actor.customer_type, promo_multiplier)
        if earning.coins <= 0:
            return None
        return cls.add_coins(
            actor.customer_id,
            earning.coins,
            CoinTransaction.EARNED,
            description=f"Order completion - {actor.customer_type} bonus",
            order_id=order_id,
            idempotency_key=f"order:{order_id}",
            metadata=earning.breakdown,
        )

    # -------------------------------------------------------------------------
    # Expiry
    # -------------------------------------------------------------------------

    @classmethod
    def expire_coins(cls, customer_id: CustomerId, now: datetime | None = None) -> list[CoinTransaction]:
        """
        Retire credits whose expires_at has passed.

        One expired entry per lapsed credit, for the part of the credit not
        yet spent. Redemptions draw on credits oldest first, so coins from
        non-expiring credits are never retired. Running twice is a no-op.
        """
        now = now or timezone.now()
        account = CoinAccount.objects.filter(customer_id=customer_id).first()
        if account is None:
            return []

        lapsed = CoinTransaction.objects.filter(
            account=account,
            transaction_type__in=CoinTransaction.CREDIT_TYPES,
            expires_at__lt=now,
            expiry_entry__isnull=True,
        ).order_by("sequence")

        entries = [cls._expire_credit(customer_id, credit) for credit in lapsed]
        expired_total = -sum(entry.amount for entry in entries)
        if expired_total:
            logger.info(
                "Expired %d coins for %s",
                expired_total,
                customer_id,
                extra={"customer_id": customer_id, "credits": len(entries)},
            )
        return entries

    @staticmethod
    def unspent_remainder(credit: CoinTransaction) -> int:
        """
        Coins of credit not yet consumed.

        Debits are allocated to credits oldest first; an expiry entry
        retires the credit it points at.
        """
        remaining: dict[Any, int] = {}
        entries = CoinTransaction.objects.filter(account_id=credit.account_id).order_by("sequence")
        for entry in entries:
            if entry.transaction_type in CoinTransaction.CREDIT_TYPES:
                remaining[entry.pk] = entry.amount
            elif entry.transaction_type == CoinTransaction.EXPIRED and entry.source_transaction_id:
                remaining[entry.source_transaction_id] = 0
            elif entry.amount < 0:
                owed = -entry.amount
                for pk, left in remaining.items():
                    if owed == 0:
                        break
                    taken = min(left, owed)
                    remaining[pk] = left - taken
                    owed -= taken
        return remaining.get(credit.pk, 0)

    @classmethod
    def _expire_credit(cls, customer_id: CustomerId, credit: CoinTransaction) -> CoinTransaction:
        max_attempts = promotions_setting("COMMIT_MAX_ATTEMPTS")
        for _attempt in range(max_attempts):
            balance = CoinAccount.objects.values_list("balance", flat=True).get(pk=credit.account_id)
            amount = min(cls.unspent_remainder(credit), balance)
            try:
                return cls.append_transaction(
                    customer_id,
                    CoinTransaction.EXPIRED,
                    -amount,
                    description=f"{amount} of {credit.amount} coins from {credit.created_at:%Y-%m-%d} expired",
                    source_transaction=credit,
                    idempotency_key=f"expire:{credit.pk}",
                )
            except InsufficientBalanceError:
                # Balance dropped between read and write
                continue
        raise ContentionError(customer_id=customer_id, attempts=max_attempts)

    @classmethod
    def expire_all(cls, now: datetime | None = None) -> dict[CustomerId, int]:
        """Run expiry for every account holding lapsed credits."""
        now = now or timezone.now()
        customer_ids = (
            CoinTransaction.objects.filter(
                transaction_type__in=CoinTransaction.CREDIT_TYPES,
                expires_at__lt=now,
                expiry_entry__isnull=True,
            )
            .values_list("account__customer_id", flat=True)
            .distinct()
        )
        results: dict[CustomerId, int] = {}
        for customer_id in list(customer_ids):
            entries = cls.expire_coins(customer_id, now=now)
            results[customer_id] = -sum(entry.amount for entry in entries)
        return results

    # -------------------------------------------------------------------------
    # Coupon grants
    # -------------------------------------------------------------------------

    @classmethod
    def grant_coupon(
        cls,
        customer_id: CustomerId,
        benefit_id: Any,
        reason: str = "",
        awarded_by: ActorId = "",
        award_key: str | None = None,
    ) -> CouponGrant:
        """
        Award a coupon to a customer.

        An unused grant of the same coupon is returned instead of a second one.
        """
        benefit = Benefit.objects.filter(pk=benefit_id).first()
        if benefit is None:
            raise NotFoundError("Benefit not found", benefit_id=str(benefit_id))
        if benefit.benefit_type != Benefit.TYPE_COUPON:
            raise ValidationError("Only coupon benefits can be granted")
        if benefit.effective_status() != Benefit.STATUS_ACTIVE:
            raise ValidationError("Coupon is not active")
        cls.get_or_create_account(customer_id)

        with storage_errors("grant_coupon"):
            existing = cls._existing_grant(benefit, customer_id, award_key)
            if existing is not None:
                logger.info(
                    "Coupon %s already granted to %s",
                    benefit.code,
                    customer_id,
                    extra={"grant_id": str(existing.pk)},
                )
                return existing
            try:
                with transaction.atomic():
                    grant = CouponGrant.objects.create(
                        benefit=benefit,
                        customer_id=customer_id,
                        reason=reason,
                        awarded_by=awarded_by,
                        award_key=award_key,
                    )
                    cls.append_transaction(
                        customer_id,
                        CoinTransaction.COUPON_AWARDED,
                        0,
                        description=f"Coupon awarded: {benefit.code}",
                        benefit=benefit,
                        coupon_grant=grant,
                        metadata={"reason": reason},
                        created_by=awarded_by,
                    )
            except IntegrityError:
                existing = cls._existing_grant(benefit, customer_id, award_key)
                if existing is None:
                    raise
                return existing

        logger.info(
            "Coupon %s granted to %s",
            benefit.code,
            customer_id,
            extra={"grant_id": str(grant.pk), "awarded_by": awarded_by},
        )
        return grant

    @staticmethod
    def _existing_grant(benefit: Benefit, customer_id: CustomerId, award_key: str | None) -> CouponGrant | None:
        grants = CouponGrant.objects.filter(benefit=benefit, customer_id=customer_id)
        if award_key:
            keyed = grants.filter(award_key=award_key).first()
            if keyed is not None:
                return keyed
        return grants.filter(used=False).first()

    @classmethod
    def use_coupon(cls, grant_id: Any, order_id: OrderId, discount_applied: int) -> CouponGrant:
        """
        Mark a granted coupon as used.

        Raises:
            NotFoundError: If the grant does not exist.
            CouponAlreadyUsedError: If the grant was used before.
        """
        if isinstance(discount_applied, bool) or not isinstance(discount_applied, int) or discount_applied < 0:
            raise ValidationError("discount_applied must be a non-negative whole number")
        grant = CouponGrant.objects.select_related("benefit").filter(pk=grant_id).first()
        if grant is None:
            raise NotFoundError("Coupon grant not found", grant_id=str(grant_id))
        if grant.used:
            raise CouponAlreadyUsedError(grant_id=str(grant.pk), used_in_order=grant.used_in_order)

        with storage_errors("use_coupon"), transaction.atomic():
            now = timezone.now()
            updated = CouponGrant.objects.filter(pk=grant.pk, used=False).update(
                used=True,
                used_at=now,
                used_in_order=order_id,
                discount_applied=discount_applied,
            )
            if not updated:
                raise CouponAlreadyUsedError(grant_id=str(grant.pk))
            cls.append_transaction(
                grant.customer_id,
                CoinTransaction.COUPON_USED,
                0,
                description=f"Coupon used: {grant.benefit.code}",
                order_id=order_id,
                benefit=grant.benefit,
                coupon_grant=grant,
                metadata={"discount_applied": discount_applied},
            )

        grant.refresh_from_db()
        logger.info(
            "Coupon grant %s used on order %s",
            grant.pk,
            order_id,
            extra={"customer_id": grant.customer_id, "discount_applied": discount_applied},
        )
        return grant

    @classmethod
    def consume_unused_grant(
        cls, benefit: Benefit, customer_id: CustomerId, order_id: OrderId | None, discount_applied: int
    ) -> CouponGrant | None:
        """Use the customer's unused grant of benefit, if any."""
        grant = CouponGrant.objects.filter(benefit=benefit, customer_id=customer_id, used=False).first()
        if grant is None:
            return None
        return cls.use_coupon(grant.pk, order_id or "", discount_applied)

    # -------------------------------------------------------------------------
    # Summary
    # -------------------------------------------------------------------------

    @classmethod
    def summary(cls, customer_id: CustomerId, now: datetime | None = None) -> AccountSummary:
        now = now or timezone.now()
        account = cls.get_or_create_account(customer_id)
        grants = (
            CouponGrant.objects.select_related("benefit")
            .filter(
                customer_id=customer_id,
                used=False,
                benefit__status=Benefit.STATUS_ACTIVE,
                benefit__valid_from__lte=now,
                benefit__valid_until__gte=now,
            )
            .order_by("-awarded_at")
        )
        return AccountSummary(
            customer_id=account.customer_id,
            balance=account.balance,
            total_earned=account.total_earned,
            total_redeemed=account.total_redeemed,
            total_expired=account.total_expired,
            referral_code=account.referral_code,
            active_coupons=[
                ActiveCoupon(
                    grant_id=str(grant.pk),
                    benefit_id=str(grant.benefit_id),
                    code=grant.benefit.code,
                    title=grant.benefit.title,
                    awarded_at=grant.awarded_at,
                    valid_until=grant.benefit.valid_until,
                )
                for grant in grants
            ],
        )
