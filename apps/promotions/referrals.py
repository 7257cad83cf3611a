"""
Referral codes: welcome bonus for the new customer, reward for the referrer.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from apps.common.types import CustomerId

from .accounts import CoinAccountService
from .conf import promotions_setting
from .exceptions import NotFoundError, storage_errors
from .models import CoinAccount, CoinTransaction, Referral, normalize_code

logger = logging.getLogger(__name__)

REFERRAL_LIMIT_WINDOW = timedelta(days=30)


class ReferralService:
    """Service for referral code redemption and referral rewards."""

    @staticmethod
    def get_referral_code(customer_id: CustomerId) -> str:
        account = CoinAccountService.get_or_create_account(customer_id)
        if not account.referral_code:
            CoinAccount.objects.filter(pk=account.pk, referral_code__isnull=True).update(
                referral_code=CoinAccount.generate_referral_code()
            )
            account.refresh_from_db(fields=["referral_code"])
        return account.referral_code

    @staticmethod
    def apply_referral_code(customer_id: CustomerId, code: str) -> CoinTransaction:
        """
        Link a new customer to a referrer and pay the welcome bonus.

        Raises:
            NotFoundError: If the code belongs to nobody.
            ValidationError: On self-referral, a second referral code, or a
                referrer over the monthly limit.
        """
        code = normalize_code(code or "")
        if not code:
            raise ValidationError("Referral code is required")
        referrer = CoinAccount.objects.filter(referral_code=code).first()
        if referrer is None:
            raise NotFoundError("Invalid referral code", code=code)
        if referrer.customer_id == customer_id:
            raise ValidationError("You cannot use your own referral code")

        account = CoinAccountService.get_or_create_account(customer_id)
        if account.referred_by_customer_id:
            raise ValidationError("You have already used a referral code")

        limit = promotions_setting("REFERRAL_MONTHLY_LIMIT")
        recent = referrer.referrals.filter(created_at__gte=timezone.now() - REFERRAL_LIMIT_WINDOW).count()
        if recent >= limit:
            raise ValidationError("This referral code has reached its monthly limit")

        bonus = promotions_setting("REFERRAL_WELCOME_BONUS")
        with storage_errors("apply_referral_code"), transaction.atomic():
            linked = CoinAccount.objects.filter(pk=account.pk, referred_by_customer_id__isnull=True).update(
                referred_by_customer_id=referrer.customer_id,
                referred_by_code=code,
                referral_reward_claimed=True,
            )
            if not linked:
                raise ValidationError("You have already used a referral code")
            Referral.objects.create(referrer=referrer, referred_customer_id=customer_id, code=code)
            entry = CoinAccountService.add_coins(
                customer_id,
                bonus,
                CoinTransaction.BONUS,
                description="Welcome bonus for using referral code",
                idempotency_key="referral-welcome",
                metadata={"referral_code": code},
            )

        logger.info(
            "Referral code %s applied by %s",
            code,
            customer_id,
            extra={"referrer_id": referrer.customer_id, "customer_id": customer_id},
        )
        return entry

    @staticmethod
    def complete_referral(referred_customer_id: CustomerId) -> Referral | None:
        """Pay the referrer once the referred customer completes a first order."""
        reward = promotions_setting("REFERRAL_REWARD")
        with storage_errors("complete_referral"), transaction.atomic():
            completed = Referral.objects.filter(
                referred_customer_id=referred_customer_id, status=Referral.STATUS_PENDING
            ).update(status=Referral.STATUS_COMPLETED, completed_at=timezone.now(), reward_earned=reward)
            if not completed:
                return None
            referral = Referral.objects.select_related("referrer").get(referred_customer_id=referred_customer_id)
            CoinAccountService.add_coins(
                referral.referrer.customer_id,
                reward,
                CoinTransaction.REFERRAL,
                description="Referral bonus for inviting friend",
                idempotency_key=f"referral:{referred_customer_id}",
                metadata={"referred_customer_id": referred_customer_id},
            )

        logger.info(
            "Referral completed: %s referred %s",
            referral.referrer.customer_id,
            referred_customer_id,
            extra={"reward": reward},
        )
        return referral
