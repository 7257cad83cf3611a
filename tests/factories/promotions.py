# ===============================================================================
# TEST FACTORIES FOR PROMOTIONS
# ===============================================================================
from datetime import timedelta
from decimal import Decimal
from typing import Any

from django.contrib.auth import get_user_model
from django.utils import timezone

from apps.promotions.directory import ActorProfile, StaticCustomerDirectory
from apps.promotions.models import Benefit
from apps.promotions.services import PromotionEngine

User = get_user_model()


def create_benefit(**overrides: Any) -> Benefit:
    """Create an active 10% discount valid from yesterday for 30 days."""
    now = timezone.now()
    fields: dict[str, Any] = {
        'title': '10% off',
        'benefit_type': Benefit.TYPE_DISCOUNT,
        'reward_kind': Benefit.REWARD_PERCENTAGE,
        'reward_value': Decimal('10'),
        'valid_from': now - timedelta(days=1),
        'valid_until': now + timedelta(days=30),
        'status': Benefit.STATUS_ACTIVE,
    }
    fields.update(overrides)
    benefit = Benefit(**fields)
    benefit.full_clean()
    benefit.save()
    return benefit


def create_coupon(code: str = 'SAVE10', **overrides: Any) -> Benefit:
    """Create an active 10% coupon capped at ₹100, one use per customer."""
    fields: dict[str, Any] = {
        'title': 'Save 10%',
        'benefit_type': Benefit.TYPE_COUPON,
        'code': code,
        'reward_cap_amount': Decimal('100'),
        'per_user_cap': 1,
    }
    fields.update(overrides)
    return create_benefit(**fields)


def create_profile(customer_id: str = 'C1001', **overrides: Any) -> ActorProfile:
    fields: dict[str, Any] = {
        'customer_type': 'house_owner',
        'membership_tier': 'silver',
        'state': 'Tamil Nadu',
        'city': 'Chennai',
    }
    fields.update(overrides)
    return ActorProfile(customer_id=customer_id, **fields)


def create_engine(*profiles: ActorProfile) -> PromotionEngine:
    """Engine backed by an in-process directory holding profiles."""
    return PromotionEngine(directory=StaticCustomerDirectory(list(profiles)))


def create_user(username: str = 'customer', is_staff: bool = False) -> Any:
    return User.objects.create_user(
        username=username,
        email=f'{username}@aggrekart.test',
        password='testpass123',
        is_staff=is_staff,
    )
