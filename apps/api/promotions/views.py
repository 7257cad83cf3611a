"""
Promotions API Views for Aggrekart
DRF views for benefit evaluation, redemption, Aggre Coin accounts and benefit administration.
"""

import logging
from typing import Any

from django.core.exceptions import ValidationError
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle

from apps.common.types import Err
from apps.promotions.accounts import CoinAccountService
from apps.promotions.catalog import BenefitCatalogService
from apps.promotions.exceptions import (
    ContentionError,
    CouponAlreadyUsedError,
    InsufficientBalanceError,
    NotFoundError,
    PromotionsError,
    StorageUnavailableError,
)
from apps.promotions.referrals import ReferralService
from apps.promotions.services import PromotionEngine

from .serializers import (
    ApplyInputSerializer,
    AvailableBenefitsInputSerializer,
    AwardCoinsInputSerializer,
    AwardCouponInputSerializer,
    BenefitSerializer,
    CoinTransactionSerializer,
    EvaluateInputSerializer,
    LifecycleActionInputSerializer,
    RedeemCoinsInputSerializer,
    ReferralCodeInputSerializer,
)

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[PromotionsError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InsufficientBalanceError: status.HTTP_409_CONFLICT,
    CouponAlreadyUsedError: status.HTTP_409_CONFLICT,
    ContentionError: status.HTTP_503_SERVICE_UNAVAILABLE,
    StorageUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


# 🔒 SECURITY: Throttle classes for promotion endpoints
class PromotionApplyThrottle(ScopedRateThrottle):
    """Throttling for redemption endpoints"""
    scope = 'promotions_apply'


class PromotionEvaluateThrottle(ScopedRateThrottle):
    """Throttling for read-only evaluation endpoints"""
    scope = 'promotions_evaluate'


def get_engine() -> PromotionEngine:
    """Engine wired to the configured customer directory."""
    return PromotionEngine()


def _error_response(exc: PromotionsError | ValidationError) -> Response:
    if isinstance(exc, ValidationError):
        return Response({
            'error': 'Invalid input',
            'details': exc.messages,
        }, status=status.HTTP_400_BAD_REQUEST)

    http_status = next(
        (code for exc_type, code in ERROR_STATUS.items() if isinstance(exc, exc_type)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    if http_status == status.HTTP_503_SERVICE_UNAVAILABLE:
        logger.warning(f"⚠️ [Promotions API] {exc.message}", extra={'detail': exc.detail})
    return Response({
        'error': exc.message,
        'detail': exc.detail,
    }, status=http_status)


def _invalid_input(serializer: Any) -> Response:
    return Response({
        'error': 'Invalid input',
        'details': serializer.errors,
    }, status=status.HTTP_400_BAD_REQUEST)


def _denial_response(reason: Any, detail: dict[str, Any]) -> Response:
    return Response({
        'reason': str(reason) if reason else None,
        'message': str(reason.label) if reason else '',
        'detail': detail,
    }, status=status.HTTP_409_CONFLICT)


def _resolve_customer_id(request: Request, requested: str | None) -> str | None:
    """Customers act on their own account; staff may act on anyone's."""
    own_id = str(request.user.pk)
    if not requested or requested == own_id:
        return own_id
    if request.user.is_staff:
        return requested
    return None


def _forbidden() -> Response:
    return Response({
        'error': 'You may only act on your own account',
    }, status=status.HTTP_403_FORBIDDEN)


# ===============================================================================
# Evaluation & Redemption
# ===============================================================================


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@throttle_classes([PromotionEvaluateThrottle])
def evaluate_benefit(request: Request) -> Response:
    """
    Check whether a benefit applies to an order, without redeeming it.
    """
    serializer = EvaluateInputSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_input(serializer)

    customer_id = _resolve_customer_id(request, serializer.validated_data.get('customer_id'))
    if customer_id is None:
        return _forbidden()

    try:
        order = serializer.to_order_context()
        result = get_engine().evaluate_benefit(
            serializer.validated_data['benefit'], customer_id, order.value, order_context=order
        )
    except (PromotionsError, ValidationError) as e:
        return _error_response(e)

    return Response({
        'eligible': result.eligible,
        'reason': str(result.reason) if result.reason else None,
        'message': result.message,
        'detail': result.detail,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@throttle_classes([PromotionApplyThrottle])
def apply_benefit(request: Request) -> Response:
    """
    Redeem a benefit on an order.
    Retrying with the same order_id (or idempotency_key) returns the original redemption.
    """
    serializer = ApplyInputSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_input(serializer)

    data = serializer.validated_data
    customer_id = _resolve_customer_id(request, data.get('customer_id'))
    if customer_id is None:
        return _forbidden()

    logger.info(f"🎟️ [Promotions API] Apply {data['benefit']} on order {data['order_id']} by {customer_id}")

    try:
        order = serializer.to_order_context()
        result = get_engine().apply_benefit(
            data['benefit'],
            customer_id,
            data['order_id'],
            order.value,
            order_context=order,
            idempotency_key=data.get('idempotency_key'),
        )
    except (PromotionsError, ValidationError) as e:
        return _error_response(e)

    if not result.committed:
        return _denial_response(result.reason, result.detail)

    return Response({
        'redemption_id': result.redemption_id,
        'discount': result.discount,
        'free_delivery': result.free_delivery,
        'coins_multiplier': str(result.coins_multiplier),
        'coins_awarded': result.coins_awarded,
        'replayed': result.replayed,
    }, status=status.HTTP_200_OK if result.replayed else status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@throttle_classes([PromotionEvaluateThrottle])
def available_benefits(request: Request) -> Response:
    """
    Benefits the customer could use on this order, best discount first.
    """
    serializer = AvailableBenefitsInputSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_input(serializer)

    customer_id = _resolve_customer_id(request, serializer.validated_data.get('customer_id'))
    if customer_id is None:
        return _forbidden()

    try:
        order = serializer.to_order_context()
        available = get_engine().list_available_benefits(customer_id, order.value, order_context=order)
    except (PromotionsError, ValidationError) as e:
        return _error_response(e)

    results = [
        {
            **BenefitSerializer(item.benefit).data,
            'discount': item.discount.amount,
            'free_delivery': item.discount.free_delivery,
            'coins_multiplier': str(item.discount.coins_multiplier),
            'discount_description': item.discount.description,
        }
        for item in available
    ]
    return Response({
        'results': results,
        'count': len(results),
    })


# ===============================================================================
# Aggre Coin Accounts
# ===============================================================================


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def account_summary(request: Request) -> Response:
    """
    Coin balance, lifetime totals and active coupons.
    """
    customer_id = _resolve_customer_id(request, request.query_params.get('customer_id'))
    if customer_id is None:
        return _forbidden()

    try:
        summary = get_engine().get_account_summary(customer_id)
    except (PromotionsError, ValidationError) as e:
        return _error_response(e)

    return Response({
        'customer_id': summary.customer_id,
        'balance': summary.balance,
        'total_earned': summary.total_earned,
        'total_redeemed': summary.total_redeemed,
        'total_expired': summary.total_expired,
        'referral_code': summary.referral_code,
        'active_coupons': [
            {
                'grant_id': coupon.grant_id,
                'benefit_id': coupon.benefit_id,
                'code': coupon.code,
                'title': coupon.title,
                'awarded_at': coupon.awarded_at.isoformat(),
                'valid_until': coupon.valid_until.isoformat(),
            }
            for coupon in summary.active_coupons
        ],
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@throttle_classes([PromotionApplyThrottle])
def redeem_coins(request: Request) -> Response:
    """
    Spend Aggre Coins against an order (1 coin = ₹1).
    """
    serializer = RedeemCoinsInputSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_input(serializer)

    data = serializer.validated_data
    try:
        redemption = CoinAccountService.redeem_coins_for_order(
            str(request.user.pk), data['coins'], data['order_value'], data['order_id']
        )
    except (PromotionsError, ValidationError) as e:
        return _error_response(e)

    return Response({
        'coins_used': redemption.coins_used,
        'discount': redemption.discount,
        'transaction': CoinTransactionSerializer(redemption.transaction).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def apply_referral_code(request: Request) -> Response:
    """
    Use another customer's referral code and receive the welcome bonus.
    """
    serializer = ReferralCodeInputSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_input(serializer)

    try:
        entry = ReferralService.apply_referral_code(str(request.user.pk), serializer.validated_data['code'])
    except (PromotionsError, ValidationError) as e:
        return _error_response(e)

    return Response({
        'bonus': entry.amount,
        'transaction': CoinTransactionSerializer(entry).data,
    }, status=status.HTTP_201_CREATED)


# ===============================================================================
# Staff Operations
# ===============================================================================


@api_view(['POST'])
@permission_classes([IsAdminUser])
def award_coins(request: Request) -> Response:
    """
    Credit coins to a customer.
    """
    serializer = AwardCoinsInputSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_input(serializer)

    data = serializer.validated_data
    try:
        entry = get_engine().award_coins(
            data['customer_id'],
            data['amount'],
            transaction_type=data['transaction_type'],
            reason=data['reason'],
            awarded_by=str(request.user.pk),
        )
    except (PromotionsError, ValidationError) as e:
        return _error_response(e)

    logger.info(f"🪙 [Promotions API] {request.user.pk} awarded {data['amount']} coins to {data['customer_id']}")
    return Response(CoinTransactionSerializer(entry).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAdminUser])
def award_coupon(request: Request) -> Response:
    """
    Grant a coupon to a customer.
    """
    serializer = AwardCouponInputSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_input(serializer)

    data = serializer.validated_data
    try:
        grant = get_engine().award_coupon(
            data['customer_id'],
            data['benefit'],
            reason=data['reason'],
            awarded_by=str(request.user.pk),
            award_key=data['award_key'],
        )
    except (PromotionsError, ValidationError) as e:
        return _error_response(e)

    return Response({
        'grant_id': str(grant.pk),
        'benefit_id': str(grant.benefit_id),
        'customer_id': grant.customer_id,
        'used': grant.used,
        'awarded_at': grant.awarded_at.isoformat(),
    }, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAdminUser])
def benefit_detail(request: Request, benefit: str) -> Response:
    try:
        instance = BenefitCatalogService.get_benefit(benefit)
    except PromotionsError as e:
        return _error_response(e)
    return Response(BenefitSerializer(instance).data)


LIFECYCLE_ACTIONS = ('submit', 'approve', 'reject', 'pause', 'resume')


@api_view(['POST'])
@permission_classes([IsAdminUser])
def benefit_action(request: Request, benefit: str, action: str) -> Response:
    """
    Run one lifecycle action: submit, approve, reject, pause or resume.
    Transitions not allowed from the current status answer 409.
    """
    if action not in LIFECYCLE_ACTIONS:
        return Response({
            'error': f'Unknown action: {action}',
        }, status=status.HTTP_404_NOT_FOUND)

    serializer = LifecycleActionInputSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_input(serializer)
    data = serializer.validated_data
    if action == 'reject' and not data['reason'].strip():
        return Response({
            'error': 'Invalid input',
            'details': ['Rejection reason is required'],
        }, status=status.HTTP_400_BAD_REQUEST)

    actor = str(request.user.pk)
    try:
        instance = BenefitCatalogService.get_benefit(benefit)
        if action == 'submit':
            result = BenefitCatalogService.submit(instance, actor)
        elif action == 'approve':
            result = BenefitCatalogService.approve(instance, actor, data['notes'])
        elif action == 'reject':
            result = BenefitCatalogService.reject(instance, actor, data['reason'])
        elif action == 'pause':
            result = BenefitCatalogService.pause(instance, actor)
        else:
            result = BenefitCatalogService.resume(instance, actor)
    except (PromotionsError, ValidationError) as e:
        return _error_response(e)

    if isinstance(result, Err):
        return Response({
            'error': result.error,
        }, status=status.HTTP_409_CONFLICT)

    return Response(BenefitSerializer(result.unwrap()).data)
