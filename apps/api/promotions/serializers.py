"""
Promotions API Serializers for Aggrekart
Input validation and response shapes for benefit, redemption and coin endpoints.
"""

from decimal import Decimal

from rest_framework import serializers

from apps.promotions.directory import OrderContext
from apps.promotions.models import PRODUCT_CATEGORIES, Benefit, CoinTransaction


class OrderContextSerializer(serializers.Serializer):
    """Order composition sent with evaluate/apply requests"""

    order_value = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"))
    order_id = serializers.CharField(max_length=64, required=False, allow_blank=False)
    categories = serializers.ListField(
        child=serializers.ChoiceField(choices=PRODUCT_CATEGORIES), required=False, default=list
    )
    quantity = serializers.IntegerField(min_value=0, required=False, default=1)
    supplier_id = serializers.CharField(max_length=64, required=False, allow_null=True, default=None)
    placed_at = serializers.DateTimeField(required=False, allow_null=True, default=None)
    delivery_state = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    delivery_city = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")

    def to_order_context(self) -> OrderContext:
        data = self.validated_data
        return OrderContext(
            value=data["order_value"],
            order_id=data.get("order_id"),
            categories=frozenset(data["categories"]),
            quantity=data["quantity"],
            supplier_id=data["supplier_id"],
            placed_at=data["placed_at"],
            delivery_state=data["delivery_state"] or None,
            delivery_city=data["delivery_city"] or None,
        )


class EvaluateInputSerializer(OrderContextSerializer):
    benefit = serializers.CharField(max_length=64, help_text="Benefit UUID or coupon code")
    customer_id = serializers.CharField(max_length=64, required=False)


class ApplyInputSerializer(EvaluateInputSerializer):
    order_id = serializers.CharField(max_length=64)
    idempotency_key = serializers.CharField(max_length=128, required=False)


class AvailableBenefitsInputSerializer(OrderContextSerializer):
    customer_id = serializers.CharField(max_length=64, required=False)


class RedeemCoinsInputSerializer(serializers.Serializer):
    coins = serializers.IntegerField(min_value=1)
    order_value = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"))
    order_id = serializers.CharField(max_length=64)


class ReferralCodeInputSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=12)


class AwardCoinsInputSerializer(serializers.Serializer):
    """Staff credit of coins to a customer"""

    AWARD_TYPES = (
        (CoinTransaction.ADMIN_AWARD, "Admin Award"),
        (CoinTransaction.BONUS, "Bonus"),
        (CoinTransaction.EARNED, "Earned"),
    )

    customer_id = serializers.CharField(max_length=64)
    amount = serializers.IntegerField(min_value=1)
    transaction_type = serializers.ChoiceField(choices=AWARD_TYPES, default=CoinTransaction.ADMIN_AWARD)
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class AwardCouponInputSerializer(serializers.Serializer):
    customer_id = serializers.CharField(max_length=64)
    benefit = serializers.CharField(max_length=64, help_text="Benefit UUID or coupon code")
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    award_key = serializers.CharField(max_length=128, required=False, allow_null=True, default=None)


class LifecycleActionInputSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class BenefitSerializer(serializers.ModelSerializer):
    """Benefit definition with lifecycle state"""

    effective_status = serializers.SerializerMethodField()
    remaining_budget = serializers.IntegerField(read_only=True)
    remaining_uses = serializers.IntegerField(read_only=True)

    class Meta:
        model = Benefit
        fields = [
            'id', 'title', 'description', 'benefit_type', 'code',
            'owner_type', 'supplier_id',
            'reward_kind', 'reward_value', 'reward_cap_amount',
            'min_order_value', 'max_order_value',
            'valid_from', 'valid_until',
            'total_cap', 'per_user_cap', 'daily_cap', 'redemption_count',
            'budget_total', 'budget_used', 'remaining_budget', 'remaining_uses',
            'status', 'effective_status', 'rejection_reason', 'review_notes',
        ]
        read_only_fields = fields

    def get_effective_status(self, obj: Benefit) -> str:
        return obj.effective_status()


class CoinTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = CoinTransaction
        fields = [
            'id', 'transaction_type', 'amount', 'balance_after',
            'description', 'order_id', 'expires_at', 'created_at',
        ]
        read_only_fields = fields
